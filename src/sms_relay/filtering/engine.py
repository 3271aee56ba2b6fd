"""Allow/block evaluation of inbound messages."""

from __future__ import annotations

import logging

from ..core.preferences import GatewayPreferences
from .models import FilterConfig, FilterMode, dump_filter_config, load_filter_config

LOGGER = logging.getLogger(__name__)


def should_process(sender: str | None, body: str | None, config: FilterConfig) -> bool:
    """Return ``True`` when a message passes ``config``.

    A disabled config or an empty rule list never blocks, in either mode.
    """
    if not config.enabled or not config.rules:
        return True
    any_match = any(rule.matches(sender, body) for rule in config.rules)
    if config.mode is FilterMode.ALLOW_LIST:
        return any_match
    return not any_match


class FilterEngine:
    """Evaluate messages against the filter config stored in preferences."""

    def __init__(self, preferences: GatewayPreferences) -> None:
        self._preferences = preferences

    def current_config(self) -> FilterConfig:
        return load_filter_config(self._preferences.filter_config_blob)

    def save(self, config: FilterConfig) -> None:
        """Validate and persist ``config``."""
        self._preferences.set_filter_config_blob(dump_filter_config(config))
        LOGGER.info(
            "Saved filter config (enabled=%s, mode=%s, rules=%d)",
            config.enabled,
            config.mode.value,
            len(config.rules),
        )

    def should_process(self, sender: str | None, body: str | None) -> bool:
        # Read on every call; the config may change between messages.
        return should_process(sender, body, self.current_config())


__all__ = ["FilterEngine", "should_process"]
