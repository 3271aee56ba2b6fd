"""Typed access to device-scoped settings kept in a ``SettingsStore``."""

from __future__ import annotations

import logging

from .interfaces import SettingsStore

LOGGER = logging.getLogger(__name__)

DEVICE_ID = "DEVICE_ID"
API_KEY = "API_KEY"
GATEWAY_ENABLED = "GATEWAY_ENABLED"
RECEIVE_SMS_ENABLED = "RECEIVE_SMS_ENABLED"
HEARTBEAT_ENABLED = "HEARTBEAT_ENABLED"
HEARTBEAT_INTERVAL_MINUTES = "HEARTBEAT_INTERVAL_MINUTES"
PREFERRED_SIM = "PREFERRED_SIM"
SMS_FILTER_CONFIG = "SMS_FILTER_CONFIG"
PUSH_TOKEN = "FCM_TOKEN"

DEFAULT_SIM = -1

BOOLEAN_KEYS: frozenset[str] = frozenset(
    {GATEWAY_ENABLED, RECEIVE_SMS_ENABLED, HEARTBEAT_ENABLED}
)
INTEGER_KEYS: frozenset[str] = frozenset({HEARTBEAT_INTERVAL_MINUTES, PREFERRED_SIM})
KNOWN_KEYS: frozenset[str] = frozenset(
    {DEVICE_ID, API_KEY, SMS_FILTER_CONFIG, PUSH_TOKEN} | BOOLEAN_KEYS | INTEGER_KEYS
)


class GatewayPreferences:
    """Read and write device preferences with typed defaults.

    Values are read from the store on every access so changes made by
    another component (the HTTP surface, the CLI) are seen immediately.
    """

    def __init__(self, store: SettingsStore) -> None:
        self._store = store

    # Raw access ---------------------------------------------------------------
    def get_string(self, key: str, default: str | None = None) -> str | None:
        value = self._store.get(key)
        return default if value is None else value

    def set_string(self, key: str, value: str | None) -> None:
        if value is None:
            self._store.delete(key)
        else:
            self._store.set(key, value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._store.get(key)
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    def set_bool(self, key: str, value: bool) -> None:
        self._store.set(key, "true" if value else "false")

    def get_int(self, key: str, default: int) -> int:
        value = self._store.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            LOGGER.warning("Ignoring non-integer preference %s=%r", key, value)
            return default

    def set_int(self, key: str, value: int) -> None:
        self._store.set(key, str(int(value)))

    # Typed accessors ------------------------------------------------------------
    @property
    def device_id(self) -> str | None:
        return self.get_string(DEVICE_ID)

    @property
    def api_key(self) -> str | None:
        return self.get_string(API_KEY)

    def credentials(self) -> tuple[str, str] | None:
        """Return ``(device_id, api_key)`` when both are non-empty."""
        device_id = self.device_id
        api_key = self.api_key
        if not device_id or not api_key:
            return None
        return device_id, api_key

    @property
    def gateway_enabled(self) -> bool:
        return self.get_bool(GATEWAY_ENABLED, False)

    @property
    def receive_sms_enabled(self) -> bool:
        return self.get_bool(RECEIVE_SMS_ENABLED, False)

    @property
    def heartbeat_enabled(self) -> bool:
        return self.get_bool(HEARTBEAT_ENABLED, True)

    def heartbeat_interval_minutes(self, default: int) -> int:
        return self.get_int(HEARTBEAT_INTERVAL_MINUTES, default)

    def set_heartbeat_interval_minutes(self, minutes: int) -> None:
        self.set_int(HEARTBEAT_INTERVAL_MINUTES, minutes)

    @property
    def preferred_sim(self) -> int | None:
        """Return the preferred subscription id, ``None`` for the default."""
        value = self.get_int(PREFERRED_SIM, DEFAULT_SIM)
        return None if value == DEFAULT_SIM else value

    @property
    def filter_config_blob(self) -> str | None:
        return self.get_string(SMS_FILTER_CONFIG)

    def set_filter_config_blob(self, blob: str) -> None:
        self.set_string(SMS_FILTER_CONFIG, blob)

    @property
    def push_token(self) -> str | None:
        return self.get_string(PUSH_TOKEN)

    def snapshot(self) -> dict[str, object]:
        """Return the known preferences with secrets masked."""
        values: dict[str, object] = {}
        for key in sorted(KNOWN_KEYS):
            raw = self._store.get(key)
            if raw is None:
                continue
            if key == API_KEY:
                values[key] = _mask(raw)
            elif key in BOOLEAN_KEYS:
                values[key] = self.get_bool(key)
            elif key in INTEGER_KEYS:
                values[key] = self.get_int(key, DEFAULT_SIM)
            else:
                values[key] = raw
        return values


def _mask(secret: str) -> str:
    if len(secret) <= 4:
        return "*" * len(secret)
    return "*" * (len(secret) - 4) + secret[-4:]


__all__ = [
    "API_KEY",
    "BOOLEAN_KEYS",
    "DEFAULT_SIM",
    "DEVICE_ID",
    "GATEWAY_ENABLED",
    "GatewayPreferences",
    "HEARTBEAT_ENABLED",
    "HEARTBEAT_INTERVAL_MINUTES",
    "INTEGER_KEYS",
    "KNOWN_KEYS",
    "PREFERRED_SIM",
    "PUSH_TOKEN",
    "RECEIVE_SMS_ENABLED",
    "SMS_FILTER_CONFIG",
]
