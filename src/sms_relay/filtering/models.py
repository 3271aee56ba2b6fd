"""Filter rule schema and versioned (de)serialisation."""

from __future__ import annotations

import json
import logging
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

LOGGER = logging.getLogger(__name__)

CURRENT_VERSION = 2


class MatchType(StrEnum):
    EXACT = "EXACT"
    STARTS_WITH = "STARTS_WITH"
    ENDS_WITH = "ENDS_WITH"
    CONTAINS = "CONTAINS"


class FilterTarget(StrEnum):
    SENDER = "SENDER"
    MESSAGE = "MESSAGE"
    BOTH = "BOTH"


class FilterMode(StrEnum):
    ALLOW_LIST = "ALLOW_LIST"
    BLOCK_LIST = "BLOCK_LIST"


class FilterRule(BaseModel):
    """A single pattern matched against the sender, the body, or both."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    pattern: str | None = None
    match_type: MatchType = Field(default=MatchType.EXACT, alias="matchType")
    filter_target: FilterTarget = Field(
        default=FilterTarget.SENDER, alias="filterTarget"
    )
    case_sensitive: bool = Field(default=False, alias="caseSensitive")

    def matches(self, sender: str | None, body: str | None) -> bool:
        """Return ``True`` when the rule matches; absent values never match."""
        if self.filter_target is FilterTarget.SENDER:
            return self._matches_text(sender)
        if self.filter_target is FilterTarget.MESSAGE:
            return self._matches_text(body)
        return self._matches_text(sender) or self._matches_text(body)

    def _matches_text(self, text: str | None) -> bool:
        if not self.pattern or text is None:
            return False
        pattern = self.pattern
        candidate = text
        if not self.case_sensitive:
            pattern = pattern.lower()
            candidate = candidate.lower()
        if self.match_type is MatchType.EXACT:
            return candidate == pattern
        if self.match_type is MatchType.STARTS_WITH:
            return candidate.startswith(pattern)
        if self.match_type is MatchType.ENDS_WITH:
            return candidate.endswith(pattern)
        return pattern in candidate


class FilterConfig(BaseModel):
    """Ordered rule list plus the allow/block mode it is applied with."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: int = CURRENT_VERSION
    enabled: bool = False
    mode: FilterMode = FilterMode.BLOCK_LIST
    rules: list[FilterRule] = Field(default_factory=list)


def _migrate_rule(raw: dict[str, Any], version: int) -> dict[str, Any]:
    migrated = dict(raw)
    if version < 2:
        # Version 1 rules only ever targeted the sender, case-insensitively.
        migrated.setdefault("filterTarget", FilterTarget.SENDER.value)
        migrated.setdefault("caseSensitive", False)
    return migrated


def load_filter_config(blob: str | None) -> FilterConfig:
    """Decode a stored blob, upgrading older layouts.

    Undecodable blobs and invalid rules degrade to defaults instead of
    raising, so a bad configuration never stops inbound forwarding.
    """
    if not blob:
        return FilterConfig()
    try:
        data = json.loads(blob)
    except json.JSONDecodeError as exc:
        LOGGER.warning("Stored filter config is not valid JSON: %s", exc)
        return FilterConfig()
    if not isinstance(data, dict):
        LOGGER.warning("Stored filter config has unexpected type %s", type(data))
        return FilterConfig()

    try:
        version = int(data.get("version") or 1)
    except (TypeError, ValueError):
        version = 1

    rules: list[FilterRule] = []
    for raw_rule in data.get("rules") or []:
        if not isinstance(raw_rule, dict):
            continue
        try:
            rules.append(FilterRule.model_validate(_migrate_rule(raw_rule, version)))
        except ValidationError as exc:
            LOGGER.warning("Dropping invalid filter rule %r: %s", raw_rule, exc)

    try:
        mode = FilterMode(data.get("mode") or FilterMode.BLOCK_LIST)
    except ValueError:
        LOGGER.warning("Unknown filter mode %r; using BLOCK_LIST", data.get("mode"))
        mode = FilterMode.BLOCK_LIST

    try:
        return FilterConfig(enabled=data.get("enabled", False), mode=mode, rules=rules)
    except ValidationError as exc:
        LOGGER.warning("Invalid filter enabled flag %r: %s", data.get("enabled"), exc)
        return FilterConfig(mode=mode, rules=rules)


def dump_filter_config(config: FilterConfig) -> str:
    """Serialise ``config`` at the current version for storage."""
    for index, rule in enumerate(config.rules):
        if not rule.pattern:
            raise ValueError(f"Filter rule {index} has an empty pattern")
    payload = config.model_dump(mode="json", by_alias=True)
    payload["version"] = CURRENT_VERSION
    return json.dumps(payload)


__all__ = [
    "CURRENT_VERSION",
    "FilterConfig",
    "FilterMode",
    "FilterRule",
    "FilterTarget",
    "MatchType",
    "dump_filter_config",
    "load_filter_config",
]
