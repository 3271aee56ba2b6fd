"""Tests for filter rule evaluation and stored config handling."""

from __future__ import annotations

import json

import pytest

from conftest import DictSettingsStore
from sms_relay.core.preferences import SMS_FILTER_CONFIG, GatewayPreferences
from sms_relay.filtering import (
    FilterConfig,
    FilterEngine,
    FilterMode,
    FilterRule,
    FilterTarget,
    MatchType,
    dump_filter_config,
    load_filter_config,
    should_process,
)


def _rule(pattern: str | None, **kwargs) -> FilterRule:
    return FilterRule(pattern=pattern, **kwargs)


def test_disabled_config_never_blocks() -> None:
    """A disabled config passes everything, even with a catch-all rule."""

    config = FilterConfig(
        enabled=False,
        mode=FilterMode.ALLOW_LIST,
        rules=[_rule("", match_type=MatchType.CONTAINS)],
    )
    assert should_process("anyone", "anything", config) is True
    blocking = FilterConfig(
        enabled=False,
        mode=FilterMode.BLOCK_LIST,
        rules=[_rule("a", match_type=MatchType.CONTAINS, filter_target=FilterTarget.BOTH)],
    )
    assert should_process("alice", "a message", blocking) is True


def test_block_list_exact_sender_is_case_insensitive() -> None:
    """BLOCK_LIST with an EXACT sender rule blocks 'spam' but allows 'spam1'."""

    config = FilterConfig(
        enabled=True,
        mode=FilterMode.BLOCK_LIST,
        rules=[_rule("SPAM", match_type=MatchType.EXACT, filter_target=FilterTarget.SENDER)],
    )
    assert should_process("spam", "hello", config) is False
    assert should_process("spam1", "hello", config) is True


def test_allow_list_with_no_rules_allows_everything() -> None:
    """Empty rule lists never block, even in ALLOW_LIST mode."""

    config = FilterConfig(enabled=True, mode=FilterMode.ALLOW_LIST, rules=[])
    assert should_process("anyone", "anything", config) is True


def test_allow_list_requires_a_match() -> None:
    """ALLOW_LIST passes only messages matched by some rule."""

    config = FilterConfig(
        enabled=True,
        mode=FilterMode.ALLOW_LIST,
        rules=[
            _rule("+1555", match_type=MatchType.STARTS_WITH),
            _rule("code", match_type=MatchType.CONTAINS, filter_target=FilterTarget.MESSAGE),
        ],
    )
    assert should_process("+15551234567", "hi", config) is True
    assert should_process("+4470000000", "Your CODE is 1", config) is True
    assert should_process("+4470000000", "hello", config) is False


@pytest.mark.parametrize(
    ("rule", "sender", "body", "expected"),
    [
        (_rule("bank", match_type=MatchType.ENDS_WITH), "MyBank", None, True),
        (_rule("bank", match_type=MatchType.ENDS_WITH, case_sensitive=True), "MyBank", None, False),
        (_rule("otp", match_type=MatchType.CONTAINS, filter_target=FilterTarget.MESSAGE), "x", None, False),
        (_rule("otp", match_type=MatchType.CONTAINS, filter_target=FilterTarget.BOTH), None, "Your OTP", True),
        (_rule("otp", match_type=MatchType.CONTAINS, filter_target=FilterTarget.BOTH), None, None, False),
        (_rule(None, match_type=MatchType.CONTAINS), "anything", "anything", False),
    ],
)
def test_rule_matching(rule: FilterRule, sender, body, expected: bool) -> None:
    """Rules respect target, case sensitivity and absent values."""

    assert rule.matches(sender, body) is expected


def test_load_migrates_version_one_blob() -> None:
    """Unversioned blobs get defaults for fields added later."""

    blob = json.dumps(
        {
            "enabled": True,
            "mode": "ALLOW_LIST",
            "rules": [{"pattern": "Bank", "matchType": "STARTS_WITH"}],
        }
    )
    config = load_filter_config(blob)
    assert config.enabled is True
    assert config.mode is FilterMode.ALLOW_LIST
    rule = config.rules[0]
    assert rule.filter_target is FilterTarget.SENDER
    assert rule.case_sensitive is False
    assert rule.match_type is MatchType.STARTS_WITH


def test_load_drops_invalid_rules_and_unknown_mode() -> None:
    """Invalid rules are dropped and unknown modes fall back to BLOCK_LIST."""

    blob = json.dumps(
        {
            "version": 2,
            "enabled": True,
            "mode": "GREY_LIST",
            "rules": [
                {"pattern": "ok", "matchType": "CONTAINS", "filterTarget": "MESSAGE"},
                {"pattern": "bad", "matchType": "REGEX"},
                "not-a-rule",
            ],
        }
    )
    config = load_filter_config(blob)
    assert config.mode is FilterMode.BLOCK_LIST
    assert [rule.pattern for rule in config.rules] == ["ok"]


@pytest.mark.parametrize(
    ("stored", "expected"), [("false", False), ("true", True), (False, False), (None, False)]
)
def test_enabled_flag_is_validated(stored, expected: bool) -> None:
    """String flags are parsed rather than tested for truthiness."""

    blob = json.dumps({"version": 2, "enabled": stored, "mode": "BLOCK_LIST", "rules": []})
    assert load_filter_config(blob).enabled is expected


@pytest.mark.parametrize("blob", [None, "", "{not json", "[1, 2]"])
def test_unreadable_blob_yields_default(blob: str | None) -> None:
    """Missing or corrupt blobs decode to the default, disabled config."""

    config = load_filter_config(blob)
    assert config.enabled is False
    assert config.mode is FilterMode.BLOCK_LIST
    assert config.rules == []


def test_dump_writes_camel_case_and_rejects_empty_pattern() -> None:
    """Saved configs use camelCase keys and require non-empty patterns."""

    config = FilterConfig(enabled=True, rules=[_rule("SPAM")])
    data = json.loads(dump_filter_config(config))
    assert data["version"] == 2
    assert data["rules"][0] == {
        "pattern": "SPAM",
        "matchType": "EXACT",
        "filterTarget": "SENDER",
        "caseSensitive": False,
    }
    with pytest.raises(ValueError):
        dump_filter_config(FilterConfig(enabled=True, rules=[_rule("")]))


def test_engine_reads_config_fresh_on_every_call() -> None:
    """Changing the stored config affects the very next evaluation."""

    store = DictSettingsStore()
    engine = FilterEngine(GatewayPreferences(store))
    assert engine.should_process("spam", "x") is True

    engine.save(FilterConfig(enabled=True, rules=[_rule("spam")]))
    assert engine.should_process("spam", "x") is False

    store.set(SMS_FILTER_CONFIG, json.dumps({"enabled": False, "rules": []}))
    assert engine.should_process("spam", "x") is True
