"""Tests for inbound producers and the shared pipeline."""

from __future__ import annotations

import pytest

from conftest import START_TIME, FakeStore, RecordingSink, configured_store
from sms_relay.core.models import SMS_TYPE_INBOX, StoredSms, TaskKind
from sms_relay.core.preferences import RECEIVE_SMS_ENABLED, GatewayPreferences
from sms_relay.filtering import (
    FilterConfig,
    FilterEngine,
    FilterMode,
    FilterRule,
    FilterTarget,
    MatchType,
)
from sms_relay.ingestion import (
    SMS_DELIVER_ACTION,
    FingerprintCache,
    InboundPipeline,
    MessageStoreObserver,
    NotificationObserver,
    PostedNotification,
    SmsBroadcastReceiver,
    SmsFragment,
)
from sms_relay.ingestion.notifications import (
    extract_phone_number,
    is_messaging_notification,
    is_phone_number,
)

NOW_MILLIS = int(START_TIME * 1000)


def _pipeline(preferences, clock, sink=None):
    sink = sink or RecordingSink()
    pipeline = InboundPipeline(
        preferences,
        FingerprintCache(clock=clock),
        FilterEngine(preferences),
        sink,
        clock=clock,
    )
    return pipeline, sink


def test_pipeline_queues_message_with_credentials(preferences, clock) -> None:
    """A fresh message becomes one inbound forward task."""

    pipeline, sink = _pipeline(preferences, clock)

    assert pipeline.on_candidate_message("+15551234567", "hello", 1234) is True

    (task,) = sink.tasks
    assert task.kind is TaskKind.INBOUND_FORWARD
    assert (task.device_id, task.api_key) == ("device-1", "key-123")
    assert task.payload["sender"] == "+15551234567"
    assert task.payload["received_at"] == 1234
    assert task.unique_name.startswith("sms_received_")


def test_pipeline_stamps_missing_timestamp_with_now(preferences, clock) -> None:
    """Messages without a timestamp use the current time."""

    pipeline, sink = _pipeline(preferences, clock)
    pipeline.on_candidate_message("+15551234567", "hello")
    assert sink.tasks[0].payload["received_at"] == NOW_MILLIS


@pytest.mark.parametrize(
    "overrides",
    [{RECEIVE_SMS_ENABLED: "false"}, {"API_KEY": ""}, {"DEVICE_ID": ""}],
)
def test_pipeline_gate_drops_unconfigured(overrides, clock) -> None:
    """Nothing is queued while receiving is off or credentials are missing."""

    preferences = GatewayPreferences(configured_store(**overrides))
    pipeline, sink = _pipeline(preferences, clock)

    assert pipeline.is_receiving() is False
    assert pipeline.on_candidate_message("+15551234567", "hello", 1) is False
    assert sink.tasks == []


def test_pipeline_suppresses_duplicates_within_ttl(preferences, clock) -> None:
    """The same (sender, body, timestamp) is forwarded once."""

    pipeline, sink = _pipeline(preferences, clock)
    assert pipeline.on_candidate_message("+1555", "dup", 10) is True
    assert pipeline.on_candidate_message("+1555", "dup", 10) is False
    assert pipeline.on_candidate_message("+1555", "dup", 11) is True
    assert len(sink.tasks) == 2


def test_pipeline_applies_filter_rules(preferences, clock) -> None:
    """Blocked senders are dropped after deduplication."""

    engine = FilterEngine(preferences)
    engine.save(
        FilterConfig(
            enabled=True,
            mode=FilterMode.BLOCK_LIST,
            rules=[
                FilterRule(
                    pattern="SPAM",
                    match_type=MatchType.CONTAINS,
                    filter_target=FilterTarget.MESSAGE,
                )
            ],
        )
    )
    pipeline, sink = _pipeline(preferences, clock)

    assert pipeline.on_candidate_message("+1555", "this is spam", 1) is False
    assert pipeline.on_candidate_message("+1555", "legit", 2) is True
    assert [task.payload["body"] for task in sink.tasks] == ["legit"]


def test_broadcast_concatenates_fragments(preferences, clock) -> None:
    """Fragments join in order with the first address and earliest time."""

    pipeline, sink = _pipeline(preferences, clock)
    store = FakeStore()
    receiver = SmsBroadcastReceiver(pipeline, message_store=store)

    fragments = [
        SmsFragment(None, "Part one, ", 2000),
        SmsFragment("+15551234567", "part two.", 1000),
    ]
    assert receiver.on_receive(SMS_DELIVER_ACTION, fragments) is True

    payload = sink.tasks[0].payload
    assert payload["body"] == "Part one, part two."
    assert payload["sender"] == "+15551234567"
    assert payload["received_at"] == 1000
    assert store.inserted == [("+15551234567", "Part one, part two.", 1000)]


def test_broadcast_ignores_other_actions_and_empty_input(preferences, clock) -> None:
    """Only the deliver action with at least one fragment is handled."""

    pipeline, sink = _pipeline(preferences, clock)
    receiver = SmsBroadcastReceiver(pipeline)

    assert receiver.on_receive("android.provider.Telephony.SMS_RECEIVED", [
        SmsFragment("+1555", "x", 1)
    ]) is False
    assert receiver.on_receive(SMS_DELIVER_ACTION, []) is False
    assert sink.tasks == []


def test_broadcast_survives_inbox_write_failure(preferences, clock) -> None:
    """A failing inbox write does not stop forwarding."""

    class BrokenStore(FakeStore):
        def insert_inbox(self, sender, body, received_at):
            raise RuntimeError("read-only")

    pipeline, sink = _pipeline(preferences, clock)
    receiver = SmsBroadcastReceiver(pipeline, message_store=BrokenStore())
    assert receiver.on_receive(SMS_DELIVER_ACTION, [SmsFragment("+1555", "x", 1)])
    assert len(sink.tasks) == 1


def test_store_observer_forwards_only_secondary_protocol(preferences, clock) -> None:
    """Plain SMS rows are skipped; advanced-protocol rows are forwarded once."""

    store = FakeStore(
        [
            StoredSms(id=3, address="+1555", body="plain", date=300, protocol="0"),
            StoredSms(id=2, address="+1555", body="nullproto", date=200, protocol=None),
            StoredSms(id=1, address="+1666", body="rich", date=100, protocol="1"),
        ]
    )
    pipeline, sink = _pipeline(preferences, clock)
    observer = MessageStoreObserver(store, pipeline)

    assert observer.on_change() is True
    assert observer.last_id == 1
    assert [task.payload["body"] for task in sink.tasks] == ["rich"]

    assert observer.on_change() is False
    assert len(sink.tasks) == 1


def test_store_observer_skips_outgoing_rows(preferences, clock) -> None:
    """Rows that are not inbox messages are ignored."""

    store = FakeStore(
        [StoredSms(id=5, address="+1555", body="sent", date=1, type=SMS_TYPE_INBOX + 1, protocol="1")]
    )
    pipeline, sink = _pipeline(preferences, clock)
    assert MessageStoreObserver(store, pipeline).on_change() is False
    assert sink.tasks == []


def test_store_observer_processes_first_qualifying_row_only(preferences, clock) -> None:
    """Each change notification forwards at most one row."""

    store = FakeStore(
        [
            StoredSms(id=8, address="+1555", body="newest", date=800, protocol="1"),
            StoredSms(id=7, address="+1555", body="older", date=700, protocol="1"),
        ]
    )
    pipeline, sink = _pipeline(preferences, clock)
    observer = MessageStoreObserver(store, pipeline)

    observer.on_change()
    assert [task.payload["body"] for task in sink.tasks] == ["newest"]
    assert observer.last_id == 8


def test_store_observer_never_returns_to_handled_rows(preferences, clock) -> None:
    """Rows older than the newest handled one are not forwarded again."""

    store = FakeStore([StoredSms(id=1, address="+1666", body="rich", date=100, protocol="1")])
    pipeline, sink = _pipeline(preferences, clock)
    observer = MessageStoreObserver(store, pipeline)

    assert observer.on_change() is True
    store.rows.append(StoredSms(id=2, address="+1666", body="second", date=200, protocol="1"))
    assert observer.on_change() is True

    clock.advance(60)
    store.rows.append(StoredSms(id=3, address="+1555", body="plain", date=300, protocol="0"))
    assert observer.on_change() is False
    assert [task.payload["body"] for task in sink.tasks] == ["rich", "second"]
    assert observer.last_id == 2


def test_store_observer_survives_unreadable_store(preferences, clock) -> None:
    """A store read failure is logged and nothing is queued."""

    class BrokenStore(FakeStore):
        def recent_inbox(self, limit, *, since=None):
            raise RuntimeError("bridge down")

    pipeline, sink = _pipeline(preferences, clock)
    observer = MessageStoreObserver(BrokenStore(), pipeline)

    assert observer.on_change() is False
    assert observer.last_id is None
    assert sink.tasks == []


def test_broadcast_and_store_observer_forward_once(preferences, clock) -> None:
    """The same SMS seen by two producers yields exactly one task."""

    pipeline, sink = _pipeline(preferences, clock)
    store = FakeStore(
        [StoredSms(id=42, address="+15551234567", body="OTP 4821", date=NOW_MILLIS, protocol="1")]
    )
    receiver = SmsBroadcastReceiver(pipeline)
    observer = MessageStoreObserver(store, pipeline)

    receiver.on_receive(
        SMS_DELIVER_ACTION, [SmsFragment("+15551234567", "OTP 4821", NOW_MILLIS)]
    )
    observer.on_change()

    assert len(sink.tasks) == 1


def test_messaging_notification_detection() -> None:
    """Known packages, package hints and the message category qualify."""

    assert is_messaging_notification(PostedNotification("com.google.android.apps.messaging"))
    assert is_messaging_notification(PostedNotification("org.example.sms.app"))
    assert is_messaging_notification(PostedNotification("org.chat", category="msg"))
    assert not is_messaging_notification(PostedNotification("org.example.mail"))


def test_phone_number_helpers() -> None:
    """Titles holding numbers are reduced to dialable characters."""

    assert extract_phone_number("SMS +15551234567") == "+15551234567"
    assert extract_phone_number("+1 (555) 123-4567") == "+1 (555) 123-4567"
    assert extract_phone_number("Alice") == "Alice"
    assert is_phone_number("+15551234567")
    assert is_phone_number("5551234567")
    assert not is_phone_number("Alice")
    assert not is_phone_number("12345")
    assert not is_phone_number(None)


def test_notification_prefers_big_text_and_uses_now(preferences, clock) -> None:
    """Expanded text wins over the summary and the time is now."""

    pipeline, sink = _pipeline(preferences, clock)
    observer = NotificationObserver(pipeline, clock=clock)

    posted = PostedNotification(
        "com.samsung.android.messaging",
        title="+15551234567",
        text="short",
        big_text="the full message",
    )
    assert observer.on_notification_posted(posted) is True
    payload = sink.tasks[0].payload
    assert payload["body"] == "the full message"
    assert payload["sender"] == "+15551234567"
    assert payload["received_at"] == NOW_MILLIS


def test_notification_requires_title_and_body(preferences, clock) -> None:
    """Notifications missing a title or text are ignored."""

    pipeline, sink = _pipeline(preferences, clock)
    observer = NotificationObserver(pipeline, clock=clock)

    assert not observer.on_notification_posted(PostedNotification("sms", text="hi"))
    assert not observer.on_notification_posted(PostedNotification("sms", title="Bob", text=""))
    assert not observer.on_notification_posted(PostedNotification("mail", title="Bob", text="hi"))
    assert sink.tasks == []


def test_notification_resolves_contact_name_from_recent_inbox(preferences, clock) -> None:
    """A display name is replaced by the number of a matching recent row."""

    store = FakeStore(
        [
            StoredSms(id=1, address="+15557654321", body="  see you soon ", date=NOW_MILLIS - 5000),
            StoredSms(id=2, address="+15550000000", body="see you soon", date=NOW_MILLIS - 60_000),
        ]
    )
    pipeline, sink = _pipeline(preferences, clock)
    observer = NotificationObserver(pipeline, message_store=store, clock=clock)

    observer.on_notification_posted(
        PostedNotification("com.google.android.apps.messaging", title="Alice", text="see you soon")
    )

    assert sink.tasks[0].payload["sender"] == "+15557654321"
    assert store.queries == [(5, NOW_MILLIS - 30_000)]


def test_notification_keeps_display_name_when_unresolved(preferences, clock) -> None:
    """Unmatched display names are forwarded as-is."""

    pipeline, sink = _pipeline(preferences, clock)
    observer = NotificationObserver(pipeline, message_store=FakeStore(), clock=clock)
    observer.on_notification_posted(
        PostedNotification("com.google.android.apps.messaging", title="Alice", text="hey")
    )
    assert sink.tasks[0].payload["sender"] == "Alice"
