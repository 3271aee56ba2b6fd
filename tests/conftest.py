"""Shared fakes for relay tests."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from sms_relay.core.config import QueueSettings, StorageSettings
from sms_relay.core.interfaces import GatewayError
from sms_relay.core.models import (
    DeliveryTask,
    HeartbeatResponse,
    HeartbeatSnapshot,
    InboundMessage,
    MessageStatus,
)
from sms_relay.core.preferences import (
    API_KEY,
    DEVICE_ID,
    GATEWAY_ENABLED,
    RECEIVE_SMS_ENABLED,
    GatewayPreferences,
)
from sms_relay.delivery import DeliveryQueue
from sms_relay.storage import SqliteRelayRepository

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class DictSettingsStore:
    """In-memory settings store."""

    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values = dict(values or {})

    def get(self, key: str) -> str | None:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def delete(self, key: str) -> bool:
        return self.values.pop(key, None) is not None

    def all(self) -> dict[str, str]:
        return dict(self.values)


class RecordingSink:
    """Task sink that keeps submitted tasks in memory."""

    def __init__(self) -> None:
        self.tasks: list[DeliveryTask] = []

    def enqueue(self, task: DeliveryTask) -> None:
        self.tasks.append(task)


class ToggleConnectivity:
    def __init__(self, connected: bool = True) -> None:
        self.connected = connected

    def is_connected(self) -> bool:
        return self.connected


class RecordingGateway:
    """Gateway double that records calls and can fail on demand."""

    def __init__(self) -> None:
        self.inbound: list[InboundMessage] = []
        self.statuses: list[MessageStatus] = []
        self.heartbeats: list[HeartbeatSnapshot] = []
        self.fail = False
        self.heartbeat_response = HeartbeatResponse()

    def forward_inbound(self, device_id: str, api_key: str, message: InboundMessage) -> None:
        if self.fail:
            raise GatewayError("boom", status_code=503)
        self.inbound.append(message)

    def update_status(self, device_id: str, api_key: str, status: MessageStatus) -> None:
        if self.fail:
            raise GatewayError("boom", status_code=503)
        self.statuses.append(status)

    def heartbeat(
        self, device_id: str, api_key: str, snapshot: HeartbeatSnapshot
    ) -> HeartbeatResponse:
        if self.fail:
            raise GatewayError("boom")
        self.heartbeats.append(snapshot)
        return self.heartbeat_response


class StaticTelemetry:
    def collect(self) -> HeartbeatSnapshot:
        return HeartbeatSnapshot(battery_percentage=80, network_type="wifi")


class FakeStore:
    """Message store returning canned rows."""

    def __init__(self, rows: Sequence = ()) -> None:
        self.rows = list(rows)
        self.inserted: list[tuple[str | None, str, int]] = []
        self.queries: list[tuple[int, int | None]] = []

    def recent_inbox(self, limit: int, *, since: int | None = None):
        self.queries.append((limit, since))
        rows = [row for row in self.rows if since is None or row.date > since]
        return sorted(rows, key=lambda row: row.date, reverse=True)[:limit]

    def insert_inbox(self, sender: str | None, body: str, received_at: int) -> None:
        self.inserted.append((sender, body, received_at))


def configured_store(**extra: str) -> DictSettingsStore:
    values = {
        DEVICE_ID: "device-1",
        API_KEY: "key-123",
        GATEWAY_ENABLED: "true",
        RECEIVE_SMS_ENABLED: "true",
    }
    values.update(extra)
    return DictSettingsStore(values)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def preferences() -> GatewayPreferences:
    """Preferences for a registered device with receiving enabled."""
    return GatewayPreferences(configured_store())


@pytest.fixture()
def repository(tmp_path: Path):
    repo = SqliteRelayRepository(StorageSettings(db_path=tmp_path / "relay.db"))
    yield repo
    repo.close()


@pytest.fixture()
def connectivity() -> ToggleConnectivity:
    return ToggleConnectivity(True)


@pytest.fixture()
def queue(repository, connectivity, clock) -> DeliveryQueue:
    return DeliveryQueue(repository, connectivity, QueueSettings(), clock=clock)
