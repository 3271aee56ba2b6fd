"""Protocol interfaces for decoupling relay components from the platform."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from .models import (
    DeliveryTask,
    HeartbeatResponse,
    HeartbeatSnapshot,
    InboundMessage,
    MessageStatus,
    PeriodicWork,
    SimInfo,
    StoredSms,
)


class GatewayError(RuntimeError):
    """Raised when a gateway API call fails or returns a non-2xx response."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SettingsStore(Protocol):
    """Key-value store holding device-scoped settings."""

    def get(self, key: str) -> str | None:
        """Return the stored value for ``key`` or ``None``."""
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns ``True`` if something was deleted."""
        raise NotImplementedError

    def all(self) -> dict[str, str]:
        """Return every stored key and value."""
        raise NotImplementedError


class CompletionHook(Protocol):
    """Single-shot handle the platform fulfils with a radio result code."""

    def complete(self, result_code: int) -> bool:
        """Deliver the result. Returns ``False`` when already completed."""
        raise NotImplementedError

    def context(self) -> dict[str, object]:
        """Return the correlation fields echoed back with the result."""
        raise NotImplementedError


class SmsTransport(Protocol):
    """Send capability exposed by the platform radio."""

    def has_send_permission(self) -> bool:
        """Return ``True`` when the platform allows sending SMS."""
        raise NotImplementedError

    def supports_subscription_selection(self) -> bool:
        """Return ``True`` when sending through a specific SIM is possible."""
        raise NotImplementedError

    def send_segments(
        self,
        recipient: str,
        segments: Sequence[str],
        on_sent: Sequence[CompletionHook],
        on_delivered: Sequence[CompletionHook],
        subscription_id: int | None = None,
    ) -> bool:
        """Start sending ``segments``; hooks fire once per segment per outcome."""
        raise NotImplementedError

    def list_subscriptions(self) -> Sequence[SimInfo]:
        """Return the active SIM subscriptions."""
        raise NotImplementedError


class MessageStore(Protocol):
    """Device message store queried by the ingestion observers."""

    def recent_inbox(
        self, limit: int, *, since: int | None = None
    ) -> Sequence[StoredSms]:
        """Return the newest inbox rows first, optionally newer than ``since``."""
        raise NotImplementedError

    def insert_inbox(self, sender: str | None, body: str, received_at: int) -> None:
        """Record a received message in the store."""
        raise NotImplementedError


class ConnectivityMonitor(Protocol):
    """Reports whether the network is usable for gateway calls."""

    def is_connected(self) -> bool:
        """Return ``True`` when network calls may be attempted."""
        raise NotImplementedError


class GatewayApi(Protocol):
    """Backend calls made by queue executors and the heartbeat."""

    def forward_inbound(
        self, device_id: str, api_key: str, message: InboundMessage
    ) -> None:
        """Submit a received SMS to the gateway."""
        raise NotImplementedError

    def update_status(
        self, device_id: str, api_key: str, status: MessageStatus
    ) -> None:
        """Report an outbound message status transition."""
        raise NotImplementedError

    def heartbeat(
        self, device_id: str, api_key: str, snapshot: HeartbeatSnapshot
    ) -> HeartbeatResponse:
        """Send a liveness report and return server-provided settings."""
        raise NotImplementedError


class TaskSink(Protocol):
    """Anything that accepts delivery tasks for asynchronous execution."""

    def enqueue(self, task: DeliveryTask) -> None:
        """Submit ``task``; must return without waiting for execution."""
        raise NotImplementedError


class TaskRepository(Protocol):
    """Durable storage backing the delivery queue."""

    def insert_task(self, task: DeliveryTask, *, replace_pending: bool) -> int:
        """Persist ``task``; replace a pending task of the same unique name."""
        raise NotImplementedError

    def claim_next_due(self, now: float) -> DeliveryTask | None:
        """Atomically mark the oldest due pending task as running."""
        raise NotImplementedError

    def complete_task(self, task_id: int) -> None:
        """Remove a finished task."""
        raise NotImplementedError

    def reschedule_task(
        self, task_id: int, retry_count: int, next_attempt_at: float
    ) -> None:
        """Return a running task to pending with a new schedule."""
        raise NotImplementedError

    def release_stale_claims(self) -> int:
        """Return running tasks left by a previous process to pending."""
        raise NotImplementedError

    def count_pending(self) -> int:
        """Return the number of queued tasks."""
        raise NotImplementedError

    def next_due_at(self) -> float | None:
        """Return the earliest ``next_attempt_at`` among pending tasks."""
        raise NotImplementedError

    def list_tasks(self, limit: int) -> list[DeliveryTask]:
        """Return queued tasks ordered by schedule."""
        raise NotImplementedError

    def upsert_periodic(self, work: PeriodicWork) -> None:
        """Create or replace periodic work by name."""
        raise NotImplementedError

    def get_periodic(self, name: str) -> PeriodicWork | None:
        """Return periodic work by name."""
        raise NotImplementedError

    def delete_periodic(self, name: str) -> bool:
        """Remove periodic work by name."""
        raise NotImplementedError

    def list_periodic(self) -> list[PeriodicWork]:
        """Return all periodic work."""
        raise NotImplementedError


class TelemetryProvider(Protocol):
    """Source of device telemetry for heartbeats."""

    def collect(self) -> HeartbeatSnapshot:
        """Gather a fresh snapshot."""
        raise NotImplementedError


__all__ = [
    "CompletionHook",
    "ConnectivityMonitor",
    "GatewayApi",
    "GatewayError",
    "MessageStore",
    "SettingsStore",
    "SmsTransport",
    "TaskRepository",
    "TaskSink",
    "TelemetryProvider",
]
