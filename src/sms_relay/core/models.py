"""Core domain models used across the relay."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

# Message store ``type`` column value for received messages.
SMS_TYPE_INBOX = 1


class MessageState(StrEnum):
    """Status transitions reported to the gateway for outbound messages."""

    SENT = "SENT"
    FAILED = "FAILED"
    DELIVERED = "DELIVERED"
    DELIVERY_FAILED = "DELIVERY_FAILED"


class TaskKind(StrEnum):
    """Kinds of work handled by the delivery queue."""

    INBOUND_FORWARD = "inbound_forward"
    STATUS_UPDATE = "status_update"
    HEARTBEAT = "heartbeat"


class DeliveryOutcome(StrEnum):
    """Result of executing one delivery task attempt."""

    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"


class IngestionSource(StrEnum):
    """Channel through which a candidate inbound message was observed."""

    BROADCAST = "broadcast"
    STORE_OBSERVER = "store_observer"
    NOTIFICATION = "notification"


@dataclass(slots=True, frozen=True)
class InboundMessage:
    """A received SMS ready to be forwarded to the gateway."""

    sender: str | None
    body: str
    received_at: int
    fingerprint: str

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-serialisable task payload."""
        return {
            "sender": self.sender,
            "body": self.body,
            "received_at": self.received_at,
            "fingerprint": self.fingerprint,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InboundMessage:
        """Rebuild a message from :meth:`to_dict` output."""
        return cls(
            sender=data.get("sender"),
            body=data.get("body") or "",
            received_at=int(data["received_at"]),
            fingerprint=str(data["fingerprint"]),
        )


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True, frozen=True)
class MessageStatus:
    """One status transition of an outbound message."""

    message_id: str
    batch_id: str
    status: MessageState
    timestamp: int
    error_code: str | None = None
    error_message: str | None = None
    recipient: str | None = None
    segment_index: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-serialisable task payload."""
        return {
            "message_id": self.message_id,
            "batch_id": self.batch_id,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "recipient": self.recipient,
            "segment_index": self.segment_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessageStatus:
        """Rebuild a status from :meth:`to_dict` output."""
        return cls(
            message_id=str(data["message_id"]),
            batch_id=str(data["batch_id"]),
            status=MessageState(data["status"]),
            timestamp=int(data["timestamp"]),
            error_code=data.get("error_code"),
            error_message=data.get("error_message"),
            recipient=data.get("recipient"),
            segment_index=data.get("segment_index"),
        )


@dataclass(slots=True, frozen=True)
class OutboundRequest:
    """A gateway-originated instruction to send one body to recipients."""

    recipients: tuple[str, ...]
    body: str
    message_id: str
    batch_id: str
    sim_subscription_id: int | None = None

    def __post_init__(self) -> None:
        if not self.recipients:
            raise ValueError("OutboundRequest requires at least one recipient")


@dataclass(slots=True)
class DeliveryTask:
    """Durable unit of work executed by the delivery queue."""

    kind: TaskKind
    payload: dict[str, Any]
    device_id: str
    api_key: str
    retry_count: int = 0
    unique_name: str | None = None
    id: int | None = None
    next_attempt_at: float = 0.0
    created_at: float = 0.0


@dataclass(slots=True)
class PeriodicWork:
    """Recurring unique work registered with the delivery queue."""

    name: str
    kind: TaskKind
    interval_seconds: float
    next_run_at: float
    attempt: int = 0


@dataclass(slots=True, frozen=True)
class StoredSms:
    """Row returned by the device message store."""

    id: int
    address: str | None
    body: str | None
    date: int
    type: int = SMS_TYPE_INBOX
    protocol: str | None = None


@dataclass(slots=True, frozen=True)
class SimInfo:
    """One active SIM subscription."""

    subscription_id: int
    slot_index: int | None = None
    carrier_name: str | None = None
    display_name: str | None = None
    phone_number: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase representation sent to the gateway."""
        return {
            "subscriptionId": self.subscription_id,
            "slotIndex": self.slot_index,
            "carrierName": self.carrier_name,
            "displayName": self.display_name,
            "phoneNumber": self.phone_number,
        }


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class HeartbeatSnapshot:
    """Device telemetry gathered for one heartbeat."""

    battery_percentage: int | None = None
    is_charging: bool | None = None
    network_type: str = "none"
    app_version_name: str | None = None
    app_version_code: int | None = None
    device_uptime_millis: int | None = None
    memory_free_bytes: int | None = None
    memory_total_bytes: int | None = None
    memory_max_bytes: int | None = None
    storage_available_bytes: int | None = None
    storage_total_bytes: int | None = None
    timezone: str | None = None
    locale: str | None = None
    receive_sms_enabled: bool = False
    push_token: str | None = None
    sims: tuple[SimInfo, ...] = ()
    sims_updated_at: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase heartbeat body, omitting unknown values."""
        payload: dict[str, Any] = {
            "fcmToken": self.push_token,
            "batteryPercentage": self.battery_percentage,
            "isCharging": self.is_charging,
            "networkType": self.network_type,
            "appVersionName": self.app_version_name,
            "appVersionCode": self.app_version_code,
            "deviceUptimeMillis": self.device_uptime_millis,
            "memoryFreeBytes": self.memory_free_bytes,
            "memoryTotalBytes": self.memory_total_bytes,
            "memoryMaxBytes": self.memory_max_bytes,
            "storageAvailableBytes": self.storage_available_bytes,
            "storageTotalBytes": self.storage_total_bytes,
            "timezone": self.timezone,
            "locale": self.locale,
            "receiveSMSEnabled": self.receive_sms_enabled,
        }
        if self.sims:
            payload["simInfo"] = {
                "lastUpdated": self.sims_updated_at,
                "sims": [sim.to_payload() for sim in self.sims],
            }
        payload.update(self.extra)
        return {key: value for key, value in payload.items() if value is not None}


@dataclass(slots=True, frozen=True)
class HeartbeatResponse:
    """Settings returned by the gateway in reply to a heartbeat."""

    fcm_token_updated: bool = False
    heartbeat_interval_minutes: int | None = None


__all__ = [
    "DeliveryOutcome",
    "DeliveryTask",
    "HeartbeatResponse",
    "HeartbeatSnapshot",
    "InboundMessage",
    "IngestionSource",
    "MessageState",
    "MessageStatus",
    "OutboundRequest",
    "PeriodicWork",
    "SMS_TYPE_INBOX",
    "SimInfo",
    "StoredSms",
    "TaskKind",
]
