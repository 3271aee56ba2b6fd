"""Map asynchronous radio results onto message status reports."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum

from ..core.datetime_utils import Clock, now_millis, system_clock
from ..core.interfaces import TaskSink
from ..core.models import DeliveryTask, MessageState, MessageStatus, TaskKind
from ..core.preferences import GatewayPreferences

LOGGER = logging.getLogger(__name__)


class RadioResult(IntEnum):
    """Result codes reported by the platform for sent/delivered callbacks."""

    OK = -1
    CANCELED = 0
    GENERIC_FAILURE = 1
    RADIO_OFF = 2
    NULL_PDU = 3
    NO_SERVICE = 4
    LIMIT_EXCEEDED = 5
    SHORT_CODE_NOT_ALLOWED = 7
    SHORT_CODE_NEVER_ALLOWED = 8


class OutcomeType(StrEnum):
    SENT = "sent"
    DELIVERED = "delivered"


class FailureReason(StrEnum):
    GENERIC_FAILURE = "GENERIC_FAILURE"
    RADIO_OFF = "RADIO_OFF"
    NULL_PDU = "NULL_PDU"
    NO_SERVICE = "NO_SERVICE"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    SHORT_CODE_NOT_ALLOWED = "SHORT_CODE_NOT_ALLOWED"
    SHORT_CODE_NEVER_ALLOWED = "SHORT_CODE_NEVER_ALLOWED"
    UNKNOWN = "UNKNOWN"
    DELIVERY_CANCELED = "DELIVERY_CANCELED"
    UNKNOWN_DELIVERY = "UNKNOWN_DELIVERY"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    SENDING_EXCEPTION = "SENDING_EXCEPTION"


# The one table to extend when the platform adds result codes.
_FAILURE_TABLE: dict[tuple[OutcomeType, int], tuple[FailureReason, str]] = {
    (OutcomeType.SENT, RadioResult.GENERIC_FAILURE): (
        FailureReason.GENERIC_FAILURE,
        "Generic failure",
    ),
    (OutcomeType.SENT, RadioResult.RADIO_OFF): (FailureReason.RADIO_OFF, "Radio off"),
    (OutcomeType.SENT, RadioResult.NULL_PDU): (FailureReason.NULL_PDU, "Null PDU"),
    (OutcomeType.SENT, RadioResult.NO_SERVICE): (FailureReason.NO_SERVICE, "No service"),
    (OutcomeType.SENT, RadioResult.LIMIT_EXCEEDED): (
        FailureReason.LIMIT_EXCEEDED,
        "Sending limit exceeded",
    ),
    (OutcomeType.SENT, RadioResult.SHORT_CODE_NOT_ALLOWED): (
        FailureReason.SHORT_CODE_NOT_ALLOWED,
        "Short code not allowed",
    ),
    (OutcomeType.SENT, RadioResult.SHORT_CODE_NEVER_ALLOWED): (
        FailureReason.SHORT_CODE_NEVER_ALLOWED,
        "Short code never allowed",
    ),
    (OutcomeType.DELIVERED, RadioResult.CANCELED): (
        FailureReason.DELIVERY_CANCELED,
        "Delivery canceled",
    ),
}

_FALLBACK_REASONS: dict[OutcomeType, tuple[FailureReason, str]] = {
    OutcomeType.SENT: (FailureReason.UNKNOWN, "Unknown error"),
    OutcomeType.DELIVERED: (FailureReason.UNKNOWN_DELIVERY, "Unknown delivery error"),
}

_STATES: dict[OutcomeType, tuple[MessageState, MessageState]] = {
    OutcomeType.SENT: (MessageState.SENT, MessageState.FAILED),
    OutcomeType.DELIVERED: (MessageState.DELIVERED, MessageState.DELIVERY_FAILED),
}


@dataclass(slots=True, frozen=True)
class Classification:
    """Status a result code maps to, with the failure reason if any."""

    state: MessageState
    reason: FailureReason | None = None
    error_code: str | None = None
    error_message: str | None = None


def classify(outcome: OutcomeType, result_code: int) -> Classification:
    """Classify a sent or delivered result code."""
    ok_state, failed_state = _STATES[outcome]
    if result_code == RadioResult.OK:
        return Classification(state=ok_state)
    reason, message = _FAILURE_TABLE.get(
        (outcome, result_code), _FALLBACK_REASONS[outcome]
    )
    return Classification(
        state=failed_state,
        reason=reason,
        error_code=str(result_code),
        error_message=message,
    )


class StatusReporter:
    """Wrap statuses into status-update tasks stamped with device credentials."""

    def __init__(self, preferences: GatewayPreferences, sink: TaskSink) -> None:
        self._preferences = preferences
        self._sink = sink

    def report(self, status: MessageStatus) -> bool:
        """Queue ``status``. Returns ``False`` when credentials are missing."""
        credentials = self._preferences.credentials()
        if credentials is None:
            LOGGER.warning(
                "No device credentials; dropping %s for message %s",
                status.status.value,
                status.message_id,
            )
            return False
        device_id, api_key = credentials
        recipient = status.recipient or "-"
        self._sink.enqueue(
            DeliveryTask(
                kind=TaskKind.STATUS_UPDATE,
                payload=status.to_dict(),
                device_id=device_id,
                api_key=api_key,
                unique_name=(
                    f"sms_status_{status.message_id}_{recipient}_{status.status.value}"
                ),
            )
        )
        return True


class StatusCorrelator:
    """Turn per-segment radio callbacks into one status report each."""

    def __init__(self, reporter: StatusReporter, *, clock: Clock = system_clock) -> None:
        self._reporter = reporter
        self._clock = clock

    def on_sent_result(
        self,
        message_id: str,
        batch_id: str,
        result_code: int,
        *,
        recipient: str | None = None,
        segment_index: int | None = None,
    ) -> MessageStatus:
        return self._on_result(
            OutcomeType.SENT, message_id, batch_id, result_code, recipient, segment_index
        )

    def on_delivered_result(
        self,
        message_id: str,
        batch_id: str,
        result_code: int,
        *,
        recipient: str | None = None,
        segment_index: int | None = None,
    ) -> MessageStatus:
        return self._on_result(
            OutcomeType.DELIVERED,
            message_id,
            batch_id,
            result_code,
            recipient,
            segment_index,
        )

    def report_send_failure(
        self,
        message_id: str,
        batch_id: str,
        reason: FailureReason,
        error_message: str,
        *,
        recipient: str | None = None,
    ) -> MessageStatus:
        """Report a send that never reached the radio."""
        status = MessageStatus(
            message_id=message_id,
            batch_id=batch_id,
            status=MessageState.FAILED,
            timestamp=now_millis(self._clock),
            error_code=reason.value,
            error_message=error_message,
            recipient=recipient,
        )
        LOGGER.warning("Message %s to %s failed: %s", message_id, recipient, error_message)
        self._reporter.report(status)
        return status

    def _on_result(
        self,
        outcome: OutcomeType,
        message_id: str,
        batch_id: str,
        result_code: int,
        recipient: str | None,
        segment_index: int | None,
    ) -> MessageStatus:
        classification = classify(outcome, result_code)
        status = MessageStatus(
            message_id=message_id,
            batch_id=batch_id,
            status=classification.state,
            timestamp=now_millis(self._clock),
            error_code=classification.error_code,
            error_message=classification.error_message,
            recipient=recipient,
            segment_index=segment_index,
        )
        if classification.reason is None:
            LOGGER.info("Message %s segment %s %s", message_id, segment_index, outcome.value)
        else:
            LOGGER.warning(
                "Message %s segment %s %s: %s (code %s)",
                message_id,
                segment_index,
                classification.state.value,
                classification.error_message,
                result_code,
            )
        self._reporter.report(status)
        return status


PendingKey = tuple[str, str | None, int, OutcomeType]


@dataclass(slots=True)
class PendingResult:
    """Single-shot completion handle for one segment outcome."""

    correlator: StatusCorrelator
    message_id: str
    batch_id: str
    segment_index: int
    outcome: OutcomeType
    recipient: str | None = None
    on_done: Callable[[PendingResult], None] | None = field(default=None, repr=False)
    _done: bool = field(default=False, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    @property
    def key(self) -> PendingKey:
        return (self.message_id, self.recipient, self.segment_index, self.outcome)

    @property
    def done(self) -> bool:
        return self._done

    def context(self) -> dict[str, object]:
        """Return the correlation fields an adapter echoes back with the result."""
        return {
            "messageId": self.message_id,
            "batchId": self.batch_id,
            "recipient": self.recipient,
            "segmentIndex": self.segment_index,
            "outcome": self.outcome.value,
        }

    def complete(self, result_code: int) -> bool:
        """Deliver the radio result; later calls are ignored."""
        with self._lock:
            if self._done:
                LOGGER.warning("Ignoring repeated %s result for %s", self.outcome.value, self.key)
                return False
            self._done = True
        if self.on_done is not None:
            self.on_done(self)
        if self.outcome is OutcomeType.SENT:
            self.correlator.on_sent_result(
                self.message_id,
                self.batch_id,
                result_code,
                recipient=self.recipient,
                segment_index=self.segment_index,
            )
        else:
            self.correlator.on_delivered_result(
                self.message_id,
                self.batch_id,
                result_code,
                recipient=self.recipient,
                segment_index=self.segment_index,
            )
        return True


class PendingResultRegistry:
    """Outstanding completion handles, addressable by key.

    Adapters that receive results out of process (over HTTP) look the
    handle up here instead of holding a reference to it.
    """

    def __init__(self) -> None:
        self._pending: dict[PendingKey, PendingResult] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def register(self, hook: PendingResult) -> PendingResult:
        hook.on_done = self.discard
        with self._lock:
            self._pending[hook.key] = hook
        return hook

    def discard(self, hook: PendingResult) -> None:
        with self._lock:
            if self._pending.get(hook.key) is hook:
                del self._pending[hook.key]

    def complete(
        self,
        message_id: str,
        segment_index: int,
        outcome: OutcomeType,
        result_code: int,
        *,
        recipient: str | None = None,
    ) -> bool:
        """Complete a registered handle. Returns ``False`` if none is pending."""
        key: PendingKey = (message_id, recipient, segment_index, outcome)
        with self._lock:
            hook = self._pending.pop(key, None)
        if hook is None:
            LOGGER.warning("No pending %s result for %s", outcome.value, key)
            return False
        return hook.complete(result_code)


__all__ = [
    "Classification",
    "FailureReason",
    "OutcomeType",
    "PendingResult",
    "PendingResultRegistry",
    "RadioResult",
    "StatusCorrelator",
    "StatusReporter",
    "classify",
]
