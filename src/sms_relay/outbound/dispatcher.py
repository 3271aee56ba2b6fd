"""Send gateway-requested messages through the radio."""

from __future__ import annotations

import logging

from ..core.interfaces import SmsTransport
from ..core.models import OutboundRequest
from ..core.preferences import DEFAULT_SIM, GatewayPreferences
from .correlator import (
    FailureReason,
    OutcomeType,
    PendingResult,
    PendingResultRegistry,
    StatusCorrelator,
)
from .segments import split_message

LOGGER = logging.getLogger(__name__)

PERMISSION_DENIED_MESSAGE = "SMS permission not granted"


class OutboundDispatcher:
    """Start one send per recipient and hand completion to the correlator.

    ``send`` returns as soon as each send is initiated. Radio outcomes
    arrive later through the ``PendingResult`` handles given to the
    transport.
    """

    def __init__(
        self,
        transport: SmsTransport,
        correlator: StatusCorrelator,
        preferences: GatewayPreferences,
        *,
        registry: PendingResultRegistry | None = None,
    ) -> None:
        self._transport = transport
        self._correlator = correlator
        self._preferences = preferences
        self._registry = registry if registry is not None else PendingResultRegistry()

    @property
    def registry(self) -> PendingResultRegistry:
        return self._registry

    def select_subscription(self, request: OutboundRequest) -> int | None:
        """Return the SIM subscription to send with, ``None`` for the default."""
        requested = request.sim_subscription_id
        if requested is None or requested == DEFAULT_SIM:
            requested = self._preferences.preferred_sim
        if requested is None:
            return None
        try:
            supported = self._transport.supports_subscription_selection()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Could not query SIM selection support: %s", exc)
            supported = False
        if not supported:
            LOGGER.warning(
                "SIM selection unsupported; sending %s on the default channel",
                request.message_id,
            )
            return None
        return requested

    def send(self, request: OutboundRequest) -> dict[str, bool]:
        """Initiate the send for every recipient.

        Returns whether each recipient's send was started. Failures to
        start are reported as FAILED statuses before returning.
        """
        subscription_id = self.select_subscription(request)
        segments = split_message(request.body)
        LOGGER.info(
            "Sending message %s (batch %s) to %d recipient(s) in %d segment(s)",
            request.message_id,
            request.batch_id,
            len(request.recipients),
            len(segments),
        )
        return {
            recipient: self._send_one(request, recipient, segments, subscription_id)
            for recipient in request.recipients
        }

    def _send_one(
        self,
        request: OutboundRequest,
        recipient: str,
        segments: list[str],
        subscription_id: int | None,
    ) -> bool:
        try:
            permitted = self._transport.has_send_permission()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning("Could not check send permission: %s", exc)
            self._correlator.report_send_failure(
                request.message_id,
                request.batch_id,
                FailureReason.SENDING_EXCEPTION,
                str(exc) or exc.__class__.__name__,
                recipient=recipient,
            )
            return False
        if not permitted:
            self._correlator.report_send_failure(
                request.message_id,
                request.batch_id,
                FailureReason.PERMISSION_DENIED,
                PERMISSION_DENIED_MESSAGE,
                recipient=recipient,
            )
            return False

        on_sent = self._register(request, recipient, len(segments), OutcomeType.SENT)
        on_delivered = self._register(
            request, recipient, len(segments), OutcomeType.DELIVERED
        )
        try:
            initiated = self._transport.send_segments(
                recipient, segments, on_sent, on_delivered, subscription_id
            )
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Transport raised while sending %s", request.message_id)
            self._discard(on_sent + on_delivered)
            self._correlator.report_send_failure(
                request.message_id,
                request.batch_id,
                FailureReason.SENDING_EXCEPTION,
                str(exc) or exc.__class__.__name__,
                recipient=recipient,
            )
            return False

        if not initiated:
            self._discard(on_sent + on_delivered)
            self._correlator.report_send_failure(
                request.message_id,
                request.batch_id,
                FailureReason.SENDING_EXCEPTION,
                "Transport did not accept the message",
                recipient=recipient,
            )
            return False
        return True

    def _register(
        self,
        request: OutboundRequest,
        recipient: str,
        count: int,
        outcome: OutcomeType,
    ) -> list[PendingResult]:
        return [
            self._registry.register(
                PendingResult(
                    correlator=self._correlator,
                    message_id=request.message_id,
                    batch_id=request.batch_id,
                    segment_index=index,
                    outcome=outcome,
                    recipient=recipient,
                )
            )
            for index in range(count)
        ]

    def _discard(self, hooks: list[PendingResult]) -> None:
        for hook in hooks:
            self._registry.discard(hook)


__all__ = ["OutboundDispatcher", "PERMISSION_DENIED_MESSAGE"]
