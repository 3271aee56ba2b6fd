"""Queue executors that call the gateway for each task kind."""

from __future__ import annotations

import logging

from ..core.interfaces import GatewayApi, GatewayError
from ..core.models import DeliveryOutcome, DeliveryTask, InboundMessage, MessageStatus

LOGGER = logging.getLogger(__name__)


def _has_credentials(task: DeliveryTask) -> bool:
    if task.device_id and task.api_key:
        return True
    LOGGER.error("Task %s has no credentials; dropping", task.id)
    return False


class InboundForwardExecutor:
    """Forward a received SMS to the gateway."""

    def __init__(self, gateway: GatewayApi) -> None:
        self._gateway = gateway

    def execute(self, task: DeliveryTask) -> DeliveryOutcome:
        if not _has_credentials(task):
            return DeliveryOutcome.TERMINAL_FAILURE
        try:
            message = InboundMessage.from_dict(task.payload)
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.error("Task %s has an unreadable inbound payload: %s", task.id, exc)
            return DeliveryOutcome.TERMINAL_FAILURE
        try:
            self._gateway.forward_inbound(task.device_id, task.api_key, message)
        except GatewayError as exc:
            LOGGER.warning("Forwarding task %s failed: %s", task.id, exc)
            return DeliveryOutcome.RETRYABLE_FAILURE
        return DeliveryOutcome.SUCCESS


class StatusUpdateExecutor:
    """Report an outbound message status transition to the gateway."""

    def __init__(self, gateway: GatewayApi) -> None:
        self._gateway = gateway

    def execute(self, task: DeliveryTask) -> DeliveryOutcome:
        if not _has_credentials(task):
            return DeliveryOutcome.TERMINAL_FAILURE
        try:
            status = MessageStatus.from_dict(task.payload)
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.error("Task %s has an unreadable status payload: %s", task.id, exc)
            return DeliveryOutcome.TERMINAL_FAILURE
        try:
            self._gateway.update_status(task.device_id, task.api_key, status)
        except GatewayError as exc:
            LOGGER.warning("Status task %s failed: %s", task.id, exc)
            return DeliveryOutcome.RETRYABLE_FAILURE
        return DeliveryOutcome.SUCCESS


__all__ = ["InboundForwardExecutor", "StatusUpdateExecutor"]
