"""Durable delivery of inbound messages and status updates."""

from .executors import InboundForwardExecutor, StatusUpdateExecutor
from .queue import DeliveryQueue, PeriodicRunner, TaskExecutor

__all__ = [
    "DeliveryQueue",
    "InboundForwardExecutor",
    "PeriodicRunner",
    "StatusUpdateExecutor",
    "TaskExecutor",
]
