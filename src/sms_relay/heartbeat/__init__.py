"""Periodic liveness and telemetry reporting."""

from .scheduler import UNIQUE_WORK_NAME, HeartbeatScheduler
from .telemetry import PsutilTelemetryProvider
from .worker import HeartbeatWorker

__all__ = [
    "HeartbeatScheduler",
    "HeartbeatWorker",
    "PsutilTelemetryProvider",
    "UNIQUE_WORK_NAME",
]
