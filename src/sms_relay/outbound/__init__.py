"""Outbound sending and status correlation."""

from .correlator import (
    FailureReason,
    OutcomeType,
    PendingResult,
    PendingResultRegistry,
    RadioResult,
    StatusCorrelator,
    StatusReporter,
    classify,
)
from .dispatcher import OutboundDispatcher
from .segments import split_message

__all__ = [
    "FailureReason",
    "OutboundDispatcher",
    "OutcomeType",
    "PendingResult",
    "PendingResultRegistry",
    "RadioResult",
    "StatusCorrelator",
    "StatusReporter",
    "classify",
    "split_message",
]
