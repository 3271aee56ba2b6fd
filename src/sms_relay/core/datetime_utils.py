"""Time helpers shared across the relay.

Timestamps exchanged with the gateway are epoch milliseconds. Components
that depend on the current time accept a ``Clock`` so tests can drive it.
"""

from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], float]
"""Callable returning the current time in epoch seconds."""

__all__ = [
    "Clock",
    "now_millis",
    "system_clock",
    "to_millis",
]


def system_clock() -> float:
    """Return the wall clock time in epoch seconds."""
    return time.time()


def to_millis(seconds: float) -> int:
    """Convert epoch seconds into integer epoch milliseconds."""
    return int(seconds * 1000)


def now_millis(clock: Clock = system_clock) -> int:
    """Return ``clock()`` expressed in epoch milliseconds."""
    return to_millis(clock())
