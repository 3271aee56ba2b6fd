"""Eligibility-gated scheduling of the periodic heartbeat."""

from __future__ import annotations

import logging

from ..core.config import HeartbeatSettings
from ..core.models import TaskKind
from ..core.preferences import GatewayPreferences
from ..delivery.queue import DeliveryQueue

LOGGER = logging.getLogger(__name__)

UNIQUE_WORK_NAME = "heartbeat_unique_work"


class HeartbeatScheduler:
    """Install, replace and cancel the single heartbeat periodic work."""

    def __init__(
        self,
        queue: DeliveryQueue,
        preferences: GatewayPreferences,
        settings: HeartbeatSettings | None = None,
    ) -> None:
        self._queue = queue
        self._preferences = preferences
        self._settings = settings or HeartbeatSettings()

    def is_eligible(self) -> bool:
        """Registered, gateway enabled and heartbeat enabled (default on)."""
        return (
            bool(self._preferences.device_id)
            and self._preferences.gateway_enabled
            and self._preferences.heartbeat_enabled
        )

    def effective_interval(self, interval_minutes: int | None = None) -> int:
        """Return the interval actually used, never below the minimum."""
        if interval_minutes is None:
            interval_minutes = self._preferences.heartbeat_interval_minutes(
                self._settings.default_interval_minutes
            )
        if interval_minutes < self._settings.min_interval_minutes:
            LOGGER.info(
                "Heartbeat interval %d min raised to the %d min minimum",
                interval_minutes,
                self._settings.min_interval_minutes,
            )
            return self._settings.min_interval_minutes
        return interval_minutes

    def schedule(self, interval_minutes: int | None = None, *, immediate: bool = False) -> int:
        """Replace any existing heartbeat with one at the effective interval.

        With ``immediate`` the first run is due now instead of one
        interval out.
        """
        minutes = self.effective_interval(interval_minutes)
        self._queue.enqueue_unique_periodic(
            UNIQUE_WORK_NAME,
            TaskKind.HEARTBEAT,
            minutes * 60,
            initial_delay_seconds=0 if immediate else None,
        )
        return minutes

    def cancel(self) -> bool:
        return self._queue.cancel_unique_work(UNIQUE_WORK_NAME)

    def sync(self) -> bool:
        """Schedule when eligible, cancel otherwise. Returns the new state.

        An installed heartbeat at the current interval keeps its next run,
        so restarts do not keep pushing it out.
        """
        if not self.is_eligible():
            self.cancel()
            return False
        minutes = self.effective_interval()
        existing = self._queue.get_periodic(UNIQUE_WORK_NAME)
        if existing is not None and existing.interval_seconds == minutes * 60:
            LOGGER.debug("Heartbeat already due at %.0f", existing.next_run_at)
            return True
        self.schedule(minutes, immediate=existing is None)
        return True


__all__ = ["HeartbeatScheduler", "UNIQUE_WORK_NAME"]
