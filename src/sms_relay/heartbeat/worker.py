"""The heartbeat task body executed by the delivery queue."""

from __future__ import annotations

import logging

from ..core.interfaces import GatewayApi, GatewayError, TelemetryProvider
from ..core.models import DeliveryOutcome, HeartbeatResponse
from ..core.preferences import HEARTBEAT_INTERVAL_MINUTES, GatewayPreferences
from .scheduler import HeartbeatScheduler

LOGGER = logging.getLogger(__name__)


class HeartbeatWorker:
    """Send one heartbeat when eligible; otherwise succeed without a call."""

    def __init__(
        self,
        preferences: GatewayPreferences,
        gateway: GatewayApi,
        telemetry: TelemetryProvider,
        scheduler: HeartbeatScheduler,
    ) -> None:
        self._preferences = preferences
        self._gateway = gateway
        self._telemetry = telemetry
        self._scheduler = scheduler
        self.last_response: HeartbeatResponse | None = None

    def __call__(self) -> DeliveryOutcome:
        return self.run()

    def run(self) -> DeliveryOutcome:
        if not self._scheduler.is_eligible():
            LOGGER.debug("Heartbeat not eligible; skipping")
            return DeliveryOutcome.SUCCESS
        credentials = self._preferences.credentials()
        if credentials is None:
            LOGGER.debug("Heartbeat skipped: no API key")
            return DeliveryOutcome.SUCCESS

        snapshot = self._telemetry.collect()
        snapshot.receive_sms_enabled = self._preferences.receive_sms_enabled
        snapshot.push_token = self._preferences.push_token

        device_id, api_key = credentials
        try:
            response = self._gateway.heartbeat(device_id, api_key, snapshot)
        except GatewayError as exc:
            LOGGER.warning("Heartbeat failed: %s", exc)
            return DeliveryOutcome.RETRYABLE_FAILURE

        self.last_response = response
        LOGGER.info("Heartbeat sent (network=%s)", snapshot.network_type)
        self._apply(response)
        return DeliveryOutcome.SUCCESS

    def _apply(self, response: HeartbeatResponse) -> None:
        minutes = response.heartbeat_interval_minutes
        if minutes is None:
            return
        if self._preferences.get_string(HEARTBEAT_INTERVAL_MINUTES) == str(minutes):
            return
        self._preferences.set_heartbeat_interval_minutes(minutes)
        effective = self._scheduler.schedule(minutes)
        LOGGER.info("Gateway set heartbeat interval to %d min", effective)


__all__ = ["HeartbeatWorker"]
