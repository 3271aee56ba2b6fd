"""Shared path from a candidate inbound SMS to a queued forward task."""

from __future__ import annotations

import logging
import uuid

from ..core.datetime_utils import Clock, now_millis, system_clock
from ..core.interfaces import TaskSink
from ..core.models import DeliveryTask, InboundMessage, IngestionSource, TaskKind
from ..core.preferences import GatewayPreferences
from ..filtering import FilterEngine
from .dedup import FingerprintCache, compute_fingerprint

LOGGER = logging.getLogger(__name__)


class InboundPipeline:
    """Gate, deduplicate, filter and enqueue candidate messages.

    All ingestion sources share one pipeline instance, and therefore one
    fingerprint cache.
    """

    def __init__(
        self,
        preferences: GatewayPreferences,
        cache: FingerprintCache,
        filter_engine: FilterEngine,
        sink: TaskSink,
        *,
        clock: Clock = system_clock,
    ) -> None:
        self._preferences = preferences
        self._cache = cache
        self._filter_engine = filter_engine
        self._sink = sink
        self._clock = clock

    def is_receiving(self) -> bool:
        """Return ``True`` when inbound forwarding is configured and enabled."""
        return (
            self._preferences.receive_sms_enabled
            and self._preferences.credentials() is not None
        )

    def on_candidate_message(
        self,
        sender: str | None,
        body: str | None,
        received_at: int | None = None,
        *,
        source: IngestionSource | str = "unknown",
    ) -> bool:
        """Process one observed message. Returns ``True`` if a task was queued."""
        credentials = self._preferences.credentials()
        if credentials is None or not self._preferences.receive_sms_enabled:
            LOGGER.debug("Receiving disabled or unconfigured; ignoring %s message", source)
            return False

        timestamp = received_at if received_at is not None else now_millis(self._clock)
        fingerprint = compute_fingerprint(sender, body, timestamp)
        if not self._cache.should_process(fingerprint):
            LOGGER.info("Skipping duplicate message from %s via %s", sender, source)
            return False

        if not self._filter_engine.should_process(sender, body):
            LOGGER.info("Message from %s blocked by filter rules", sender)
            return False

        message = InboundMessage(
            sender=sender,
            body=body or "",
            received_at=timestamp,
            fingerprint=fingerprint,
        )
        device_id, api_key = credentials
        self._sink.enqueue(
            DeliveryTask(
                kind=TaskKind.INBOUND_FORWARD,
                payload=message.to_dict(),
                device_id=device_id,
                api_key=api_key,
                unique_name=f"sms_received_{uuid.uuid4().hex}",
            )
        )
        LOGGER.info("Queued inbound message from %s via %s", sender, source)
        return True


__all__ = ["InboundPipeline"]
