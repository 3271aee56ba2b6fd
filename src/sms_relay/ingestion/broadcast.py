"""Producer for messages delivered by the radio broadcast."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from ..core.interfaces import MessageStore
from ..core.models import IngestionSource
from .pipeline import InboundPipeline

LOGGER = logging.getLogger(__name__)

SMS_DELIVER_ACTION = "android.provider.Telephony.SMS_DELIVER"


@dataclass(slots=True, frozen=True)
class SmsFragment:
    """One PDU of a possibly multi-part SMS."""

    originating_address: str | None
    body: str | None
    timestamp: int


class SmsBroadcastReceiver:
    """Reassemble delivered fragments into one candidate message.

    When a message store is supplied the reassembled message is also
    written to the inbox, as the default messaging app would.
    """

    def __init__(
        self,
        pipeline: InboundPipeline,
        *,
        message_store: MessageStore | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._message_store = message_store

    def on_receive(self, action: str, fragments: Sequence[SmsFragment]) -> bool:
        """Handle one broadcast. Returns ``True`` if a forward task was queued."""
        if action != SMS_DELIVER_ACTION:
            LOGGER.debug("Ignoring broadcast action %s", action)
            return False
        if not fragments:
            return False
        if not self._pipeline.is_receiving():
            LOGGER.debug("Receiving disabled; dropping delivered SMS")
            return False

        body = "".join(fragment.body or "" for fragment in fragments)
        sender = next(
            (f.originating_address for f in fragments if f.originating_address), None
        )
        received_at = min(fragment.timestamp for fragment in fragments)

        if self._message_store is not None:
            try:
                self._message_store.insert_inbox(sender, body, received_at)
            except RuntimeError as exc:
                LOGGER.warning("Could not write delivered SMS to the inbox: %s", exc)

        return self._pipeline.on_candidate_message(
            sender, body, received_at, source=IngestionSource.BROADCAST
        )


__all__ = ["SMS_DELIVER_ACTION", "SmsBroadcastReceiver", "SmsFragment"]
