"""Producer reacting to changes in the device message store."""

from __future__ import annotations

import logging
import threading

from ..core.interfaces import MessageStore
from ..core.models import SMS_TYPE_INBOX, IngestionSource, StoredSms
from .pipeline import InboundPipeline

LOGGER = logging.getLogger(__name__)

RECENT_MESSAGE_LIMIT = 3
# Protocol value used by plain SMS; those rows are covered by the broadcast.
PRIMARY_PROTOCOL = "0"


def is_secondary_protocol(row: StoredSms) -> bool:
    return row.protocol is not None and row.protocol != PRIMARY_PROTOCOL


class MessageStoreObserver:
    """Forward advanced-protocol inbox rows the broadcast never sees."""

    def __init__(self, store: MessageStore, pipeline: InboundPipeline) -> None:
        self._store = store
        self._pipeline = pipeline
        self._last_id: int | None = None
        self._lock = threading.Lock()

    @property
    def last_id(self) -> int | None:
        return self._last_id

    def on_change(self) -> bool:
        """Inspect the newest rows. Returns ``True`` if a task was queued."""
        try:
            rows = self._store.recent_inbox(RECENT_MESSAGE_LIMIT)
        except RuntimeError as exc:
            LOGGER.warning("Could not read recent inbox rows: %s", exc)
            return False
        with self._lock:
            for row in rows:
                # Rows at or below the newest handled id were already seen.
                if self._last_id is not None and row.id <= self._last_id:
                    continue
                if row.type != SMS_TYPE_INBOX or not is_secondary_protocol(row):
                    continue
                self._last_id = row.id
                LOGGER.debug("Store row %s (protocol %s) is new", row.id, row.protocol)
                return self._pipeline.on_candidate_message(
                    row.address,
                    row.body,
                    row.date,
                    source=IngestionSource.STORE_OBSERVER,
                )
        return False


__all__ = ["MessageStoreObserver", "is_secondary_protocol"]
