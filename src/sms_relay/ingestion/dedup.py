"""Short-lived fingerprint memory that suppresses duplicate inbound SMS."""

from __future__ import annotations

import hashlib
import logging
import threading

from ..core.datetime_utils import Clock, now_millis, system_clock

LOGGER = logging.getLogger(__name__)

DEFAULT_TTL_MILLIS = 5_000
DEFAULT_CLEANUP_THRESHOLD = 100


def compute_fingerprint(sender: str | None, body: str | None, received_at: int) -> str:
    """Return a stable hex digest over ``sender|body|received_at``.

    Hashing failures fall back to the plain concatenation so the message
    is still processed.
    """
    payload = f"{sender or ''}|{body or ''}|{received_at}"
    try:
        return hashlib.md5(payload.encode("utf-8"), usedforsecurity=False).hexdigest()
    except (UnicodeEncodeError, ValueError) as exc:
        LOGGER.warning("Fingerprint hashing failed, using raw key: %s", exc)
        return f"{sender or ''}{body or ''}{received_at}"


class FingerprintCache:
    """Thread-safe TTL map of recently seen fingerprints."""

    def __init__(
        self,
        *,
        ttl_millis: int = DEFAULT_TTL_MILLIS,
        cleanup_threshold: int = DEFAULT_CLEANUP_THRESHOLD,
        clock: Clock = system_clock,
    ) -> None:
        self._ttl_millis = ttl_millis
        self._cleanup_threshold = cleanup_threshold
        self._clock = clock
        self._entries: dict[str, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def should_process(self, fingerprint: str) -> bool:
        """Return ``False`` if seen within the TTL, otherwise record and return ``True``.

        Check and record happen under one lock, so concurrent producers
        observing the same message get exactly one ``True``.
        """
        now = now_millis(self._clock)
        with self._lock:
            last_seen = self._entries.get(fingerprint)
            if last_seen is not None and now - last_seen < self._ttl_millis:
                LOGGER.debug("Duplicate fingerprint %s suppressed", fingerprint)
                return False
            self._entries[fingerprint] = now
            self._evict_stale(now)
            return True

    def record(self, fingerprint: str) -> None:
        """Mark ``fingerprint`` as seen now. Safe to call repeatedly."""
        now = now_millis(self._clock)
        with self._lock:
            self._entries[fingerprint] = now
            self._evict_stale(now)

    def _evict_stale(self, now: int) -> None:
        if len(self._entries) <= self._cleanup_threshold:
            return
        cutoff = now - self._ttl_millis
        stale = [key for key, seen in self._entries.items() if seen < cutoff]
        for key in stale:
            del self._entries[key]
        if stale:
            LOGGER.debug("Evicted %d stale fingerprints", len(stale))


__all__ = ["FingerprintCache", "compute_fingerprint"]
