"""Producer reading messages from posted messaging-app notifications."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from ..core.datetime_utils import Clock, now_millis, system_clock
from ..core.interfaces import MessageStore
from ..core.models import IngestionSource
from .pipeline import InboundPipeline

LOGGER = logging.getLogger(__name__)

MESSAGE_CATEGORY = "msg"
RESOLUTION_WINDOW_MILLIS = 30_000
RESOLUTION_QUERY_LIMIT = 5

_MESSAGING_PACKAGE_HINTS: tuple[str, ...] = ("messages", "sms", "messaging", "android.mms")
_MESSAGING_PACKAGES: frozenset[str] = frozenset(
    {"com.google.android.apps.messaging", "com.samsung.android.messaging"}
)
_PHONE_PATTERN = re.compile(r"\+?1?[0-9]{10,15}")
_NON_DIAL_CHARS = re.compile(r"[^+0-9]")


@dataclass(slots=True, frozen=True)
class PostedNotification:
    """Fields read from a status-bar notification."""

    package_name: str
    category: str | None = None
    title: str | None = None
    text: str | None = None
    big_text: str | None = None


def is_messaging_notification(notification: PostedNotification) -> bool:
    package = notification.package_name
    known_app = package in _MESSAGING_PACKAGES or any(
        hint in package for hint in _MESSAGING_PACKAGE_HINTS
    )
    return known_app or notification.category == MESSAGE_CATEGORY


def extract_phone_number(title: str) -> str:
    """Return the dialable digits of ``title`` if it holds a number, else ``title``."""
    if _PHONE_PATTERN.search(title):
        cleaned = _NON_DIAL_CHARS.sub("", title)
        if len(cleaned) >= 10:
            return cleaned
    return title


def is_phone_number(value: str | None) -> bool:
    """Return ``True`` for strings with 10+ digits that look dialable."""
    if value is None:
        return False
    dialable = _NON_DIAL_CHARS.sub("", value)
    digits = re.sub(r"[^0-9]", "", dialable)
    return len(digits) >= 10 and (dialable.startswith("+") or dialable.isdigit())


class NotificationObserver:
    """Turn messaging notifications into candidate messages."""

    def __init__(
        self,
        pipeline: InboundPipeline,
        *,
        message_store: MessageStore | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._pipeline = pipeline
        self._message_store = message_store
        self._clock = clock

    def on_notification_posted(self, notification: PostedNotification) -> bool:
        """Handle one notification. Returns ``True`` if a task was queued."""
        if not is_messaging_notification(notification):
            return False
        if not self._pipeline.is_receiving():
            LOGGER.debug("Receiving disabled; ignoring notification")
            return False

        body = notification.big_text if notification.big_text is not None else notification.text
        title = notification.title
        if title is None or not body:
            return False

        sender = extract_phone_number(title)
        resolved = self.resolve_sender(sender, body)
        if resolved is not None:
            sender = resolved

        LOGGER.debug("Notification from %s in %s", sender, notification.package_name)
        return self._pipeline.on_candidate_message(
            sender, body, now_millis(self._clock), source=IngestionSource.NOTIFICATION
        )

    def resolve_sender(self, display_name: str, body: str) -> str | None:
        """Best-effort lookup of the number behind a contact display name.

        Returns ``None`` when ``display_name`` is already a number or no
        recent inbox row carries the same body.
        """
        if is_phone_number(display_name) or self._message_store is None:
            return None
        since = now_millis(self._clock) - RESOLUTION_WINDOW_MILLIS
        try:
            rows = self._message_store.recent_inbox(RESOLUTION_QUERY_LIMIT, since=since)
        except RuntimeError as exc:
            LOGGER.warning("Sender resolution query failed: %s", exc)
            return None
        wanted = body.strip()
        for row in rows:
            if row.body is not None and row.body.strip() == wanted and is_phone_number(
                row.address
            ):
                LOGGER.debug("Resolved %r to %s", display_name, row.address)
                return row.address
        LOGGER.debug("Could not resolve %r; using display name", display_name)
        return None


__all__ = [
    "NotificationObserver",
    "PostedNotification",
    "extract_phone_number",
    "is_messaging_notification",
    "is_phone_number",
]
