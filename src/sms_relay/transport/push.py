"""Decoding of push-delivered instructions from the gateway."""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping
from typing import Any

from ..core.models import OutboundRequest

LOGGER = logging.getLogger(__name__)

SMS_DATA_KEY = "smsData"
TYPE_KEY = "type"
HEARTBEAT_CHECK = "heartbeat_check"
SEND_SMS = "send_sms"


class PushPayloadError(RuntimeError):
    """Raised when a push payload cannot be turned into a send request."""


def push_kind(data: Mapping[str, Any]) -> str | None:
    """Return what a push asks for: a send, a heartbeat check, or ``None``."""
    kind = data.get(TYPE_KEY)
    if kind == HEARTBEAT_CHECK:
        return HEARTBEAT_CHECK
    if SMS_DATA_KEY in data or kind == SEND_SMS:
        return SEND_SMS
    return None


def _load_sms_data(raw: Any) -> dict[str, Any]:
    if isinstance(raw, Mapping):
        return dict(raw)
    if not isinstance(raw, str):
        raise PushPayloadError(f"'{SMS_DATA_KEY}' must be a JSON string or object")
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PushPayloadError(f"'{SMS_DATA_KEY}' is not valid JSON") from exc
    if not isinstance(decoded, dict):
        raise PushPayloadError(f"'{SMS_DATA_KEY}' must decode to an object")
    return decoded


def decode_send_request(data: Mapping[str, Any]) -> OutboundRequest:
    """Build an ``OutboundRequest`` from a push data mapping.

    The current ``message``/``recipients`` fields win over the legacy
    ``smsBody``/``receivers`` ones. Missing identifiers are generated.
    """
    sms = _load_sms_data(data.get(SMS_DATA_KEY))

    recipients = sms.get("recipients")
    if not recipients:
        recipients = sms.get("receivers")
    if not isinstance(recipients, list):
        raise PushPayloadError("Send request has no recipient list")
    cleaned = tuple(str(item).strip() for item in recipients if str(item).strip())
    if not cleaned:
        raise PushPayloadError("Send request has no usable recipients")

    body = sms.get("message")
    if body is None:
        body = sms.get("smsBody")
    if body is None:
        raise PushPayloadError("Send request has no message body")

    message_id = sms.get("smsId")
    if not message_id:
        message_id = uuid.uuid4().hex
        LOGGER.warning("Send request without smsId; generated %s", message_id)
    batch_id = sms.get("smsBatchId") or message_id

    subscription = sms.get("simSubscriptionId")
    try:
        sim_subscription_id = int(subscription) if subscription is not None else None
    except (TypeError, ValueError):
        LOGGER.warning("Ignoring invalid simSubscriptionId %r", subscription)
        sim_subscription_id = None

    return OutboundRequest(
        recipients=cleaned,
        body=str(body),
        message_id=str(message_id),
        batch_id=str(batch_id),
        sim_subscription_id=sim_subscription_id,
    )


__all__ = [
    "HEARTBEAT_CHECK",
    "PushPayloadError",
    "SEND_SMS",
    "decode_send_request",
    "push_kind",
]
