"""HTTP client for the gateway backend API."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

import httpx

from ..core.config import GatewaySettings
from ..core.interfaces import GatewayApi, GatewayError
from ..core.models import (
    HeartbeatResponse,
    HeartbeatSnapshot,
    InboundMessage,
    MessageState,
    MessageStatus,
)

LOGGER = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"

_STATUS_TIMESTAMP_FIELDS: dict[MessageState, str] = {
    MessageState.SENT: "sentAtInMillis",
    MessageState.DELIVERED: "deliveredAtInMillis",
    MessageState.FAILED: "failedAtInMillis",
    MessageState.DELIVERY_FAILED: "failedAtInMillis",
}


def inbound_payload(message: InboundMessage) -> dict[str, Any]:
    """Return the receive-sms request body."""
    return {
        "sender": message.sender,
        "message": message.body,
        "receivedAtInMillis": message.received_at,
        "fingerprint": message.fingerprint,
    }


def status_payload(status: MessageStatus) -> dict[str, Any]:
    """Return the sms-status request body for one transition."""
    payload: dict[str, Any] = {
        "smsId": status.message_id,
        "smsBatchId": status.batch_id,
        "status": status.status.value,
        _STATUS_TIMESTAMP_FIELDS[status.status]: status.timestamp,
    }
    if status.error_code is not None:
        payload["errorCode"] = status.error_code
    if status.error_message is not None:
        payload["errorMessage"] = status.error_message
    if status.recipient is not None:
        payload["recipient"] = status.recipient
    if status.segment_index is not None:
        payload["segmentIndex"] = status.segment_index
    return payload


def _parse_heartbeat_response(body: Any) -> HeartbeatResponse:
    data = body.get("data", body) if isinstance(body, dict) else {}
    if not isinstance(data, dict):
        data = {}
    interval = data.get("heartbeatIntervalMinutes")
    try:
        interval_minutes = int(interval) if interval is not None else None
    except (TypeError, ValueError):
        LOGGER.warning("Ignoring invalid heartbeat interval %r", interval)
        interval_minutes = None
    return HeartbeatResponse(
        fcm_token_updated=bool(data.get("fcmTokenUpdated", False)),
        heartbeat_interval_minutes=interval_minutes,
    )


class GatewayClient(GatewayApi):
    """Synchronous httpx client for the device gateway endpoints."""

    def __init__(
        self,
        settings: GatewaySettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._settings = settings
        base_url = settings.base_url.rstrip("/") + "/"
        self._client = httpx.Client(
            base_url=base_url,
            timeout=settings.timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def __enter__(self) -> GatewayClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def forward_inbound(
        self, device_id: str, api_key: str, message: InboundMessage
    ) -> None:
        self._request(
            "POST",
            f"gateway/devices/{device_id}/receive-sms",
            api_key,
            inbound_payload(message),
        )
        LOGGER.info("Forwarded SMS from %s", message.sender)

    def update_status(
        self, device_id: str, api_key: str, status: MessageStatus
    ) -> None:
        self._request(
            "PATCH",
            f"gateway/devices/{device_id}/sms-status",
            api_key,
            status_payload(status),
        )
        LOGGER.info("Reported %s for message %s", status.status.value, status.message_id)

    def heartbeat(
        self, device_id: str, api_key: str, snapshot: HeartbeatSnapshot
    ) -> HeartbeatResponse:
        response = self._request(
            "POST",
            f"gateway/devices/{device_id}/heartbeat",
            api_key,
            snapshot.to_payload(),
        )
        try:
            body = response.json()
        except ValueError:
            body = {}
        return _parse_heartbeat_response(body)

    def close(self) -> None:
        self._client.close()

    def _request(
        self, method: str, path: str, api_key: str, payload: dict[str, Any]
    ) -> httpx.Response:
        try:
            response = self._client.request(
                method, path, json=payload, headers={API_KEY_HEADER: api_key}
            )
        except httpx.HTTPError as exc:
            raise GatewayError(f"{method} {path} failed: {exc}") from exc
        if not response.is_success:
            raise GatewayError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response


__all__ = ["API_KEY_HEADER", "GatewayClient", "inbound_payload", "status_payload"]
