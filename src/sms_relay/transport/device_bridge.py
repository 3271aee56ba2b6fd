"""Radio adapters: an HTTP device bridge and an in-memory loopback."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from types import TracebackType
from typing import Any

import httpx

from ..core.config import BridgeSettings
from ..core.interfaces import CompletionHook, MessageStore, SmsTransport
from ..core.models import SMS_TYPE_INBOX, SimInfo, StoredSms

LOGGER = logging.getLogger(__name__)

RESULT_OK = -1


class BridgeError(RuntimeError):
    """Raised when the device bridge cannot be reached or rejects a call."""


def _row_from_json(item: dict[str, Any]) -> StoredSms:
    return StoredSms(
        id=int(item["id"]),
        address=item.get("address"),
        body=item.get("body"),
        date=int(item.get("date") or 0),
        type=int(item.get("type") or SMS_TYPE_INBOX),
        protocol=None if item.get("protocol") is None else str(item["protocol"]),
    )


def _sim_from_json(item: dict[str, Any]) -> SimInfo:
    return SimInfo(
        subscription_id=int(item["subscriptionId"]),
        slot_index=item.get("slotIndex"),
        carrier_name=item.get("carrierName"),
        display_name=item.get("displayName"),
        phone_number=item.get("phoneNumber"),
    )


class DeviceBridgeClient(SmsTransport, MessageStore):
    """Talk to a companion service that owns the device radio.

    Sends carry each segment's correlation context; the bridge reports
    radio results back to the relay's ``/events`` endpoints.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not settings.base_url:
            raise ValueError("Bridge base_url is required")
        self._client = httpx.Client(
            base_url=settings.base_url.rstrip("/") + "/",
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    def __enter__(self) -> DeviceBridgeClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # SmsTransport --------------------------------------------------------------
    def has_send_permission(self) -> bool:
        return bool(self._capabilities().get("sendSms", False))

    def supports_subscription_selection(self) -> bool:
        return bool(self._capabilities().get("subscriptionSelection", False))

    def send_segments(
        self,
        recipient: str,
        segments: Sequence[str],
        on_sent: Sequence[CompletionHook],
        on_delivered: Sequence[CompletionHook],
        subscription_id: int | None = None,
    ) -> bool:
        body = {
            "recipient": recipient,
            "segments": list(segments),
            "subscriptionId": subscription_id,
            "sentCallbacks": [hook.context() for hook in on_sent],
            "deliveredCallbacks": [hook.context() for hook in on_delivered],
        }
        data = self._call("POST", "sms/send", json=body)
        return bool(isinstance(data, dict) and data.get("accepted"))

    def list_subscriptions(self) -> Sequence[SimInfo]:
        data = self._call("GET", "sms/subscriptions")
        return [_sim_from_json(item) for item in data or []]

    # MessageStore --------------------------------------------------------------
    def recent_inbox(
        self, limit: int, *, since: int | None = None
    ) -> Sequence[StoredSms]:
        params: dict[str, Any] = {"limit": limit}
        if since is not None:
            params["since"] = since
        data = self._call("GET", "sms/inbox", params=params)
        return [_row_from_json(item) for item in data or []]

    def insert_inbox(self, sender: str | None, body: str, received_at: int) -> None:
        self._call(
            "POST",
            "sms/inbox",
            json={"address": sender, "body": body, "date": received_at},
        )

    # Internals -------------------------------------------------------------------
    def _capabilities(self) -> dict[str, Any]:
        data = self._call("GET", "device/capabilities")
        return data if isinstance(data, dict) else {}

    def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise BridgeError(f"Bridge {method} {path} failed: {exc}") from exc
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BridgeError(f"Bridge {method} {path} returned invalid JSON") from exc


class LoopbackTransport(SmsTransport, MessageStore):
    """In-memory radio used when no bridge is configured.

    Accepted sends are recorded and, with ``auto_complete``, every sent
    and delivered hook is completed with OK at once.
    """

    def __init__(
        self,
        *,
        auto_complete: bool = True,
        permission: bool = True,
        subscriptions: Sequence[SimInfo] = (),
    ) -> None:
        self.auto_complete = auto_complete
        self.permission = permission
        self.subscriptions = list(subscriptions)
        self.sent: list[tuple[str, tuple[str, ...], int | None]] = []
        self._inbox: list[StoredSms] = []
        self._next_id = 1
        self._lock = threading.Lock()

    def has_send_permission(self) -> bool:
        return self.permission

    def supports_subscription_selection(self) -> bool:
        return bool(self.subscriptions)

    def send_segments(
        self,
        recipient: str,
        segments: Sequence[str],
        on_sent: Sequence[CompletionHook],
        on_delivered: Sequence[CompletionHook],
        subscription_id: int | None = None,
    ) -> bool:
        with self._lock:
            self.sent.append((recipient, tuple(segments), subscription_id))
        LOGGER.info("Loopback accepted %d segment(s) for %s", len(segments), recipient)
        if self.auto_complete:
            for hook in [*on_sent, *on_delivered]:
                hook.complete(RESULT_OK)
        return True

    def list_subscriptions(self) -> Sequence[SimInfo]:
        return list(self.subscriptions)

    def recent_inbox(
        self, limit: int, *, since: int | None = None
    ) -> Sequence[StoredSms]:
        with self._lock:
            rows = [
                row
                for row in self._inbox
                if row.type == SMS_TYPE_INBOX and (since is None or row.date > since)
            ]
        rows.sort(key=lambda row: row.date, reverse=True)
        return rows[:limit]

    def insert_inbox(
        self,
        sender: str | None,
        body: str,
        received_at: int,
        *,
        protocol: str | None = "0",
    ) -> StoredSms:
        with self._lock:
            row = StoredSms(
                id=self._next_id,
                address=sender,
                body=body,
                date=received_at,
                protocol=protocol,
            )
            self._next_id += 1
            self._inbox.append(row)
        return row


__all__ = ["BridgeError", "DeviceBridgeClient", "LoopbackTransport"]
