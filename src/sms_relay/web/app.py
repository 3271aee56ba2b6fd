"""FastAPI application exposing the relay to the gateway and the device."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Query, status as http_status
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from sms_relay.core import AppSettings, load_app_settings
from sms_relay.core import preferences as keys
from sms_relay.filtering import FilterConfig
from sms_relay.ingestion import SMS_DELIVER_ACTION, PostedNotification, SmsFragment
from sms_relay.outbound import OutcomeType
from sms_relay.runtime import RelayRuntime, build_runtime
from sms_relay.transport import PushPayloadError, SwitchableConnectivity

LOGGER = logging.getLogger(__name__)

DEFAULT_TASK_LIMIT = 50
MAX_TASK_LIMIT = 500


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PushEnvelope(_CamelModel):
    """Push message as delivered by the gateway's messaging service."""

    data: dict[str, Any] = Field(default_factory=dict)


class FragmentIn(_CamelModel):
    originating_address: str | None = Field(default=None, alias="originatingAddress")
    body: str | None = None
    timestamp: int


class SmsDeliverEvent(_CamelModel):
    action: str = SMS_DELIVER_ACTION
    fragments: list[FragmentIn]


class NotificationEvent(_CamelModel):
    package_name: str = Field(alias="packageName")
    category: str | None = None
    title: str | None = None
    text: str | None = None
    big_text: str | None = Field(default=None, alias="bigText")


class RadioResultEvent(_CamelModel):
    message_id: str = Field(alias="messageId")
    recipient: str | None = None
    segment_index: int = Field(default=0, ge=0, alias="segmentIndex")
    result_code: int = Field(alias="resultCode")


class ConnectivityEvent(_CamelModel):
    connected: bool


class PreferencesUpdate(_CamelModel):
    """Partial update of device preferences; omitted fields are unchanged."""

    device_id: str | None = Field(default=None, alias="deviceId")
    api_key: str | None = Field(default=None, alias="apiKey")
    gateway_enabled: bool | None = Field(default=None, alias="gatewayEnabled")
    receive_sms_enabled: bool | None = Field(default=None, alias="receiveSmsEnabled")
    heartbeat_enabled: bool | None = Field(default=None, alias="heartbeatEnabled")
    heartbeat_interval_minutes: int | None = Field(
        default=None, ge=1, alias="heartbeatIntervalMinutes"
    )
    preferred_sim: int | None = Field(default=None, ge=-1, alias="preferredSim")
    push_token: str | None = Field(default=None, alias="pushToken")
    filter_config: FilterConfig | None = Field(default=None, alias="filterConfig")


def apply_preferences_update(runtime: RelayRuntime, update: PreferencesUpdate) -> None:
    """Write the supplied fields and let the runtime react."""
    prefs = runtime.preferences
    if update.filter_config is not None:
        runtime.filter_engine.save(update.filter_config)
    for key, value in (
        (keys.DEVICE_ID, update.device_id),
        (keys.API_KEY, update.api_key),
        (keys.PUSH_TOKEN, update.push_token),
    ):
        if value is not None:
            prefs.set_string(key, value)
    for key, flag in (
        (keys.GATEWAY_ENABLED, update.gateway_enabled),
        (keys.RECEIVE_SMS_ENABLED, update.receive_sms_enabled),
        (keys.HEARTBEAT_ENABLED, update.heartbeat_enabled),
    ):
        if flag is not None:
            prefs.set_bool(key, flag)
    if update.heartbeat_interval_minutes is not None:
        prefs.set_heartbeat_interval_minutes(update.heartbeat_interval_minutes)
    if update.preferred_sim is not None:
        prefs.set_int(keys.PREFERRED_SIM, update.preferred_sim)
    runtime.on_preferences_changed()


def _preferences_view(runtime: RelayRuntime) -> dict[str, Any]:
    return {
        "preferences": runtime.preferences.snapshot(),
        "filterConfig": runtime.filter_engine.current_config().model_dump(
            mode="json", by_alias=True
        ),
        "heartbeatEligible": runtime.heartbeat_scheduler.is_eligible(),
    }


def create_app(
    runtime: RelayRuntime | None = None, settings: AppSettings | None = None
) -> FastAPI:
    """Create and configure the FastAPI application."""
    owns_runtime = runtime is None
    if runtime is None:
        runtime = build_runtime(settings or load_app_settings())
    relay = runtime
    app = FastAPI(title="SMS Relay")
    app.state.runtime = relay

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Release the runtime when the app created it."""
        if owns_runtime:
            relay.stop()
            LOGGER.info("Relay runtime stopped")

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "connected": relay.connectivity.is_connected(),
            "pendingTasks": relay.queue.pending_count(),
            "pendingResults": len(relay.registry),
            "heartbeatEligible": relay.heartbeat_scheduler.is_eligible(),
            "queueRunning": relay.queue.running,
        }

    @app.post("/push")
    def push(envelope: PushEnvelope) -> dict[str, Any]:
        try:
            return relay.handle_push(envelope.data)
        except (PushPayloadError, ValueError) as exc:
            LOGGER.warning("Rejected push payload: %s", exc)
            raise HTTPException(
                status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
            ) from exc

    @app.post("/events/sms-deliver")
    def sms_deliver(event: SmsDeliverEvent) -> dict[str, bool]:
        fragments = [
            SmsFragment(
                originating_address=item.originating_address,
                body=item.body,
                timestamp=item.timestamp,
            )
            for item in event.fragments
        ]
        return {"queued": relay.broadcast.on_receive(event.action, fragments)}

    @app.post("/events/message-store-changed")
    def message_store_changed() -> dict[str, bool]:
        return {"queued": relay.store_observer.on_change()}

    @app.post("/events/notification-posted")
    def notification_posted(event: NotificationEvent) -> dict[str, bool]:
        notification = PostedNotification(
            package_name=event.package_name,
            category=event.category,
            title=event.title,
            text=event.text,
            big_text=event.big_text,
        )
        return {"queued": relay.notifications.on_notification_posted(notification)}

    def _complete(event: RadioResultEvent, outcome: OutcomeType) -> dict[str, bool]:
        completed = relay.registry.complete(
            event.message_id,
            event.segment_index,
            outcome,
            event.result_code,
            recipient=event.recipient,
        )
        if not completed:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail="No pending result for this segment",
            )
        return {"completed": True}

    @app.post("/events/sent-result")
    def sent_result(event: RadioResultEvent) -> dict[str, bool]:
        return _complete(event, OutcomeType.SENT)

    @app.post("/events/delivered-result")
    def delivered_result(event: RadioResultEvent) -> dict[str, bool]:
        return _complete(event, OutcomeType.DELIVERED)

    @app.post("/events/connectivity")
    def connectivity(event: ConnectivityEvent) -> dict[str, bool]:
        monitor = relay.connectivity
        if not isinstance(monitor, SwitchableConnectivity):
            raise HTTPException(
                status_code=http_status.HTTP_409_CONFLICT,
                detail="Connectivity is managed by the platform",
            )
        monitor.set_connected(event.connected)
        return {"connected": monitor.is_connected()}

    @app.get("/api/preferences")
    def get_preferences() -> dict[str, Any]:
        return _preferences_view(relay)

    @app.post("/api/preferences")
    def update_preferences(update: PreferencesUpdate) -> dict[str, Any]:
        try:
            apply_preferences_update(relay, update)
        except (ValueError, ValidationError) as exc:
            raise HTTPException(
                status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
            ) from exc
        return _preferences_view(relay)

    @app.get("/api/tasks")
    def list_tasks(
        limit: int = Query(DEFAULT_TASK_LIMIT, ge=1, le=MAX_TASK_LIMIT),  # noqa: B008
    ) -> dict[str, Any]:
        tasks = relay.repository.list_tasks(limit)
        return {
            "tasks": [
                {
                    "id": task.id,
                    "kind": task.kind.value,
                    "uniqueName": task.unique_name,
                    "retryCount": task.retry_count,
                    "nextAttemptAt": task.next_attempt_at,
                }
                for task in tasks
            ],
            "periodic": [
                {
                    "name": work.name,
                    "kind": work.kind.value,
                    "intervalSeconds": work.interval_seconds,
                    "nextRunAt": work.next_run_at,
                    "attempt": work.attempt,
                }
                for work in relay.repository.list_periodic()
            ],
        }

    return app


__all__ = ["apply_preferences_update", "create_app"]
