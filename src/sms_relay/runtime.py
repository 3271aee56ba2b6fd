"""Assemble relay components into a running service."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .core.config import AppSettings
from .core.container import ServiceContainer
from .core.datetime_utils import Clock, system_clock
from .core.interfaces import (
    ConnectivityMonitor,
    GatewayApi,
    MessageStore,
    SmsTransport,
    TelemetryProvider,
)
from .core.models import DeliveryOutcome, TaskKind
from .core.preferences import GatewayPreferences
from .delivery import DeliveryQueue, InboundForwardExecutor, StatusUpdateExecutor
from .filtering import FilterEngine
from .heartbeat import HeartbeatScheduler, HeartbeatWorker, PsutilTelemetryProvider
from .ingestion import (
    FingerprintCache,
    InboundPipeline,
    MessageStoreObserver,
    NotificationObserver,
    SmsBroadcastReceiver,
)
from .outbound import (
    OutboundDispatcher,
    PendingResultRegistry,
    StatusCorrelator,
    StatusReporter,
)
from .storage import SqliteRelayRepository
from .transport import (
    DeviceBridgeClient,
    GatewayClient,
    LoopbackTransport,
    PushPayloadError,
    SwitchableConnectivity,
    decode_send_request,
    push_kind,
)
from .transport.push import HEARTBEAT_CHECK, SEND_SMS

LOGGER = logging.getLogger(__name__)


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class RelayRuntime:
    """Every wired component of one relay process."""

    settings: AppSettings
    container: ServiceContainer
    repository: SqliteRelayRepository
    preferences: GatewayPreferences
    connectivity: ConnectivityMonitor
    queue: DeliveryQueue
    gateway: GatewayApi
    transport: SmsTransport
    message_store: MessageStore
    filter_engine: FilterEngine
    pipeline: InboundPipeline
    broadcast: SmsBroadcastReceiver
    store_observer: MessageStoreObserver
    notifications: NotificationObserver
    correlator: StatusCorrelator
    registry: PendingResultRegistry
    dispatcher: OutboundDispatcher
    heartbeat_scheduler: HeartbeatScheduler
    heartbeat_worker: HeartbeatWorker

    def start(self) -> None:
        """Start background delivery and (re)install the heartbeat."""
        self.queue.start()
        self.heartbeat_scheduler.sync()

    def stop(self) -> None:
        self.queue.stop()
        for component in (self.gateway, self.transport):
            close = getattr(component, "close", None)
            if callable(close):
                close()
        self.repository.close()

    def on_preferences_changed(self) -> None:
        """Apply preference changes that affect scheduling."""
        if self.heartbeat_scheduler.sync():
            LOGGER.info("Heartbeat active")
        else:
            LOGGER.info("Heartbeat cancelled (device not eligible)")

    def handle_push(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Act on a push data mapping from the gateway."""
        kind = push_kind(data)
        if kind == SEND_SMS:
            request = decode_send_request(data)
            results = self.dispatcher.send(request)
            return {
                "type": SEND_SMS,
                "messageId": request.message_id,
                "batchId": request.batch_id,
                "results": results,
            }
        if kind == HEARTBEAT_CHECK:
            outcome: DeliveryOutcome = self.heartbeat_worker.run()
            return {"type": HEARTBEAT_CHECK, "outcome": outcome.value}
        raise PushPayloadError(f"Unsupported push type: {data.get('type')!r}")


def _default_radio(container: ServiceContainer) -> SmsTransport:
    settings: AppSettings = container.resolve("settings")
    if settings.bridge.base_url:
        LOGGER.info("Using device bridge at %s", settings.bridge.base_url)
        return DeviceBridgeClient(settings.bridge)
    LOGGER.warning("No device bridge configured; using the loopback transport")
    return LoopbackTransport()


def _register_defaults(container: ServiceContainer, clock: Clock) -> None:
    register = container.register
    register(
        "repository",
        lambda c: SqliteRelayRepository(c.resolve("settings").storage),
    )
    register("preferences", lambda c: GatewayPreferences(c.resolve("repository")))
    register("connectivity", lambda _c: SwitchableConnectivity(True))
    register(
        "queue",
        lambda c: DeliveryQueue(
            c.resolve("repository"),
            c.resolve("connectivity"),
            c.resolve("settings").queue,
            clock=clock,
        ),
    )
    register("gateway", lambda c: GatewayClient(c.resolve("settings").gateway))
    register("transport", _default_radio)
    register("message_store", lambda c: c.resolve("transport"))
    register(
        "telemetry",
        lambda c: PsutilTelemetryProvider(
            data_dir=c.resolve("settings").storage.db_path.parent,
            subscriptions=c.resolve("transport").list_subscriptions,
            clock=clock,
        ),
    )
    register(
        "fingerprint_cache",
        lambda c: FingerprintCache(
            ttl_millis=int(c.resolve("settings").dedup.ttl_seconds * 1000),
            cleanup_threshold=c.resolve("settings").dedup.cleanup_threshold,
            clock=clock,
        ),
    )
    register("filter_engine", lambda c: FilterEngine(c.resolve("preferences")))
    register(
        "pipeline",
        lambda c: InboundPipeline(
            c.resolve("preferences"),
            c.resolve("fingerprint_cache"),
            c.resolve("filter_engine"),
            c.resolve("queue"),
            clock=clock,
        ),
    )
    register(
        "correlator",
        lambda c: StatusCorrelator(
            StatusReporter(c.resolve("preferences"), c.resolve("queue")), clock=clock
        ),
    )
    register("registry", lambda _c: PendingResultRegistry())
    register(
        "heartbeat_scheduler",
        lambda c: HeartbeatScheduler(
            c.resolve("queue"), c.resolve("preferences"), c.resolve("settings").heartbeat
        ),
    )


def build_runtime(
    settings: AppSettings,
    *,
    transport: SmsTransport | None = None,
    message_store: MessageStore | None = None,
    gateway: GatewayApi | None = None,
    connectivity: ConnectivityMonitor | None = None,
    telemetry: TelemetryProvider | None = None,
    clock: Clock = system_clock,
) -> RelayRuntime:
    """Wire a runtime; supplied collaborators replace the defaults."""
    container = ServiceContainer()
    container.provide("settings", settings)
    _register_defaults(container, clock)
    overrides = {
        "transport": transport,
        "message_store": message_store,
        "gateway": gateway,
        "connectivity": connectivity,
        "telemetry": telemetry,
    }
    for key, value in overrides.items():
        if value is not None:
            container.provide(key, value)

    queue: DeliveryQueue = container.resolve("queue")
    connectivity_monitor = container.resolve("connectivity")
    if isinstance(connectivity_monitor, SwitchableConnectivity):
        connectivity_monitor.add_listener(queue.notify_connectivity_changed)

    gateway_api: GatewayApi = container.resolve("gateway")
    preferences: GatewayPreferences = container.resolve("preferences")
    pipeline: InboundPipeline = container.resolve("pipeline")
    store: MessageStore = container.resolve("message_store")
    correlator: StatusCorrelator = container.resolve("correlator")
    registry: PendingResultRegistry = container.resolve("registry")
    scheduler: HeartbeatScheduler = container.resolve("heartbeat_scheduler")
    worker = HeartbeatWorker(
        preferences, gateway_api, container.resolve("telemetry"), scheduler
    )

    queue.register_executor(TaskKind.INBOUND_FORWARD, InboundForwardExecutor(gateway_api))
    queue.register_executor(TaskKind.STATUS_UPDATE, StatusUpdateExecutor(gateway_api))
    queue.register_periodic_runner(TaskKind.HEARTBEAT, worker)

    return RelayRuntime(
        settings=settings,
        container=container,
        repository=container.resolve("repository"),
        preferences=preferences,
        connectivity=connectivity_monitor,
        queue=queue,
        gateway=gateway_api,
        transport=container.resolve("transport"),
        message_store=store,
        filter_engine=container.resolve("filter_engine"),
        pipeline=pipeline,
        broadcast=SmsBroadcastReceiver(pipeline, message_store=store),
        store_observer=MessageStoreObserver(store, pipeline),
        notifications=NotificationObserver(pipeline, message_store=store, clock=clock),
        correlator=correlator,
        registry=registry,
        dispatcher=OutboundDispatcher(
            container.resolve("transport"), correlator, preferences, registry=registry
        ),
        heartbeat_scheduler=scheduler,
        heartbeat_worker=worker,
    )


__all__ = ["RelayRuntime", "build_runtime"]
