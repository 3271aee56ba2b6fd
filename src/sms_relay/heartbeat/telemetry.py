"""Device telemetry for heartbeats, gathered with psutil."""

from __future__ import annotations

import locale
import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

import psutil

from .. import __version__
from ..core.datetime_utils import Clock, now_millis, system_clock, to_millis
from ..core.interfaces import TelemetryProvider
from ..core.models import HeartbeatSnapshot, SimInfo

LOGGER = logging.getLogger(__name__)

DISTRIBUTION_NAME = "sms-relay"

_WIFI_PREFIXES: tuple[str, ...] = ("wl", "wifi", "wlan")
_CELLULAR_PREFIXES: tuple[str, ...] = ("wwan", "rmnet", "ccmni", "ppp", "usb")
_IGNORED_PREFIXES: tuple[str, ...] = ("lo", "docker", "veth", "br-", "virbr", "tun", "tap")


def classify_network(interfaces: dict[str, bool]) -> str:
    """Return ``wifi``, ``cellular``, ``ethernet`` or ``none`` from up/down flags."""
    active = [
        name.lower()
        for name, is_up in interfaces.items()
        if is_up and not name.lower().startswith(_IGNORED_PREFIXES)
    ]
    if any(name.startswith(_WIFI_PREFIXES) for name in active):
        return "wifi"
    if any(name.startswith(_CELLULAR_PREFIXES) for name in active):
        return "cellular"
    if active:
        return "ethernet"
    return "none"


def app_version() -> str:
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return __version__


class PsutilTelemetryProvider(TelemetryProvider):
    """Collect battery, network, memory and storage figures.

    Every probe is optional; a failing probe leaves its field unset.
    """

    def __init__(
        self,
        *,
        data_dir: Path | str = ".",
        subscriptions: Callable[[], Sequence[SimInfo]] | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._data_dir = Path(data_dir)
        self._subscriptions = subscriptions
        self._clock = clock

    def collect(self) -> HeartbeatSnapshot:
        snapshot = HeartbeatSnapshot(
            app_version_name=app_version(),
            timezone=datetime.now().astimezone().tzname(),
            locale=locale.getlocale()[0],
        )
        self._probe_battery(snapshot)
        self._probe_network(snapshot)
        self._probe_memory(snapshot)
        self._probe_storage(snapshot)
        self._probe_uptime(snapshot)
        self._probe_sims(snapshot)
        return snapshot

    def _probe_battery(self, snapshot: HeartbeatSnapshot) -> None:
        sensors_battery = getattr(psutil, "sensors_battery", None)
        if sensors_battery is None:
            return
        try:
            battery = sensors_battery()
        except (psutil.Error, OSError) as exc:
            LOGGER.debug("Battery probe failed: %s", exc)
            return
        if battery is None:
            return
        snapshot.battery_percentage = int(round(battery.percent))
        snapshot.is_charging = bool(battery.power_plugged)

    def _probe_network(self, snapshot: HeartbeatSnapshot) -> None:
        try:
            stats = psutil.net_if_stats()
        except (psutil.Error, OSError) as exc:
            LOGGER.debug("Network probe failed: %s", exc)
            return
        snapshot.network_type = classify_network(
            {name: stat.isup for name, stat in stats.items()}
        )

    def _probe_memory(self, snapshot: HeartbeatSnapshot) -> None:
        try:
            memory = psutil.virtual_memory()
            process = psutil.Process().memory_info()
        except (psutil.Error, OSError) as exc:
            LOGGER.debug("Memory probe failed: %s", exc)
            return
        snapshot.memory_free_bytes = int(memory.available)
        snapshot.memory_total_bytes = int(memory.total)
        snapshot.memory_max_bytes = int(process.vms)

    def _probe_storage(self, snapshot: HeartbeatSnapshot) -> None:
        try:
            usage = psutil.disk_usage(str(self._data_dir.resolve()))
        except (psutil.Error, OSError) as exc:
            LOGGER.debug("Storage probe failed: %s", exc)
            return
        snapshot.storage_available_bytes = int(usage.free)
        snapshot.storage_total_bytes = int(usage.total)

    def _probe_uptime(self, snapshot: HeartbeatSnapshot) -> None:
        try:
            booted = psutil.boot_time()
        except (psutil.Error, OSError) as exc:
            LOGGER.debug("Uptime probe failed: %s", exc)
            return
        snapshot.device_uptime_millis = max(to_millis(self._clock() - booted), 0)

    def _probe_sims(self, snapshot: HeartbeatSnapshot) -> None:
        if self._subscriptions is None:
            return
        try:
            sims = tuple(self._subscriptions())
        except RuntimeError as exc:
            LOGGER.warning("Could not list SIM subscriptions: %s", exc)
            return
        snapshot.sims = sims
        snapshot.sims_updated_at = now_millis(self._clock)


__all__ = ["PsutilTelemetryProvider", "app_version", "classify_network"]
