"""Connectivity monitors gating delivery queue execution."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

LOGGER = logging.getLogger(__name__)


class SwitchableConnectivity:
    """Connectivity state set explicitly by a platform adapter.

    Listeners are invoked on every change, typically
    ``DeliveryQueue.notify_connectivity_changed``.
    """

    def __init__(self, connected: bool = True) -> None:
        self._connected = connected
        self._listeners: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    def is_connected(self) -> bool:
        return self._connected

    def add_listener(self, listener: Callable[[], None]) -> None:
        with self._lock:
            self._listeners.append(listener)

    def set_connected(self, connected: bool) -> None:
        with self._lock:
            changed = connected != self._connected
            self._connected = connected
            listeners = list(self._listeners)
        if not changed:
            return
        LOGGER.info("Network %s", "available" if connected else "unavailable")
        for listener in listeners:
            listener()


__all__ = ["SwitchableConnectivity"]
