"""Core utilities for configuration, logging, and dependency wiring."""

from .config import AppSettings, QueueSettings, load_app_settings
from .container import ServiceContainer
from .logging import configure_logging
from .preferences import GatewayPreferences

__all__ = [
    "AppSettings",
    "GatewayPreferences",
    "QueueSettings",
    "ServiceContainer",
    "configure_logging",
    "load_app_settings",
]
