"""Tests for logging utilities."""

from __future__ import annotations

import logging

from sms_relay.core.config import LoggingSettings
from sms_relay.core.logging import configure_logging


def test_configure_logging_sets_root_level() -> None:
    """configure_logging should set the root logger level according to settings."""

    settings = LoggingSettings(level="DEBUG", structured=False)
    configure_logging(settings)
    assert logging.getLogger().level == logging.DEBUG


def test_http_client_loggers_quieted_outside_debug() -> None:
    """Third-party HTTP loggers stay at WARNING for non-debug levels."""

    configure_logging(LoggingSettings(level="info", structured=True))
    assert logging.getLogger().level == logging.INFO
    assert logging.getLogger("httpx").level == logging.WARNING
