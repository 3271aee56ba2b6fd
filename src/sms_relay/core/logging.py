"""Logging configuration helpers."""

from __future__ import annotations

import logging
import logging.config
from typing import Any

from .config import LoggingSettings

# Chatty third-party loggers kept at WARNING unless the root asks for DEBUG.
_NOISY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "uvicorn.access")


def _formatter(structured: bool) -> dict[str, Any]:
    """Return a dictConfig formatter fragment."""
    if structured:
        return {
            "format": "{asctime} {levelname} {name} {threadName} {message}",
            "style": "{",
        }
    return {"format": "%(asctime)s %(levelname)s [%(threadName)s] %(name)s %(message)s"}


def configure_logging(settings: LoggingSettings) -> None:
    """Configure relay logging according to provided settings."""
    level = settings.level.upper()
    third_party_level = "DEBUG" if level == "DEBUG" else "WARNING"

    dict_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": _formatter(settings.structured)},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": level,
            },
        },
        "loggers": {
            name: {"level": third_party_level} for name in _NOISY_LOGGERS
        },
        "root": {
            "handlers": ["console"],
            "level": level,
        },
    }

    logging.config.dictConfig(dict_config)


__all__ = ["configure_logging"]
