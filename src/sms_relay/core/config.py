"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class GatewaySettings(BaseModel):
    """Settings controlling the backend gateway API."""

    base_url: str = Field(
        default="https://api.textbee.dev/api/v1/",
        description="Base URL of the gateway API",
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="Request timeout for gateway calls"
    )


class BridgeSettings(BaseModel):
    """Settings for the companion device bridge that owns the radio."""

    base_url: str | None = Field(
        default=None,
        description="Device bridge URL; the loopback transport is used when unset",
    )
    timeout_seconds: float = Field(
        default=15.0, gt=0, description="Request timeout for bridge calls"
    )


class StorageSettings(BaseModel):
    """Settings for local persistence."""

    db_path: Path = Field(
        default=Path("./sms_relay.db"), description="SQLite database path"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class DedupSettings(BaseModel):
    """Settings for the inbound fingerprint cache."""

    ttl_seconds: float = Field(
        default=5.0, gt=0, description="Window in which duplicates are suppressed"
    )
    cleanup_threshold: int = Field(
        default=100, ge=1, description="Entry count above which stale entries go"
    )


class QueueSettings(BaseModel):
    """Settings for the durable delivery queue."""

    max_retries: int = Field(
        default=5, ge=0, description="Retries allowed before a task is dropped"
    )
    initial_backoff_seconds: float = Field(
        default=10.0, gt=0, description="Delay before the first retry"
    )
    max_backoff_seconds: float = Field(
        default=5 * 60 * 60, gt=0, description="Upper bound for retry delays"
    )
    workers: int = Field(default=2, ge=1, description="Concurrent task executions")
    poll_interval_seconds: float = Field(
        default=1.0, gt=0, description="Dispatcher wake-up interval when idle"
    )


class HeartbeatSettings(BaseModel):
    """Settings for the periodic heartbeat."""

    default_interval_minutes: int = Field(
        default=30, ge=1, description="Interval used when none is stored"
    )
    min_interval_minutes: int = Field(
        default=15, ge=1, description="Smallest interval ever scheduled"
    )


class WebSettings(BaseModel):
    """Settings for the HTTP surface served by ``sms-relay run``."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=8085, ge=1, le=65535, description="Bind port")


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    bridge: BridgeSettings = Field(default_factory=BridgeSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    dedup: DedupSettings = Field(default_factory=DedupSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    heartbeat: HeartbeatSettings = Field(default_factory=HeartbeatSettings)
    web: WebSettings = Field(default_factory=WebSettings)


ENV_PREFIX = "SMS_RELAY_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _coerce_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if value == "":
        return None
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values: dict[str, Any] = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values: dict[str, Any] = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    for key, value in {**file_values, **env_values}.items():
        path = _normalize_key(key)
        if not path:
            continue
        _merge_into_tree(collected, path, _coerce_value(value))

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "BridgeSettings",
    "DedupSettings",
    "GatewaySettings",
    "HeartbeatSettings",
    "LoggingSettings",
    "QueueSettings",
    "StorageSettings",
    "WebSettings",
    "load_app_settings",
]
