"""Command-line entry point for the SMS relay."""

from __future__ import annotations

import argparse
from pathlib import Path

import uvicorn

from sms_relay.core import AppSettings, configure_logging, load_app_settings
from sms_relay.core import preferences as keys
from sms_relay.runtime import RelayRuntime, build_runtime
from sms_relay.web import create_app


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="SMS relay between device and gateway")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "configure", "run", "drain", "heartbeat", "queue"],
        help="Operation to execute.",
    )
    parser.add_argument("--device-id", dest="device_id", default=None)
    parser.add_argument("--api-key", dest="api_key", default=None)
    parser.add_argument(
        "--gateway-enabled",
        dest="gateway_enabled",
        choices=["true", "false"],
        default=None,
        help="Enable or disable the gateway for this device.",
    )
    parser.add_argument(
        "--receive-sms",
        dest="receive_sms",
        choices=["true", "false"],
        default=None,
        help="Enable or disable forwarding of received SMS.",
    )
    parser.add_argument(
        "--heartbeat",
        dest="heartbeat_enabled",
        choices=["true", "false"],
        default=None,
        help="Enable or disable the periodic heartbeat.",
    )
    parser.add_argument(
        "--heartbeat-interval",
        dest="heartbeat_interval",
        type=int,
        default=None,
        help="Heartbeat interval in minutes (minimum enforced: 15).",
    )
    parser.add_argument(
        "--preferred-sim",
        dest="preferred_sim",
        type=int,
        default=None,
        help="SIM subscription id to send with; -1 for the device default.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum tasks shown by the queue command (default: 20).",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> None:
    """Execute the requested CLI command."""
    command = args.command
    if command == "info":
        print("SMS relay is ready. Register the device with 'configure' to get started.")
        print(f"Gateway URL: {settings.gateway.base_url}")
        print(f"Device bridge: {settings.bridge.base_url or 'loopback'}")
        print(f"Database path: {settings.storage.db_path}")
        return

    runtime = build_runtime(settings)
    if command == "run":
        _run_service(runtime, settings)
        return
    try:
        if command == "configure":
            _configure(runtime, args)
        elif command == "drain":
            executed = runtime.queue.run_pending()
            print(f"Executed {executed} task(s). Pending: {runtime.queue.pending_count()}")
        elif command == "heartbeat":
            outcome = runtime.heartbeat_worker.run()
            print(f"Heartbeat outcome: {outcome.value}")
        elif command == "queue":
            _print_queue(runtime, args.limit)
    finally:
        runtime.stop()


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    execute(args, settings)


def _configure(runtime: RelayRuntime, args: argparse.Namespace) -> None:
    prefs = runtime.preferences
    if args.device_id is not None:
        prefs.set_string(keys.DEVICE_ID, args.device_id)
    if args.api_key is not None:
        prefs.set_string(keys.API_KEY, args.api_key)
    for key, raw in (
        (keys.GATEWAY_ENABLED, args.gateway_enabled),
        (keys.RECEIVE_SMS_ENABLED, args.receive_sms),
        (keys.HEARTBEAT_ENABLED, args.heartbeat_enabled),
    ):
        if raw is not None:
            prefs.set_bool(key, raw == "true")
    if args.heartbeat_interval is not None:
        prefs.set_heartbeat_interval_minutes(args.heartbeat_interval)
    if args.preferred_sim is not None:
        prefs.set_int(keys.PREFERRED_SIM, args.preferred_sim)
    runtime.on_preferences_changed()
    for key, value in prefs.snapshot().items():
        print(f"{key}: {value}")


def _print_queue(runtime: RelayRuntime, limit: int) -> None:
    tasks = runtime.repository.list_tasks(limit)
    if not tasks:
        print("No queued tasks.")
    for task in tasks:
        print(
            f"[{task.id}] {task.kind.value} retries={task.retry_count} "
            f"next={task.next_attempt_at:.0f} {task.unique_name or ''}"
        )
    for work in runtime.repository.list_periodic():
        print(
            f"periodic {work.name} every {work.interval_seconds / 60:.0f} min "
            f"next={work.next_run_at:.0f} attempt={work.attempt}"
        )


def _run_service(runtime: RelayRuntime, settings: AppSettings) -> None:
    """Start delivery and heartbeat, then serve HTTP until interrupted."""
    runtime.start()
    try:
        uvicorn.run(
            create_app(runtime),
            host=settings.web.host,
            port=settings.web.port,
            log_config=None,
        )
    finally:
        runtime.stop()


__all__ = ["build_parser", "execute", "main"]
