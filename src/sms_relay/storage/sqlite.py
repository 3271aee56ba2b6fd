"""SQLite-backed task queue storage and settings store."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType

from ..core.config import StorageSettings
from ..core.interfaces import SettingsStore, TaskRepository
from ..core.models import DeliveryTask, PeriodicWork, TaskKind

LOGGER = logging.getLogger(__name__)

STATE_PENDING = "pending"
STATE_RUNNING = "running"


class SqliteRelayRepository(TaskRepository, SettingsStore):
    """Persist delivery tasks, periodic work and preferences using SQLite.

    One connection is shared between the dispatcher, worker threads and
    the HTTP surface; every statement runs under ``self._lock``.
    """

    def __init__(self, settings: StorageSettings) -> None:
        """Initialise the repository and apply migrations."""
        self._settings = settings
        self._lock = threading.RLock()
        db_path = Path(settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._configure_connection()
        self._apply_migrations()
        self._ensure_indexes()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteRelayRepository:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # Delivery tasks ----------------------------------------------------------
    def insert_task(self, task: DeliveryTask, *, replace_pending: bool = False) -> int:
        """Persist ``task`` and return its row id.

        With ``replace_pending`` any not-yet-running task sharing the same
        unique name is removed in the same transaction.
        """
        created_at = task.created_at or time.time()
        with self._lock, self._connection:
            if replace_pending and task.unique_name:
                replaced = self._connection.execute(
                    "DELETE FROM delivery_tasks WHERE unique_name = ? AND state = ?",
                    (task.unique_name, STATE_PENDING),
                ).rowcount
                if replaced:
                    LOGGER.debug(
                        "Replaced %d pending task(s) named %s", replaced, task.unique_name
                    )
            cursor = self._connection.execute(
                """
                INSERT INTO delivery_tasks (
                    kind,
                    unique_name,
                    payload,
                    device_id,
                    api_key,
                    retry_count,
                    state,
                    next_attempt_at,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    task.kind.value,
                    task.unique_name,
                    json.dumps(task.payload),
                    task.device_id,
                    task.api_key,
                    task.retry_count,
                    STATE_PENDING,
                    task.next_attempt_at,
                    created_at,
                ),
            )
        task_id = int(cursor.lastrowid or 0)
        task.id = task_id
        task.created_at = created_at
        return task_id

    def claim_next_due(self, now: float) -> DeliveryTask | None:
        """Mark the earliest due pending task as running and return it."""
        with self._lock, self._connection:
            row = self._connection.execute(
                """
                SELECT * FROM delivery_tasks
                WHERE state = ? AND next_attempt_at <= ?
                ORDER BY next_attempt_at, id
                LIMIT 1
                """,
                (STATE_PENDING, now),
            ).fetchone()
            if row is None:
                return None
            self._connection.execute(
                "UPDATE delivery_tasks SET state = ? WHERE id = ?",
                (STATE_RUNNING, row["id"]),
            )
        return _row_to_task(row)

    def complete_task(self, task_id: int) -> None:
        with self._lock, self._connection:
            self._connection.execute("DELETE FROM delivery_tasks WHERE id = ?", (task_id,))

    def reschedule_task(
        self, task_id: int, retry_count: int, next_attempt_at: float
    ) -> None:
        with self._lock, self._connection:
            self._connection.execute(
                """
                UPDATE delivery_tasks
                SET state = ?, retry_count = ?, next_attempt_at = ?
                WHERE id = ?
                """,
                (STATE_PENDING, retry_count, next_attempt_at, task_id),
            )

    def release_stale_claims(self) -> int:
        """Return tasks left running by a previous process to the pending state."""
        with self._lock, self._connection:
            cursor = self._connection.execute(
                "UPDATE delivery_tasks SET state = ? WHERE state = ?",
                (STATE_PENDING, STATE_RUNNING),
            )
        if cursor.rowcount:
            LOGGER.info("Released %d interrupted task(s)", cursor.rowcount)
        return cursor.rowcount

    def count_pending(self) -> int:
        with self._lock:
            row = self._connection.execute(
                "SELECT COUNT(*) FROM delivery_tasks WHERE state = ?", (STATE_PENDING,)
            ).fetchone()
        return int(row[0])

    def next_due_at(self) -> float | None:
        with self._lock:
            row = self._connection.execute(
                "SELECT MIN(next_attempt_at) FROM delivery_tasks WHERE state = ?",
                (STATE_PENDING,),
            ).fetchone()
        return None if row[0] is None else float(row[0])

    def list_tasks(self, limit: int = 50) -> list[DeliveryTask]:
        with self._lock:
            rows = self._connection.execute(
                "SELECT * FROM delivery_tasks ORDER BY next_attempt_at, id LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_task(row) for row in rows]

    # Periodic work -------------------------------------------------------------
    def upsert_periodic(self, work: PeriodicWork) -> None:
        with self._lock, self._connection:
            self._connection.execute(
                """
                INSERT INTO periodic_work (name, kind, interval_seconds, next_run_at, attempt)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    kind = excluded.kind,
                    interval_seconds = excluded.interval_seconds,
                    next_run_at = excluded.next_run_at,
                    attempt = excluded.attempt
                """,
                (
                    work.name,
                    work.kind.value,
                    work.interval_seconds,
                    work.next_run_at,
                    work.attempt,
                ),
            )

    def get_periodic(self, name: str) -> PeriodicWork | None:
        with self._lock:
            row = self._connection.execute(
                "SELECT * FROM periodic_work WHERE name = ?", (name,)
            ).fetchone()
        return _row_to_periodic(row) if row else None

    def delete_periodic(self, name: str) -> bool:
        with self._lock, self._connection:
            cursor = self._connection.execute(
                "DELETE FROM periodic_work WHERE name = ?", (name,)
            )
        return cursor.rowcount > 0

    def list_periodic(self) -> list[PeriodicWork]:
        with self._lock:
            rows = self._connection.execute(
                "SELECT * FROM periodic_work ORDER BY next_run_at"
            ).fetchall()
        return [_row_to_periodic(row) for row in rows]

    # Settings store ------------------------------------------------------------
    def get(self, key: str) -> str | None:
        """Retrieve a preference by key.

        Args:
            key: The preference key to retrieve

        Returns:
            The preference value, or None if not found
        """
        with self._lock:
            row = self._connection.execute(
                "SELECT value FROM preferences WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        """Store or update a preference.

        Args:
            key: The preference key
            value: The preference value to store
        """
        now = datetime.now(UTC).isoformat()
        with self._lock, self._connection:
            self._connection.execute(
                """
                INSERT INTO preferences (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, now),
            )
        LOGGER.debug("Saved preference: %s", key)

    def delete(self, key: str) -> bool:
        with self._lock, self._connection:
            cursor = self._connection.execute(
                "DELETE FROM preferences WHERE key = ?", (key,)
            )
        return cursor.rowcount > 0

    def all(self) -> dict[str, str]:
        with self._lock:
            rows = self._connection.execute(
                "SELECT key, value FROM preferences ORDER BY key"
            ).fetchall()
        return {row[0]: row[1] for row in rows}

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._connection.close()

    # Internal helpers --------------------------------------------------------
    def _configure_connection(self) -> None:
        with self._connection:
            self._connection.execute("PRAGMA journal_mode = WAL")
            self._connection.execute("PRAGMA synchronous = NORMAL")

    def _apply_migrations(self) -> None:
        schema_dir = Path(__file__).resolve().parent / "schema"
        for migration in sorted(schema_dir.glob("*.sql")):
            LOGGER.debug("Applying migration %s", migration.name)
            script = migration.read_text(encoding="utf-8")
            try:
                with self._connection:
                    self._connection.executescript(script)
            except sqlite3.OperationalError as exc:
                LOGGER.warning(
                    "Migration %s failed (possibly already applied): %s",
                    migration.name,
                    exc,
                )

    def _ensure_indexes(self) -> None:
        """Create supporting indexes that may be missing from older schemas."""
        index_statements = (
            "CREATE INDEX IF NOT EXISTS idx_delivery_tasks_due ON delivery_tasks(state, next_attempt_at)",
            "CREATE INDEX IF NOT EXISTS idx_delivery_tasks_unique ON delivery_tasks(unique_name, state)",
        )
        with self._connection:
            for statement in index_statements:
                self._connection.execute(statement)


def _row_to_task(row: sqlite3.Row) -> DeliveryTask:
    return DeliveryTask(
        kind=TaskKind(row["kind"]),
        payload=json.loads(row["payload"]),
        device_id=row["device_id"],
        api_key=row["api_key"],
        retry_count=int(row["retry_count"]),
        unique_name=row["unique_name"],
        id=int(row["id"]),
        next_attempt_at=float(row["next_attempt_at"]),
        created_at=float(row["created_at"]),
    )


def _row_to_periodic(row: sqlite3.Row) -> PeriodicWork:
    return PeriodicWork(
        name=row["name"],
        kind=TaskKind(row["kind"]),
        interval_seconds=float(row["interval_seconds"]),
        next_run_at=float(row["next_run_at"]),
        attempt=int(row["attempt"]),
    )


__all__ = ["SqliteRelayRepository"]
