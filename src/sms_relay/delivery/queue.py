"""Durable, retrying delivery queue with connectivity-gated execution."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from ..core.config import QueueSettings
from ..core.datetime_utils import Clock, system_clock
from ..core.interfaces import ConnectivityMonitor, TaskRepository
from ..core.models import DeliveryOutcome, DeliveryTask, PeriodicWork, TaskKind

LOGGER = logging.getLogger(__name__)

PeriodicRunner = Callable[[], DeliveryOutcome]


class TaskExecutor(Protocol):
    """Performs one attempt of a delivery task."""

    def execute(self, task: DeliveryTask) -> DeliveryOutcome:
        """Run the task once and classify the result."""
        raise NotImplementedError


class DeliveryQueue:
    """At-least-once task queue backed by a ``TaskRepository``.

    ``enqueue`` only persists the task; execution happens on a worker
    pool driven by a dispatcher thread (after :meth:`start`) or inline via
    :meth:`run_pending`. Nothing executes while the connectivity monitor
    reports offline.
    """

    def __init__(
        self,
        repository: TaskRepository,
        connectivity: ConnectivityMonitor,
        settings: QueueSettings | None = None,
        *,
        clock: Clock = system_clock,
    ) -> None:
        self._repository = repository
        self._connectivity = connectivity
        self._settings = settings or QueueSettings()
        self._clock = clock
        self._executors: dict[TaskKind, TaskExecutor] = {}
        self._periodic_runners: dict[TaskKind, PeriodicRunner] = {}
        self._periodic_in_flight: set[str] = set()
        self._periodic_lock = threading.Lock()
        self._wakeup = threading.Condition()
        self._slots = threading.BoundedSemaphore(self._settings.workers)
        self._stopping = threading.Event()
        self._dispatcher: threading.Thread | None = None
        self._pool: ThreadPoolExecutor | None = None

    # Registration --------------------------------------------------------------
    def register_executor(self, kind: TaskKind, executor: TaskExecutor) -> None:
        self._executors[kind] = executor

    def register_periodic_runner(self, kind: TaskKind, runner: PeriodicRunner) -> None:
        self._periodic_runners[kind] = runner

    # Submission ------------------------------------------------------------------
    def enqueue(self, task: DeliveryTask) -> None:
        """Persist ``task`` for execution and return immediately.

        Status updates replace a pending task with the same unique name;
        every other kind is kept as a distinct submission.
        """
        task.retry_count = 0
        task.next_attempt_at = self._clock()
        replace = task.kind is TaskKind.STATUS_UPDATE
        task_id = self._repository.insert_task(task, replace_pending=replace)
        LOGGER.debug("Enqueued %s task %s (%s)", task.kind.value, task_id, task.unique_name)
        self._wake()

    def enqueue_unique_periodic(
        self,
        name: str,
        kind: TaskKind,
        interval_seconds: float,
        *,
        initial_delay_seconds: float | None = None,
    ) -> PeriodicWork:
        """Install recurring work, replacing any existing instance of ``name``."""
        delay = interval_seconds if initial_delay_seconds is None else initial_delay_seconds
        work = PeriodicWork(
            name=name,
            kind=kind,
            interval_seconds=interval_seconds,
            next_run_at=self._clock() + delay,
        )
        self._repository.upsert_periodic(work)
        LOGGER.info("Scheduled periodic %s every %.0fs", name, interval_seconds)
        self._wake()
        return work

    def cancel_unique_work(self, name: str) -> bool:
        removed = self._repository.delete_periodic(name)
        if removed:
            LOGGER.info("Cancelled periodic %s", name)
        return removed

    def get_periodic(self, name: str) -> PeriodicWork | None:
        return self._repository.get_periodic(name)

    def pending_count(self) -> int:
        return self._repository.count_pending()

    def backoff_delay(self, retry_count: int) -> float:
        """Return the delay before retry number ``retry_count`` (1-based)."""
        exponent = max(retry_count - 1, 0)
        delay = self._settings.initial_backoff_seconds * (2**exponent)
        return min(delay, self._settings.max_backoff_seconds)

    # Lifecycle ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._dispatcher is not None and self._dispatcher.is_alive()

    def start(self) -> None:
        """Start the dispatcher thread and worker pool."""
        if self.running:
            return
        self._repository.release_stale_claims()
        self._stopping.clear()
        self._pool = ThreadPoolExecutor(
            max_workers=self._settings.workers, thread_name_prefix="delivery"
        )
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop, name="delivery-dispatcher", daemon=True
        )
        self._dispatcher.start()
        LOGGER.info("Delivery queue started with %d worker(s)", self._settings.workers)

    def stop(self, *, wait: bool = True) -> None:
        """Stop dispatching; in-flight tasks run to completion when ``wait``."""
        self._stopping.set()
        self._wake()
        if self._dispatcher is not None:
            self._dispatcher.join(timeout=5)
            self._dispatcher = None
        if self._pool is not None:
            self._pool.shutdown(wait=wait)
            self._pool = None
        LOGGER.info("Delivery queue stopped")

    def notify_connectivity_changed(self) -> None:
        """Wake the dispatcher after the network comes back."""
        LOGGER.debug("Connectivity changed; waking dispatcher")
        self._wake()

    # Synchronous draining ---------------------------------------------------------
    def run_pending(self, *, include_periodic: bool = True) -> int:
        """Execute every currently due task inline and return how many ran."""
        if not self._connectivity.is_connected():
            LOGGER.info("Offline; leaving %d task(s) queued", self.pending_count())
            return 0
        executed = 0
        while (task := self._repository.claim_next_due(self._clock())) is not None:
            self._run_task(task)
            executed += 1
        if include_periodic:
            for work in self._due_periodic():
                self._run_periodic(work)
                executed += 1
        return executed

    # Internals ------------------------------------------------------------------
    def _wake(self) -> None:
        with self._wakeup:
            self._wakeup.notify_all()

    def _dispatch_loop(self) -> None:
        while not self._stopping.is_set():
            if self._connectivity.is_connected():
                self._dispatch_due()
            with self._wakeup:
                if self._stopping.is_set():
                    break
                self._wakeup.wait(timeout=self._settings.poll_interval_seconds)

    def _dispatch_due(self) -> None:
        pool = self._pool
        if pool is None:
            return
        for work in self._due_periodic():
            if not self._slots.acquire(blocking=False):
                self._finish_periodic(work.name)
                continue
            pool.submit(self._release_after, self._run_periodic, work)
        while self._slots.acquire(blocking=False):
            task = self._repository.claim_next_due(self._clock())
            if task is None:
                self._slots.release()
                return
            pool.submit(self._release_after, self._run_task, task)

    def _release_after(self, func: Callable[..., None], *args: object) -> None:
        try:
            func(*args)
        finally:
            self._slots.release()
            self._wake()

    def _run_task(self, task: DeliveryTask) -> None:
        executor = self._executors.get(task.kind)
        if executor is None:
            LOGGER.error("No executor registered for %s; dropping task %s", task.kind, task.id)
            outcome = DeliveryOutcome.TERMINAL_FAILURE
        else:
            try:
                outcome = executor.execute(task)
            except Exception:  # pylint: disable=broad-except
                LOGGER.exception("Executor for %s task %s crashed", task.kind.value, task.id)
                outcome = DeliveryOutcome.RETRYABLE_FAILURE
        self._apply_outcome(task, outcome)

    def _apply_outcome(self, task: DeliveryTask, outcome: DeliveryOutcome) -> None:
        if task.id is None:
            LOGGER.error("Cannot record %s outcome for an unsaved task", task.kind.value)
            return
        if outcome is DeliveryOutcome.SUCCESS:
            self._repository.complete_task(task.id)
            LOGGER.debug("Task %s (%s) delivered", task.id, task.kind.value)
            return
        if outcome is DeliveryOutcome.RETRYABLE_FAILURE:
            if task.retry_count >= self._settings.max_retries:
                self._repository.complete_task(task.id)
                LOGGER.error(
                    "Task %s (%s) failed after %d retries; giving up",
                    task.id,
                    task.kind.value,
                    task.retry_count,
                )
                return
            retry_count = task.retry_count + 1
            delay = self.backoff_delay(retry_count)
            self._repository.reschedule_task(task.id, retry_count, self._clock() + delay)
            LOGGER.warning(
                "Task %s (%s) failed; retry %d/%d in %.0fs",
                task.id,
                task.kind.value,
                retry_count,
                self._settings.max_retries,
                delay,
            )
            return
        self._repository.complete_task(task.id)
        LOGGER.error("Task %s (%s) failed permanently", task.id, task.kind.value)

    def _due_periodic(self) -> list[PeriodicWork]:
        now = self._clock()
        due: list[PeriodicWork] = []
        with self._periodic_lock:
            for work in self._repository.list_periodic():
                if work.next_run_at > now or work.name in self._periodic_in_flight:
                    continue
                self._periodic_in_flight.add(work.name)
                due.append(work)
        return due

    def _run_periodic(self, work: PeriodicWork) -> None:
        try:
            runner = self._periodic_runners.get(work.kind)
            if runner is None:
                LOGGER.error("No runner registered for periodic %s", work.name)
                outcome = DeliveryOutcome.TERMINAL_FAILURE
            else:
                try:
                    outcome = runner()
                except Exception:  # pylint: disable=broad-except
                    LOGGER.exception("Periodic %s crashed", work.name)
                    outcome = DeliveryOutcome.RETRYABLE_FAILURE
            self._reschedule_periodic(work, outcome)
        finally:
            self._finish_periodic(work.name)

    def _finish_periodic(self, name: str) -> None:
        with self._periodic_lock:
            self._periodic_in_flight.discard(name)

    def _reschedule_periodic(self, work: PeriodicWork, outcome: DeliveryOutcome) -> None:
        current = self._repository.get_periodic(work.name)
        if current is None:
            return
        if (
            current.interval_seconds != work.interval_seconds
            or current.next_run_at != work.next_run_at
        ):
            # Replaced while running; the new schedule wins.
            return
        now = self._clock()
        regular_run = now + work.interval_seconds
        if (
            outcome is DeliveryOutcome.RETRYABLE_FAILURE
            and work.attempt < self._settings.max_retries
        ):
            attempt = work.attempt + 1
            next_run = min(now + self.backoff_delay(attempt), regular_run)
            LOGGER.warning("Periodic %s failed; retry %d at +%.0fs", work.name, attempt, next_run - now)
        else:
            attempt = 0
            next_run = regular_run
        self._repository.upsert_periodic(
            PeriodicWork(
                name=work.name,
                kind=work.kind,
                interval_seconds=work.interval_seconds,
                next_run_at=next_run,
                attempt=attempt,
            )
        )


__all__ = ["DeliveryQueue", "PeriodicRunner", "TaskExecutor"]
