"""Tests for the durable delivery queue."""

from __future__ import annotations

import threading

from conftest import RecordingGateway, ToggleConnectivity
from sms_relay.core.config import QueueSettings
from sms_relay.core.models import (
    DeliveryOutcome,
    DeliveryTask,
    MessageState,
    MessageStatus,
    TaskKind,
)
from sms_relay.delivery import DeliveryQueue, InboundForwardExecutor, StatusUpdateExecutor
from sms_relay.outbound import StatusReporter


class ScriptedExecutor:
    """Executor returning queued outcomes, then a default."""

    def __init__(self, *outcomes: DeliveryOutcome, default=DeliveryOutcome.SUCCESS) -> None:
        self.outcomes = list(outcomes)
        self.default = default
        self.seen: list[tuple[int | None, int]] = []

    def execute(self, task: DeliveryTask) -> DeliveryOutcome:
        self.seen.append((task.id, task.retry_count))
        if self.outcomes:
            return self.outcomes.pop(0)
        return self.default


def _inbound_task() -> DeliveryTask:
    return DeliveryTask(
        kind=TaskKind.INBOUND_FORWARD,
        payload={"sender": "+1555", "body": "hi", "received_at": 1, "fingerprint": "f"},
        device_id="device-1",
        api_key="key",
        unique_name="sms_received_1",
    )


def _drain_with_backoff(queue: DeliveryQueue, clock, rounds: int = 12) -> None:
    queue.run_pending()
    for _ in range(rounds):
        clock.advance(24 * 60 * 60)
        queue.run_pending()


def test_successful_task_is_discarded(queue) -> None:
    """A task that succeeds runs once and leaves the queue."""

    executor = ScriptedExecutor()
    queue.register_executor(TaskKind.INBOUND_FORWARD, executor)
    queue.enqueue(_inbound_task())

    assert queue.run_pending() == 1
    assert len(executor.seen) == 1
    assert queue.pending_count() == 0


def test_retryable_failures_stop_after_five_retries(queue, clock) -> None:
    """Six consecutive failures mean five retries, then the task is dropped."""

    executor = ScriptedExecutor(default=DeliveryOutcome.RETRYABLE_FAILURE)
    queue.register_executor(TaskKind.INBOUND_FORWARD, executor)
    queue.enqueue(_inbound_task())

    _drain_with_backoff(queue, clock)

    assert [retry for _, retry in executor.seen] == [0, 1, 2, 3, 4, 5]
    assert queue.pending_count() == 0


def test_retry_succeeds_before_limit(queue, clock) -> None:
    """A task retried fewer than five times stops retrying on success."""

    executor = ScriptedExecutor(
        DeliveryOutcome.RETRYABLE_FAILURE, DeliveryOutcome.RETRYABLE_FAILURE
    )
    queue.register_executor(TaskKind.INBOUND_FORWARD, executor)
    queue.enqueue(_inbound_task())

    _drain_with_backoff(queue, clock)

    assert len(executor.seen) == 3
    assert queue.pending_count() == 0


def test_backoff_is_exponential_from_ten_seconds(queue, repository, clock) -> None:
    """Retries wait 10s, 20s, 40s ... after each failure."""

    assert [queue.backoff_delay(n) for n in range(1, 6)] == [10, 20, 40, 80, 160]

    executor = ScriptedExecutor(default=DeliveryOutcome.RETRYABLE_FAILURE)
    queue.register_executor(TaskKind.INBOUND_FORWARD, executor)
    queue.enqueue(_inbound_task())
    queue.run_pending()
    assert repository.next_due_at() == clock() + 10

    clock.advance(9)
    assert queue.run_pending() == 0
    clock.advance(1)
    assert queue.run_pending() == 1
    assert repository.next_due_at() == clock() + 20


def test_backoff_is_capped(repository, connectivity, clock) -> None:
    """Delays never exceed the configured maximum."""

    queue = DeliveryQueue(
        repository,
        connectivity,
        QueueSettings(initial_backoff_seconds=10, max_backoff_seconds=25),
        clock=clock,
    )
    assert queue.backoff_delay(3) == 25


def test_terminal_failure_is_not_retried(queue, clock) -> None:
    """Terminal failures drop the task immediately."""

    executor = ScriptedExecutor(DeliveryOutcome.TERMINAL_FAILURE)
    queue.register_executor(TaskKind.INBOUND_FORWARD, executor)
    queue.enqueue(_inbound_task())

    _drain_with_backoff(queue, clock)
    assert len(executor.seen) == 1
    assert queue.pending_count() == 0


def test_crashing_executor_counts_as_retryable(queue, clock) -> None:
    """Unexpected exceptions are retried like transient failures."""

    class Exploding:
        calls = 0

        def execute(self, task: DeliveryTask) -> DeliveryOutcome:
            Exploding.calls += 1
            if Exploding.calls == 1:
                raise RuntimeError("kaboom")
            return DeliveryOutcome.SUCCESS

    queue.register_executor(TaskKind.INBOUND_FORWARD, Exploding())
    queue.enqueue(_inbound_task())
    _drain_with_backoff(queue, clock, rounds=1)
    assert Exploding.calls == 2
    assert queue.pending_count() == 0


def test_nothing_runs_while_offline(queue, connectivity) -> None:
    """Tasks wait while offline and run when connectivity returns."""

    executor = ScriptedExecutor()
    queue.register_executor(TaskKind.INBOUND_FORWARD, executor)
    connectivity.connected = False
    queue.enqueue(_inbound_task())

    assert queue.run_pending() == 0
    assert executor.seen == []
    assert queue.pending_count() == 1

    connectivity.connected = True
    assert queue.run_pending() == 1
    assert len(executor.seen) == 1


def test_inbound_tasks_are_never_collapsed(queue) -> None:
    """Every inbound submission is executed, even with identical payloads."""

    executor = ScriptedExecutor()
    queue.register_executor(TaskKind.INBOUND_FORWARD, executor)
    queue.enqueue(_inbound_task())
    queue.enqueue(_inbound_task())
    assert queue.run_pending() == 2


def test_status_updates_collapse_to_latest(queue, preferences, connectivity, clock) -> None:
    """Two updates for the same message and status deliver only the latest."""

    gateway = RecordingGateway()
    queue.register_executor(TaskKind.STATUS_UPDATE, StatusUpdateExecutor(gateway))
    reporter = StatusReporter(preferences, queue)
    connectivity.connected = False

    for timestamp in (1000, 2000):
        reporter.report(
            MessageStatus(
                message_id="msg-1",
                batch_id="batch-1",
                status=MessageState.SENT,
                timestamp=timestamp,
                recipient="+15550001111",
            )
        )
    reporter.report(
        MessageStatus(
            message_id="msg-1",
            batch_id="batch-1",
            status=MessageState.DELIVERED,
            timestamp=3000,
            recipient="+15550001111",
        )
    )

    connectivity.connected = True
    queue.run_pending()

    assert [(s.status, s.timestamp) for s in gateway.statuses] == [
        (MessageState.SENT, 2000),
        (MessageState.DELIVERED, 3000),
    ]


def test_executors_classify_gateway_errors(queue, clock) -> None:
    """Gateway errors are retried; a recovered gateway receives the message."""

    gateway = RecordingGateway()
    gateway.fail = True
    queue.register_executor(TaskKind.INBOUND_FORWARD, InboundForwardExecutor(gateway))
    queue.enqueue(_inbound_task())

    queue.run_pending()
    assert queue.pending_count() == 1
    gateway.fail = False
    clock.advance(10)
    queue.run_pending()
    assert [m.body for m in gateway.inbound] == ["hi"]


def test_executor_drops_task_without_credentials_or_payload() -> None:
    """Missing credentials or unreadable payloads are terminal."""

    executor = InboundForwardExecutor(RecordingGateway())
    no_key = _inbound_task()
    no_key.api_key = ""
    assert executor.execute(no_key) is DeliveryOutcome.TERMINAL_FAILURE

    broken = _inbound_task()
    broken.payload = {"sender": "x"}
    assert executor.execute(broken) is DeliveryOutcome.TERMINAL_FAILURE


def test_periodic_work_runs_and_retries_with_backoff(queue, clock) -> None:
    """Periodic work reruns on its interval and retries failures sooner."""

    outcomes = [DeliveryOutcome.RETRYABLE_FAILURE, DeliveryOutcome.SUCCESS]
    calls: list[float] = []

    def runner() -> DeliveryOutcome:
        calls.append(clock())
        return outcomes.pop(0) if outcomes else DeliveryOutcome.SUCCESS

    queue.register_periodic_runner(TaskKind.HEARTBEAT, runner)
    queue.enqueue_unique_periodic("hb", TaskKind.HEARTBEAT, 900, initial_delay_seconds=0)

    queue.run_pending()
    work = queue.get_periodic("hb")
    assert work is not None and work.attempt == 1
    assert work.next_run_at == clock() + 10

    clock.advance(10)
    queue.run_pending()
    work = queue.get_periodic("hb")
    assert work is not None and work.attempt == 0
    assert work.next_run_at == clock() + 900
    assert len(calls) == 2


def test_unique_periodic_replaces_and_cancels(queue) -> None:
    """Scheduling the same name twice keeps one instance; cancel removes it."""

    queue.enqueue_unique_periodic("hb", TaskKind.HEARTBEAT, 900)
    queue.enqueue_unique_periodic("hb", TaskKind.HEARTBEAT, 1800)
    work = queue.get_periodic("hb")
    assert work is not None and work.interval_seconds == 1800
    assert queue.cancel_unique_work("hb") is True
    assert queue.get_periodic("hb") is None
    assert queue.cancel_unique_work("hb") is False


def test_background_dispatcher_resumes_after_reconnect(repository) -> None:
    """The worker pool executes tasks once the network comes back."""

    connectivity = ToggleConnectivity(False)
    queue = DeliveryQueue(
        repository, connectivity, QueueSettings(poll_interval_seconds=0.05)
    )
    done = threading.Event()

    class Signalling:
        def execute(self, task: DeliveryTask) -> DeliveryOutcome:
            done.set()
            return DeliveryOutcome.SUCCESS

    queue.register_executor(TaskKind.INBOUND_FORWARD, Signalling())
    queue.start()
    try:
        queue.enqueue(_inbound_task())
        assert not done.wait(0.3)
        connectivity.connected = True
        queue.notify_connectivity_changed()
        assert done.wait(5)
    finally:
        queue.stop()
    assert queue.pending_count() == 0


def test_outcome_for_unsaved_task_is_ignored(queue) -> None:
    """A task that was never persisted runs but leaves no record behind."""

    executor = ScriptedExecutor(DeliveryOutcome.RETRYABLE_FAILURE)
    queue.register_executor(TaskKind.INBOUND_FORWARD, executor)

    queue._run_task(_inbound_task())  # pylint: disable=protected-access

    assert executor.seen == [(None, 0)]
    assert queue.pending_count() == 0
