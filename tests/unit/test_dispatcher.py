"""
Unit tests for the bounded task dispatcher.
"""

import logging
import threading
import time

import pytest

from adaptive_memory.ops.dispatcher import TaskDispatcher
from adaptive_memory.ops.tasks import MemoryAnalysisTask, SummaryUpdateTask


@pytest.fixture
def gate():
    """Event that blocked handlers wait on."""
    event = threading.Event()
    yield event
    event.set()


def test_processes_tasks_in_background():
    seen = []
    dispatcher = TaskDispatcher(lambda task, timeout: seen.append((task, timeout)), workers=2, task_timeout=7.0)

    task = SummaryUpdateTask(user_id="u1", session_id="s1")
    assert dispatcher.submit(task) is True
    dispatcher.shutdown(wait=True)

    assert seen == [(task, 7.0)]
    stats = dispatcher.stats()
    assert stats.submitted_tasks == 1
    assert stats.processed_tasks == 1
    assert stats.failed_tasks == 0


def test_default_capacity_is_twice_workers():
    dispatcher = TaskDispatcher(lambda task, timeout: None, workers=3)
    assert dispatcher.capacity == 6
    assert dispatcher.stats().queue_capacity == 6
    assert dispatcher.stats().active_workers == 3
    dispatcher.shutdown()


def test_full_queue_drops_without_blocking(gate, caplog):
    started = threading.Event()

    def handler(task, timeout):
        started.set()
        gate.wait(5)

    dispatcher = TaskDispatcher(handler, workers=1, capacity=2)
    dispatcher.submit(SummaryUpdateTask("u1", "busy"))
    assert started.wait(2)

    # Worker is busy: two fit in the queue, the rest are dropped
    start = time.time()
    results = [dispatcher.submit(SummaryUpdateTask("u1", f"s{i}")) for i in range(5)]
    elapsed = time.time() - start

    assert results == [True, True, False, False, False]
    assert elapsed < 1.0

    stats = dispatcher.stats()
    assert stats.dropped_tasks == 3
    assert stats.queue_size == 2
    assert stats.queue_utilization == pytest.approx(1.0)
    assert "Task queue full" in caplog.text

    gate.set()
    dispatcher.shutdown(wait=True)
    assert dispatcher.stats().processed_tasks == 3


def test_failing_task_does_not_kill_worker(caplog):
    seen = []

    def handler(task, timeout):
        if task.message == "boom":
            raise RuntimeError("handler exploded")
        seen.append(task.message)

    dispatcher = TaskDispatcher(handler, workers=1, capacity=10)
    dispatcher.submit(MemoryAnalysisTask("u1", "boom"))
    dispatcher.submit(MemoryAnalysisTask("u1", "fine"))
    dispatcher.shutdown(wait=True)

    assert seen == ["fine"]
    stats = dispatcher.stats()
    assert stats.failed_tasks == 1
    assert stats.processed_tasks == 1
    assert "handler exploded" in caplog.text


def test_shutdown_drains_queue():
    seen = []

    def handler(task, timeout):
        time.sleep(0.01)
        seen.append(task.session_id)

    dispatcher = TaskDispatcher(handler, workers=2, capacity=20)
    for i in range(10):
        assert dispatcher.submit(SummaryUpdateTask("u1", f"s{i}"))

    dispatcher.shutdown(wait=True)

    assert sorted(seen) == sorted(f"s{i}" for i in range(10))
    assert dispatcher.stats().active_workers == 0


def test_submit_after_shutdown_is_dropped():
    dispatcher = TaskDispatcher(lambda task, timeout: None, workers=1)
    dispatcher.shutdown()

    assert dispatcher.submit(SummaryUpdateTask("u1", "s1")) is False
    assert dispatcher.stats().dropped_tasks == 1
    assert dispatcher.is_running is False

    # Second shutdown is a no-op
    dispatcher.shutdown()


def test_accepted_tasks_run_when_shutdown_races_submit():
    ran = []
    lock = threading.Lock()

    def handler(task, timeout):
        with lock:
            ran.append(task)

    dispatcher = TaskDispatcher(handler, workers=2, capacity=1000)
    accepted = []
    start = threading.Event()

    def producer(n):
        start.wait()
        for i in range(200):
            task = SummaryUpdateTask(f"u{n}", f"s{i}")
            if dispatcher.submit(task):
                with lock:
                    accepted.append(task)

    producers = [threading.Thread(target=producer, args=(n,)) for n in range(4)]
    for t in producers:
        t.start()
    start.set()
    dispatcher.shutdown(wait=True)
    for t in producers:
        t.join()

    assert sorted(ran, key=repr) == sorted(accepted, key=repr)
    stats = dispatcher.stats()
    assert stats.submitted_tasks == len(accepted)
    assert stats.processed_tasks + stats.dropped_tasks == 800


def test_slow_task_logs_overrun(caplog):
    dispatcher = TaskDispatcher(lambda task, timeout: time.sleep(0.05), workers=1, task_timeout=0.01)
    dispatcher.submit(SummaryUpdateTask("u1", "s1"))
    dispatcher.shutdown(wait=True)

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert any("over the" in r.getMessage() for r in warnings)


def test_invalid_worker_count():
    with pytest.raises(ValueError):
        TaskDispatcher(lambda task, timeout: None, workers=0)


def test_stats_to_dict():
    dispatcher = TaskDispatcher(lambda task, timeout: None, workers=1)
    data = dispatcher.stats().to_dict()
    dispatcher.shutdown()

    assert set(data) == {
        "queue_size", "queue_capacity", "queue_utilization", "active_workers",
        "submitted_tasks", "processed_tasks", "failed_tasks", "dropped_tasks",
    }
