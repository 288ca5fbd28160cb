"""
Bounded background task dispatcher.

A fixed pool of worker threads drains one shared FIFO queue. Submission never
blocks: when the queue is full the task is dropped and counted.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, asdict
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

# Queued once per worker on shutdown, behind any pending tasks
_STOP = object()


@dataclass
class QueueStats:
    """Snapshot of dispatcher counters."""

    queue_size: int
    queue_capacity: int
    queue_utilization: float
    active_workers: int
    submitted_tasks: int
    processed_tasks: int
    failed_tasks: int
    dropped_tasks: int

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return asdict(self)


class TaskDispatcher:
    """
    Worker pool with a bounded queue and drop-on-full submission.

    The handler is called as ``handler(task, timeout)``; the timeout is the
    dispatcher's own per-task timeout, never the submitting caller's.
    """

    def __init__(
        self,
        handler: Callable[[Any, float], None],
        workers: int = 5,
        capacity: Optional[int] = None,
        task_timeout: float = 30.0,
        name: str = "memory-worker"
    ):
        """
        Initialize and start the worker pool.

        Args:
            handler: Function run for every task
            workers: Number of worker threads
            capacity: Queue capacity (defaults to 2 x workers)
            task_timeout: Per-task timeout in seconds
            name: Thread name prefix
        """
        if workers <= 0:
            raise ValueError("workers must be positive")

        self.handler = handler
        self.workers = workers
        self.capacity = capacity if capacity and capacity > 0 else workers * 2
        self.task_timeout = task_timeout

        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=self.capacity)
        self._counter_lock = threading.Lock()
        self._submitted = 0
        self._processed = 0
        self._failed = 0
        self._dropped = 0

        self._closing = threading.Event()
        # Held while checking _closing and enqueueing so no task lands behind a stop sentinel
        self._submit_lock = threading.Lock()
        self._threads: List[threading.Thread] = []
        for i in range(workers):
            thread = threading.Thread(target=self._worker, name=f"{name}-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)

        logger.info("Started %d workers (queue capacity %d)", workers, self.capacity)

    def submit(self, task: Any) -> bool:
        """
        Enqueue a task without blocking.

        Returns:
            True if queued, False if dropped (queue full or shutting down)
        """
        with self._submit_lock:
            if self._closing.is_set():
                logger.warning("Dispatcher is shutting down, dropping %s", type(task).__name__)
                self._count_drop()
                return False

            try:
                self._queue.put_nowait(task)
            except queue.Full:
                logger.warning(
                    "Task queue full (%d/%d), dropping %s",
                    self._queue.qsize(), self.capacity, type(task).__name__
                )
                self._count_drop()
                return False

        with self._counter_lock:
            self._submitted += 1
        return True

    def _count_drop(self) -> None:
        with self._counter_lock:
            self._dropped += 1

    def _worker(self) -> None:
        while True:
            task = self._queue.get()
            try:
                if task is _STOP:
                    return
                self._run(task)
            finally:
                self._queue.task_done()

    def _run(self, task: Any) -> None:
        start = time.time()
        try:
            self.handler(task, self.task_timeout)
        except Exception:
            logger.exception("Background task %s failed", type(task).__name__)
            with self._counter_lock:
                self._failed += 1
        else:
            with self._counter_lock:
                self._processed += 1

        elapsed = time.time() - start
        if elapsed > self.task_timeout:
            logger.warning(
                "Task %s took %.1fs, over the %.1fs timeout",
                type(task).__name__, elapsed, self.task_timeout
            )
        else:
            logger.debug("Task %s finished in %.3fs", type(task).__name__, elapsed)

    def join(self) -> None:
        """Block until every queued task has been processed."""
        self._queue.join()

    def shutdown(self, wait: bool = True) -> None:
        """
        Stop accepting tasks and let workers drain the queue.

        Args:
            wait: Block until all workers have exited
        """
        with self._submit_lock:
            if self._closing.is_set():
                return
            self._closing.set()

        for _ in self._threads:
            self._queue.put(_STOP)

        if wait:
            for thread in self._threads:
                thread.join()
        logger.info("Dispatcher stopped")

    @property
    def is_running(self) -> bool:
        return not self._closing.is_set()

    def stats(self) -> QueueStats:
        size = self._queue.qsize()
        with self._counter_lock:
            return QueueStats(
                queue_size=size,
                queue_capacity=self.capacity,
                queue_utilization=size / self.capacity if self.capacity else 0.0,
                active_workers=sum(1 for t in self._threads if t.is_alive()),
                submitted_tasks=self._submitted,
                processed_tasks=self._processed,
                failed_tasks=self._failed,
                dropped_tasks=self._dropped,
            )
