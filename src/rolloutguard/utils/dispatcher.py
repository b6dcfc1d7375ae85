"""
Fire-and-forget dispatch of rollback side effects.

Audit writes and operator notifications run off the request path so that a
slow sink or chat webhook cannot add latency to the request that tripped the
stop-loss. Work goes into a bounded queue served by daemon worker threads;
when the queue is full the task is dropped and logged rather than blocking
the caller.

Usage:
    dispatcher = SideEffectDispatcher(max_queue=1000)
    dispatcher.submit("notify", notifier.notify, rollout_id, reason, details)
    ...
    dispatcher.shutdown()
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import TYPE_CHECKING, Any, Protocol

from rolloutguard.utils.errors import ErrorCode

if TYPE_CHECKING:
    from collections.abc import Callable

_logger = logging.getLogger(__name__)

_STOP = object()


class Dispatcher(Protocol):
    """Anything that can run a named side effect without raising."""

    def submit(self, name: str, fn: Callable[..., Any], *args: Any) -> bool: ...

    def drain(self, timeout: float | None = None) -> bool: ...

    def shutdown(self, timeout: float | None = None) -> None: ...


def _run_isolated(name: str, fn: Callable[..., Any], args: tuple[Any, ...]) -> bool:
    try:
        fn(*args)
        return True
    except Exception as e:
        _logger.error(
            "Side effect %s failed: %s",
            name,
            e,
            extra={"error_code": ErrorCode.E700_SYSTEM_ERROR.value, "side_effect": name},
        )
        return False


class InlineDispatcher:
    """Runs each side effect synchronously on the caller's thread.

    Failures are still isolated and logged. Useful for scripts and tests that
    want deterministic ordering.
    """

    def submit(self, name: str, fn: Callable[..., Any], *args: Any) -> bool:
        _run_isolated(name, fn, args)
        return True

    def drain(self, timeout: float | None = None) -> bool:
        return True

    def shutdown(self, timeout: float | None = None) -> None:
        return None


class SideEffectDispatcher:
    """Bounded work queue with daemon worker threads.

    Args:
        max_queue: Maximum number of pending tasks before new ones are dropped
        workers: Number of worker threads
        name: Thread name prefix
    """

    def __init__(self, max_queue: int = 1000, workers: int = 1, name: str = "rolloutguard") -> None:
        if max_queue < 1:
            raise ValueError(f"max_queue must be >= 1, got {max_queue}")
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")

        self._queue: queue.Queue[Any] = queue.Queue(maxsize=max_queue)
        self._stopped = threading.Event()
        self._dropped = 0
        self._failed = 0
        self._lock = threading.Lock()
        self._threads = [
            threading.Thread(target=self._worker, name=f"{name}-dispatch-{i}", daemon=True)
            for i in range(workers)
        ]
        for thread in self._threads:
            thread.start()

    @property
    def dropped(self) -> int:
        """Number of tasks rejected because the queue was full or stopped."""
        with self._lock:
            return self._dropped

    @property
    def failed(self) -> int:
        """Number of tasks that raised while running."""
        with self._lock:
            return self._failed

    def submit(self, name: str, fn: Callable[..., Any], *args: Any) -> bool:
        """Queue ``fn(*args)``; returns False if the task was dropped."""
        if self._stopped.is_set():
            self._record_drop(name, "dispatcher stopped")
            return False
        try:
            self._queue.put_nowait((name, fn, args))
        except queue.Full:
            self._record_drop(name, "queue full")
            return False
        return True

    def drain(self, timeout: float | None = None) -> bool:
        """Wait until every queued task has run.

        Returns:
            True if the queue drained within ``timeout``
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def shutdown(self, timeout: float | None = 5.0) -> None:
        """Stop accepting work, finish queued tasks and stop the workers."""
        if self._stopped.is_set():
            return
        self._stopped.set()
        for _ in self._threads:
            # Blocks only until a worker frees a slot.
            self._queue.put(_STOP)
        for thread in self._threads:
            thread.join(timeout)

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                name, fn, args = item
                if not _run_isolated(name, fn, args):
                    with self._lock:
                        self._failed += 1
            finally:
                self._queue.task_done()

    def _record_drop(self, name: str, why: str) -> None:
        with self._lock:
            self._dropped += 1
        _logger.warning(
            "Dropped side effect %s: %s",
            name,
            why,
            extra={"error_code": ErrorCode.E705_DISPATCH_QUEUE_FULL.value, "side_effect": name},
        )
