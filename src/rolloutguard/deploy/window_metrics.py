"""
Tumbling-window telemetry for canary traffic.

Each rollout owns one window of outcomes. The first outcome recorded after
``window_ms`` has elapsed discards the window and starts a fresh one with no
carry-over, so a canary that recovers stops tripping its stop-loss once the
bad window is gone.

Concurrency model:
- one lock per rollout id guards that rollout's window and rollback claims
- the registry lock only guards membership of the lock and window maps
  (get-or-create, insert, remove), so traffic for different rollouts never
  contends on counters
"""

from __future__ import annotations

import logging
import math
import threading
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from rolloutguard.contracts.models import WindowSnapshot, percentile_nearest_rank
from rolloutguard.observability.logger import EventType, get_observability_logger
from rolloutguard.utils.time_provider import DefaultTimeProvider, TimeProvider

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rolloutguard.observability.logger import ObservabilityLogger

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 300_000
DEFAULT_MAX_SAMPLES = 1000


@dataclass
class WindowMetrics:
    """Mutable counters of one rollout's current window."""

    window_start_ms: int
    max_samples: int = DEFAULT_MAX_SAMPLES
    request_count: int = 0
    error_count: int = 0
    latency_samples: deque[float] = field(init=False)

    def __post_init__(self) -> None:
        self.latency_samples = deque(maxlen=self.max_samples)

    @property
    def error_rate(self) -> float:
        if self.request_count == 0:
            return 0.0
        return self.error_count / self.request_count

    @property
    def p95_latency_ms(self) -> float | None:
        return percentile_nearest_rank(self.latency_samples, 0.95)

    def snapshot(self, rollout_id: str) -> WindowSnapshot:
        return WindowSnapshot(
            rollout_id=rollout_id,
            request_count=self.request_count,
            error_count=self.error_count,
            latency_samples=tuple(self.latency_samples),
            window_start_ms=self.window_start_ms,
        )


class WindowMetricsAggregator:
    """Per-rollout tumbling windows of canary outcomes.

    Example:
        >>> aggregator = WindowMetricsAggregator(window_ms=300_000)
        >>> snap = aggregator.record("checkout-v2", success=False, latency_ms=420.0)
        >>> snap.request_count, snap.error_count
        (1, 1)

    Args:
        window_ms: Window length in milliseconds
        max_samples: Latency samples kept per window (oldest evicted first)
        time_provider: Clock (injectable for tests)
        observability_logger: Structured event logger

    Raises:
        ValueError: If ``window_ms`` or ``max_samples`` is not positive
    """

    def __init__(
        self,
        window_ms: int = DEFAULT_WINDOW_MS,
        max_samples: int = DEFAULT_MAX_SAMPLES,
        time_provider: TimeProvider | None = None,
        observability_logger: ObservabilityLogger | None = None,
    ) -> None:
        if window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {window_ms}")
        if max_samples < 1:
            raise ValueError(f"max_samples must be >= 1, got {max_samples}")

        self.window_ms = window_ms
        self.max_samples = max_samples
        self._time = time_provider or DefaultTimeProvider()
        self._events = observability_logger

        self._windows: dict[str, WindowMetrics] = {}
        self._claims: dict[str, set[tuple[int, str]]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

        self._sweeper: threading.Thread | None = None
        self._sweeper_stop = threading.Event()

    @property
    def events(self) -> ObservabilityLogger:
        if self._events is None:
            self._events = get_observability_logger()
        return self._events

    @contextmanager
    def _locked(self, rollout_id: str) -> Iterator[None]:
        while True:
            with self._registry_lock:
                lock = self._locks.setdefault(rollout_id, threading.Lock())
            lock.acquire()
            with self._registry_lock:
                current = self._locks.get(rollout_id)
            if current is lock:
                break
            # Swept while we waited; retry with the fresh lock.
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def record(
        self,
        rollout_id: str,
        success: bool,
        latency_ms: float | None = None,
    ) -> WindowSnapshot:
        """Record one canary outcome.

        Returns:
            Snapshot of the window including this outcome
        """
        sample = self._valid_latency(rollout_id, latency_ms)
        now_ms = self._time.now_ms()

        with self._locked(rollout_id):
            window = self._windows.get(rollout_id)
            if window is None or now_ms - window.window_start_ms > self.window_ms:
                if window is not None:
                    logger.debug(
                        "Window for %s rolled after %d requests",
                        rollout_id,
                        window.request_count,
                    )
                window = WindowMetrics(window_start_ms=now_ms, max_samples=self.max_samples)
                with self._registry_lock:
                    self._windows[rollout_id] = window

            window.request_count += 1
            if not success:
                window.error_count += 1
            if sample is not None:
                window.latency_samples.append(sample)

            return window.snapshot(rollout_id)

    @staticmethod
    def _valid_latency(rollout_id: str, latency_ms: float | None) -> float | None:
        if latency_ms is None:
            return None
        try:
            value = float(latency_ms)
        except (TypeError, ValueError):
            value = math.nan
        if math.isnan(value) or math.isinf(value) or value < 0:
            logger.warning("Ignoring invalid latency %r for %s", latency_ms, rollout_id)
            return None
        return value

    def claim_rollback(self, rollout_id: str, window_start_ms: int, reason: str) -> bool:
        """Atomically claim the right to fire ``reason`` for one window.

        Returns:
            True for the first claim of (rollout, window start, reason)
        """
        key = (window_start_ms, reason)
        with self._locked(rollout_id):
            claims = self._claims.setdefault(rollout_id, set())
            if key in claims:
                return False
            horizon = window_start_ms - 2 * self.window_ms
            claims.difference_update({c for c in claims if c[0] < horizon})
            claims.add(key)
            return True

    def snapshot(self, rollout_id: str) -> WindowSnapshot | None:
        """Copy of the current window, or None if nothing was recorded."""
        with self._locked(rollout_id):
            window = self._windows.get(rollout_id)
            return window.snapshot(rollout_id) if window is not None else None

    def error_rate(self, rollout_id: str) -> float:
        with self._locked(rollout_id):
            window = self._windows.get(rollout_id)
            return window.error_rate if window is not None else 0.0

    def p95_latency(self, rollout_id: str) -> float | None:
        with self._locked(rollout_id):
            window = self._windows.get(rollout_id)
            return window.p95_latency_ms if window is not None else None

    def reset(self, rollout_id: str) -> bool:
        """Discard the rollout's window.

        Returns:
            True if a window existed
        """
        with self._locked(rollout_id):
            with self._registry_lock:
                removed = self._windows.pop(rollout_id, None) is not None
            self._claims.pop(rollout_id, None)

        if removed:
            self.events.info(
                EventType.WINDOW_RESET,
                f"Window for {rollout_id} reset",
                rollout_id=rollout_id,
            )
        return removed

    def rollout_ids(self) -> list[str]:
        with self._registry_lock:
            return list(self._windows)

    def sweep_idle(self) -> int:
        """Remove windows that started more than two window lengths ago.

        Returns:
            Number of windows removed
        """
        now_ms = self._time.now_ms()
        horizon = 2 * self.window_ms
        removed = 0

        for rollout_id in self.rollout_ids():
            with self._locked(rollout_id):
                window = self._windows.get(rollout_id)
                if window is None or now_ms - window.window_start_ms <= horizon:
                    continue
                with self._registry_lock:
                    del self._windows[rollout_id]
                    self._claims.pop(rollout_id, None)
                    self._locks.pop(rollout_id, None)
                removed += 1

        if removed:
            self.events.log_window_sweep(removed, len(self.rollout_ids()))
        return removed

    def start_sweeper(self, interval_s: float = 60.0) -> None:
        """Run ``sweep_idle`` every ``interval_s`` seconds on a daemon thread."""
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got {interval_s}")
        if self._sweeper is not None and self._sweeper.is_alive():
            return

        self._sweeper_stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            args=(interval_s,),
            name="rolloutguard-window-sweeper",
            daemon=True,
        )
        self._sweeper.start()

    def stop_sweeper(self, timeout: float | None = 5.0) -> None:
        self._sweeper_stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout)
            self._sweeper = None

    @property
    def sweeper_running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def _sweep_loop(self, interval_s: float) -> None:
        while not self._sweeper_stop.wait(interval_s):
            try:
                self.sweep_idle()
            except Exception:
                logger.exception("Window sweep failed")
