"""
Shared pytest fixtures and configuration for rolloutguard tests.

This module provides fake clocks, isolated metrics registries and fully
wired managers so every test runs against its own controller instance.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

import pytest

from rolloutguard.deploy.canary_manager import CanaryManager
from rolloutguard.deploy.stop_loss import RollbackTrigger, ThresholdEvaluator
from rolloutguard.deploy.window_metrics import WindowMetricsAggregator
from rolloutguard.flags.static_defaults import StaticDefaults
from rolloutguard.flags.store import FlagStore
from rolloutguard.observability.audit import InMemoryAuditLog
from rolloutguard.observability.logger import ObservabilityLogger, reset_observability_logger
from rolloutguard.observability.metrics import MetricsExporter
from rolloutguard.utils.cache import MemoryCache
from rolloutguard.utils.dispatcher import InlineDispatcher
from rolloutguard.utils.time_provider import FakeTimeProvider

if TYPE_CHECKING:
    from collections.abc import Iterator

# ============================================================
# Pytest Hooks and Configuration
# ============================================================


def pytest_configure(config: Any) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "property: marks property-based tests")
    config.addinivalue_line(
        "markers", "load: marks tests as load/stress tests (concurrency, stress)"
    )


# Epoch seconds used by every fake clock (2023-11-14T22:13:20Z)
START_TIME = 1_700_000_000.0


class RecordingNotifier:
    """Notifier double that remembers every alert."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def notify(self, rollout_id: str, reason: str, details: dict[str, Any]) -> None:
        self.calls.append((rollout_id, reason, details))
        if self.fail:
            raise ConnectionError("chat webhook unreachable")


class BrokenCache:
    """Config cache whose backend is down."""

    def get(self, key: str) -> Any:
        raise TimeoutError("cache read timed out")

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        raise TimeoutError("cache write timed out")

    def delete(self, key: str) -> bool:
        raise TimeoutError("cache delete timed out")


# ============================================================
# Environment Isolation Fixtures
# ============================================================


@pytest.fixture
def isolate_environment() -> Iterator[None]:
    """Snapshot ``os.environ`` and restore it after the test."""
    saved = dict(os.environ)
    yield
    os.environ.clear()
    os.environ.update(saved)


@pytest.fixture(autouse=True)
def _reset_shared_logger() -> Iterator[None]:
    reset_observability_logger()
    yield
    reset_observability_logger()


# ============================================================
# Controller Fixtures
# ============================================================


@pytest.fixture
def fake_clock() -> FakeTimeProvider:
    return FakeTimeProvider(start_time=START_TIME)


@pytest.fixture
def events() -> ObservabilityLogger:
    """Structured logger without handlers; records still reach caplog."""
    return ObservabilityLogger(logger_name="rolloutguard_test_events", console_output=False)


@pytest.fixture
def metrics() -> MetricsExporter:
    return MetricsExporter()


@pytest.fixture
def memory_cache(fake_clock: FakeTimeProvider) -> MemoryCache:
    return MemoryCache(default_ttl=3600, time_provider=fake_clock)


@pytest.fixture
def static_env() -> dict[str, str]:
    """Per-rollout environment read by the static defaults (empty by default)."""
    return {}


@pytest.fixture
def flag_store(
    memory_cache: MemoryCache,
    static_env: dict[str, str],
    metrics: MetricsExporter,
    events: ObservabilityLogger,
) -> FlagStore:
    return FlagStore(
        memory_cache,
        static_defaults=StaticDefaults(env=static_env),
        metrics=metrics,
        observability_logger=events,
    )


@pytest.fixture
def aggregator(
    fake_clock: FakeTimeProvider, events: ObservabilityLogger
) -> WindowMetricsAggregator:
    return WindowMetricsAggregator(
        window_ms=300_000,
        max_samples=1000,
        time_provider=fake_clock,
        observability_logger=events,
    )


@pytest.fixture
def audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


@pytest.fixture
def broken_cache() -> BrokenCache:
    return BrokenCache()


@pytest.fixture
def trigger(
    flag_store: FlagStore,
    audit_log: InMemoryAuditLog,
    notifier: RecordingNotifier,
    metrics: MetricsExporter,
    events: ObservabilityLogger,
    fake_clock: FakeTimeProvider,
) -> RollbackTrigger:
    return RollbackTrigger(
        flag_store,
        audit_log,
        notifier,
        dispatcher=InlineDispatcher(),
        metrics=metrics,
        observability_logger=events,
        time_provider=fake_clock,
    )


@pytest.fixture
def manager(
    flag_store: FlagStore,
    aggregator: WindowMetricsAggregator,
    trigger: RollbackTrigger,
    metrics: MetricsExporter,
) -> Iterator[CanaryManager]:
    canary = CanaryManager(
        flag_store,
        aggregator,
        trigger,
        evaluator=ThresholdEvaluator(),
        metrics=metrics,
    )
    yield canary
    canary.close()


@pytest.fixture
def build_manager(
    fake_clock: FakeTimeProvider,
    static_env: dict[str, str],
    metrics: MetricsExporter,
    events: ObservabilityLogger,
    audit_log: InMemoryAuditLog,
) -> Iterator[Any]:
    """Factory for managers with a custom cache, notifier or audit sink."""
    built: list[CanaryManager] = []

    def _build(
        cache: Any = None,
        notifier: Any = None,
        audit_sink: Any = None,
        dispatcher: Any = None,
        window_ms: int = 300_000,
    ) -> CanaryManager:
        store = FlagStore(
            cache if cache is not None else MemoryCache(time_provider=fake_clock),
            static_defaults=StaticDefaults(env=static_env),
            metrics=metrics,
            observability_logger=events,
        )
        canary = CanaryManager(
            store,
            WindowMetricsAggregator(
                window_ms=window_ms, time_provider=fake_clock, observability_logger=events
            ),
            RollbackTrigger(
                store,
                audit_sink if audit_sink is not None else audit_log,
                notifier if notifier is not None else RecordingNotifier(),
                dispatcher=dispatcher or InlineDispatcher(),
                metrics=metrics,
                observability_logger=events,
                time_provider=fake_clock,
            ),
            metrics=metrics,
        )
        built.append(canary)
        return canary

    yield _build
    for canary in built:
        canary.close()
