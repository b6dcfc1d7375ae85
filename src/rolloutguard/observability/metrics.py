"""Prometheus-compatible metrics for rollout control.

Counters cover routing decisions, recorded outcomes, rollbacks and failed
side effects; gauges expose each rollout's current window error rate and
p95 latency so a dashboard shows how close a canary is to its stop-loss.
"""

from __future__ import annotations

from threading import Lock
from typing import Any

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)


class MetricsExporter:
    """Prometheus metrics exporter for rolloutguard.

    Provides:
    - Counters: routing_decisions, outcomes, rollbacks, side_effect_failures,
      config_fallbacks
    - Gauges: window_error_rate, window_p95_latency_ms, window_requests
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics exporter.

        Args:
            registry: Optional Prometheus registry. A private registry is
                created when omitted so several controllers can coexist.
        """
        self.registry = registry or CollectorRegistry()
        self._lock = Lock()

        self.routing_decisions = Counter(
            "rolloutguard_routing_decisions_total",
            "Routing verdicts issued per rollout",
            ["rollout", "verdict"],
            registry=self.registry,
        )

        self.outcomes = Counter(
            "rolloutguard_outcomes_total",
            "Canary request outcomes recorded per rollout",
            ["rollout", "outcome"],
            registry=self.registry,
        )

        self.rollbacks = Counter(
            "rolloutguard_rollbacks_total",
            "Automatic rollbacks triggered by stop-loss breaches",
            ["rollout", "reason"],
            registry=self.registry,
        )

        self.side_effect_failures = Counter(
            "rolloutguard_side_effect_failures_total",
            "Rollback side effects that failed (disable, audit, notify)",
            ["action"],
            registry=self.registry,
        )

        self.config_fallbacks = Counter(
            "rolloutguard_config_fallbacks_total",
            "Config resolutions served below the cache tier",
            ["source"],
            registry=self.registry,
        )

        self.window_error_rate = Gauge(
            "rolloutguard_window_error_rate",
            "Error rate of the current tumbling window",
            ["rollout"],
            registry=self.registry,
        )

        self.window_p95_latency_ms = Gauge(
            "rolloutguard_window_p95_latency_ms",
            "Nearest-rank p95 latency of the current tumbling window",
            ["rollout"],
            registry=self.registry,
        )

        self.window_requests = Gauge(
            "rolloutguard_window_requests",
            "Requests recorded in the current tumbling window",
            ["rollout"],
            registry=self.registry,
        )

    def record_decision(self, rollout_id: str, canary: bool) -> None:
        self.routing_decisions.labels(
            rollout=rollout_id, verdict="canary" if canary else "stable"
        ).inc()

    def record_outcome(self, rollout_id: str, success: bool) -> None:
        self.outcomes.labels(
            rollout=rollout_id, outcome="success" if success else "failure"
        ).inc()

    def record_rollback(self, rollout_id: str, reason: str) -> None:
        self.rollbacks.labels(rollout=rollout_id, reason=reason).inc()

    def record_side_effect_failure(self, action: str) -> None:
        self.side_effect_failures.labels(action=action).inc()

    def record_config_fallback(self, source: str) -> None:
        self.config_fallbacks.labels(source=source).inc()

    def update_window(
        self,
        rollout_id: str,
        request_count: int,
        error_rate: float,
        p95_latency_ms: float | None,
    ) -> None:
        """Publish the current window statistics for one rollout."""
        with self._lock:
            self.window_requests.labels(rollout=rollout_id).set(request_count)
            self.window_error_rate.labels(rollout=rollout_id).set(error_rate)
            if p95_latency_ms is not None:
                self.window_p95_latency_ms.labels(rollout=rollout_id).set(p95_latency_ms)

    def export_metrics(self) -> bytes:
        """Export metrics in Prometheus text format."""
        return generate_latest(self.registry)

    def get_metrics_text(self) -> str:
        return self.export_metrics().decode("utf-8")

    def get_sample_value(self, name: str, labels: dict[str, str] | None = None) -> Any:
        """Read one sample (tests and debugging)."""
        return self.registry.get_sample_value(name, labels or {})


_metrics_exporter: MetricsExporter | None = None
_metrics_exporter_lock = Lock()


def get_metrics_exporter(registry: CollectorRegistry | None = None) -> MetricsExporter:
    """Get or create the shared metrics exporter.

    Note:
        ``registry`` is only honoured on the first call.
    """
    global _metrics_exporter

    if _metrics_exporter is None:
        with _metrics_exporter_lock:
            if _metrics_exporter is None:
                _metrics_exporter = MetricsExporter(registry=registry)

    return _metrics_exporter
