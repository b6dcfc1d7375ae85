"""Observability for rolloutguard: structured logs, Prometheus metrics, audit sinks."""

from .audit import AuditSink, InMemoryAuditLog, JsonlAuditLog, LoggingAuditSink
from .logger import (
    EventType,
    JSONFormatter,
    ObservabilityLogger,
    get_observability_logger,
    reset_observability_logger,
)
from .metrics import MetricsExporter, get_metrics_exporter

__all__ = [
    # Audit
    "AuditSink",
    "InMemoryAuditLog",
    "JsonlAuditLog",
    "LoggingAuditSink",
    # Logging
    "EventType",
    "JSONFormatter",
    "ObservabilityLogger",
    "get_observability_logger",
    "reset_observability_logger",
    # Metrics
    "MetricsExporter",
    "get_metrics_exporter",
]
