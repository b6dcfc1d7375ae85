"""Canary routing, window telemetry and automatic rollback."""

from rolloutguard.deploy.canary_manager import CanaryManager
from rolloutguard.deploy.routing import RoutingDecision, routes_to_canary
from rolloutguard.deploy.stop_loss import Breach, RollbackTrigger, ThresholdEvaluator
from rolloutguard.deploy.window_metrics import WindowMetrics, WindowMetricsAggregator

__all__ = [
    "Breach",
    "CanaryManager",
    "RollbackTrigger",
    "RoutingDecision",
    "ThresholdEvaluator",
    "WindowMetrics",
    "WindowMetricsAggregator",
    "routes_to_canary",
]
