"""
rolloutguard Contracts Module.

Contracts:
- models: rollout configuration, routing verdicts, window snapshots and
  rollback audit records
"""

from rolloutguard.contracts.models import (
    DEFAULT_ERROR_RATE_THRESHOLD,
    DEFAULT_P95_LATENCY_THRESHOLD_MS,
    SAFE_DEFAULT_CONFIG,
    RollbackEvent,
    RollbackReason,
    RolloutConfig,
    RoutingVerdict,
    StopLossConfig,
    WindowSnapshot,
    clamp_percentage,
    percentile_nearest_rank,
)

__all__ = [
    "DEFAULT_ERROR_RATE_THRESHOLD",
    "DEFAULT_P95_LATENCY_THRESHOLD_MS",
    "SAFE_DEFAULT_CONFIG",
    "RollbackEvent",
    "RollbackReason",
    "RolloutConfig",
    "RoutingVerdict",
    "StopLossConfig",
    "WindowSnapshot",
    "clamp_percentage",
    "percentile_nearest_rank",
]
