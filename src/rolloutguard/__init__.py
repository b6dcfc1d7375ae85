"""
rolloutguard: progressive rollout (canary) controller.

Routes a deterministic slice of traffic to a canary code path, watches that
slice's error rate and p95 latency in tumbling windows, and disables the
rollout automatically when a stop-loss threshold is breached.

Public API:
-----------
- CanaryManager: Client surface (use_canary, record_outcome, update_config)
- CanarySettings: Process-level settings read from ROLLOUTGUARD_* variables
- RolloutConfig / StopLossConfig: Per-rollout configuration values
- RollbackEvent: Audit record of an automatic rollback
- bucket: Deterministic identifier bucketing
- create_canary_manager: Factory for a fully wired manager

Quick Start:
-----------
>>> from rolloutguard import create_canary_manager
>>> manager = create_canary_manager()
>>> manager.update_config("checkout-v2", {"enabled": True, "percentage": 10})
>>> if manager.use_canary("checkout-v2", "user-42"):
...     manager.record_outcome("checkout-v2", "user-42", success=True, latency_ms=120.0)
"""

from __future__ import annotations

from .bucketing import bucket, is_in_rollout
from .config import CanarySettings
from .contracts import (
    RollbackEvent,
    RollbackReason,
    RolloutConfig,
    RoutingVerdict,
    StopLossConfig,
    WindowSnapshot,
)
from .deploy import CanaryManager
from .utils.errors import ConfigurationError, RolloutGuardError, ValidationError

__version__ = "0.3.0"


def create_canary_manager(settings: CanarySettings | None = None) -> CanaryManager:
    """
    Factory function to create a CanaryManager from settings.

    Args:
        settings: Optional settings; read from the environment when omitted.

    Returns:
        Manager with its window sweeper running (when enabled). Call
        ``close()`` on shutdown.
    """
    return CanaryManager.from_settings(settings)


__all__ = [
    "CanaryManager",
    "CanarySettings",
    "ConfigurationError",
    "RollbackEvent",
    "RollbackReason",
    "RolloutConfig",
    "RolloutGuardError",
    "RoutingVerdict",
    "StopLossConfig",
    "ValidationError",
    "WindowSnapshot",
    "__version__",
    "bucket",
    "create_canary_manager",
    "is_in_rollout",
]
