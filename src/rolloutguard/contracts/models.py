"""
Rollout Contract Models.

Value types shared by the flag store, the window aggregator, the stop-loss
evaluator and the admin API.

CONTRACT STABILITY:
``RolloutConfig.to_record()`` is the cache wire format (a flat record under
``canary:<rollout_id>:config``). Do not rename its keys without migrating
cached entries.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from rolloutguard.utils.env import parse_bool

logger = logging.getLogger(__name__)

DEFAULT_ERROR_RATE_THRESHOLD = 0.05
DEFAULT_P95_LATENCY_THRESHOLD_MS = 1000.0

_STOP_LOSS_KEYS = {
    "error_rate_threshold": "error_rate_threshold",
    "p95_latency_threshold_ms": "p95_latency_threshold_ms",
    "stop_loss_enabled": "enabled",
}


def clamp_percentage(value: Any) -> int:
    """Coerce a traffic percentage into ``[0, 100]``.

    Malformed values never raise: anything that cannot be read as a number
    becomes 0 (no canary traffic). Booleans are not percentages, so
    ``True`` also becomes 0.
    """
    if isinstance(value, bool):
        logger.warning("Ignoring boolean percentage %r", value)
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number):
        return 0
    if number <= 0:
        return 0
    if number >= 100:
        return 100
    return int(number)


def _coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        parsed = parse_bool(value)
        return default if parsed is None else parsed
    return default


def _coerce_fraction(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(max(number, 0.0), 1.0)


def _coerce_positive(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or number <= 0:
        return default
    return number


class RoutingVerdict(str, Enum):
    """Which code path a unit of work should take."""

    CANARY = "canary"
    STABLE = "stable"


class RollbackReason(str, Enum):
    """Why a rollout was automatically disabled."""

    ERROR_RATE_EXCEEDED = "error_rate_exceeded"
    LATENCY_EXCEEDED = "latency_exceeded"


@dataclass(frozen=True)
class StopLossConfig:
    """Thresholds whose breach triggers automatic rollback.

    Attributes:
        error_rate_threshold: Maximum tolerated error fraction (0.0 to 1.0)
        p95_latency_threshold_ms: Maximum tolerated p95 latency in milliseconds
        enabled: Whether breach detection runs at all
    """

    error_rate_threshold: float = DEFAULT_ERROR_RATE_THRESHOLD
    p95_latency_threshold_ms: float = DEFAULT_P95_LATENCY_THRESHOLD_MS
    enabled: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "error_rate_threshold",
            _coerce_fraction(self.error_rate_threshold, DEFAULT_ERROR_RATE_THRESHOLD),
        )
        object.__setattr__(
            self,
            "p95_latency_threshold_ms",
            _coerce_positive(self.p95_latency_threshold_ms, DEFAULT_P95_LATENCY_THRESHOLD_MS),
        )

    def merge(self, partial: Mapping[str, Any]) -> StopLossConfig:
        changes: dict[str, Any] = {}
        if "error_rate_threshold" in partial:
            changes["error_rate_threshold"] = _coerce_fraction(
                partial["error_rate_threshold"], self.error_rate_threshold
            )
        if "p95_latency_threshold_ms" in partial:
            changes["p95_latency_threshold_ms"] = _coerce_positive(
                partial["p95_latency_threshold_ms"], self.p95_latency_threshold_ms
            )
        if "enabled" in partial:
            changes["enabled"] = _coerce_bool(partial["enabled"], self.enabled)
        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class RolloutConfig:
    """Configuration of one canary-able feature.

    ``percentage`` is clamped to ``[0, 100]`` on construction; a disabled
    config always routes to the stable path regardless of percentage.
    """

    enabled: bool = False
    percentage: int = 0
    stop_loss: StopLossConfig = field(default_factory=StopLossConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "percentage", clamp_percentage(self.percentage))
        object.__setattr__(self, "enabled", _coerce_bool(self.enabled, False))

    @property
    def routes_traffic(self) -> bool:
        """True when at least some identifiers can reach the canary."""
        return self.enabled and self.percentage > 0

    def merge(self, partial: Mapping[str, Any]) -> RolloutConfig:
        """Return a new config with ``partial`` applied.

        Accepts flat keys (``enabled``, ``percentage``, ``error_rate_threshold``,
        ``p95_latency_threshold_ms``, ``stop_loss_enabled``) and a nested
        ``stop_loss`` mapping. Unknown keys are ignored with a warning.
        """
        enabled = self.enabled
        percentage: Any = self.percentage
        stop_loss_changes: dict[str, Any] = {}

        for key, value in partial.items():
            if key == "enabled":
                enabled = _coerce_bool(value, enabled)
            elif key == "percentage":
                percentage = clamp_percentage(value)
            elif key == "stop_loss" and isinstance(value, Mapping):
                stop_loss_changes.update(value)
            elif key in _STOP_LOSS_KEYS:
                stop_loss_changes[_STOP_LOSS_KEYS[key]] = value
            else:
                logger.warning("Ignoring unknown rollout config key %r", key)

        return RolloutConfig(
            enabled=enabled,
            percentage=percentage,
            stop_loss=self.stop_loss.merge(stop_loss_changes),
        )

    def to_record(self) -> dict[str, Any]:
        """Serialize as the flat record stored in the config cache."""
        return {
            "enabled": self.enabled,
            "percentage": self.percentage,
            "error_rate_threshold": self.stop_loss.error_rate_threshold,
            "p95_latency_threshold_ms": self.stop_loss.p95_latency_threshold_ms,
            "stop_loss_enabled": self.stop_loss.enabled,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> RolloutConfig:
        """Rebuild a config from a cache record; bad fields fall back to defaults."""
        return cls().merge({k: v for k, v in record.items() if k in _RECORD_KEYS})


_RECORD_KEYS = frozenset(RolloutConfig().to_record()) | {"stop_loss"}

SAFE_DEFAULT_CONFIG = RolloutConfig()


def percentile_nearest_rank(samples: Any, quantile: float = 0.95) -> float | None:
    """Nearest-rank percentile: sort ascending, index ``floor(n * quantile)``.

    The index is clamped to the last element. Returns None for no samples.
    """
    ordered = sorted(samples)
    n = len(ordered)
    if n == 0:
        return None
    index = min(int(math.floor(n * quantile)), n - 1)
    return float(ordered[index])


@dataclass(frozen=True)
class WindowSnapshot:
    """Immutable copy of one rollout's tumbling window."""

    rollout_id: str
    request_count: int
    error_count: int
    latency_samples: tuple[float, ...]
    window_start_ms: int

    @property
    def error_rate(self) -> float:
        if self.request_count == 0:
            return 0.0
        return self.error_count / self.request_count

    @property
    def p95_latency_ms(self) -> float | None:
        return percentile_nearest_rank(self.latency_samples, 0.95)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rollout_id": self.rollout_id,
            "request_count": self.request_count,
            "error_count": self.error_count,
            "sample_count": len(self.latency_samples),
            "error_rate": self.error_rate,
            "p95_latency_ms": self.p95_latency_ms,
            "window_start_ms": self.window_start_ms,
        }


@dataclass(frozen=True)
class RollbackEvent:
    """Append-only audit record of one breach-triggered disable."""

    rollout_id: str
    reason: RollbackReason
    details: dict[str, Any]
    timestamp: str
    window_start_ms: int

    @classmethod
    def create(
        cls,
        rollout_id: str,
        reason: RollbackReason,
        details: Mapping[str, Any],
        window_start_ms: int,
        now: float,
    ) -> RollbackEvent:
        return cls(
            rollout_id=rollout_id,
            reason=reason,
            details=dict(details),
            timestamp=datetime.fromtimestamp(now, timezone.utc).isoformat(),
            window_start_ms=window_start_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "canary_rollback",
            "rollout_id": self.rollout_id,
            "reason": self.reason.value,
            "details": dict(self.details),
            "timestamp": self.timestamp,
            "window_start_ms": self.window_start_ms,
        }
