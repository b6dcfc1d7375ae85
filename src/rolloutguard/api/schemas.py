"""
Pydantic schemas for the rollout admin API.

API Contract Stability Policy:
------------------------------
The following fields are part of the stable API contract:

RolloutConfigResponse (stable):
    - rollout_id: str
    - enabled: bool
    - percentage: int
    - stop_loss.error_rate_threshold: float
    - stop_loss.p95_latency_threshold_ms: float
    - stop_loss.enabled: bool

ErrorResponse (stable):
    - error.error_code: str
    - error.message: str
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rolloutguard.contracts.models import RolloutConfig, WindowSnapshot

# ==============================================================================
# Request Schemas
# ==============================================================================


class RolloutUpdateRequest(BaseModel):
    """Partial rollout update. Omitted fields keep their current value."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool | None = Field(default=None, description="Enable or disable the canary path")
    percentage: float | None = Field(
        default=None,
        strict=True,
        description="Traffic share for the canary; clamped to [0, 100]",
    )
    error_rate_threshold: float | None = Field(
        default=None, ge=0.0, le=1.0, description="Maximum tolerated error fraction"
    )
    p95_latency_threshold_ms: float | None = Field(
        default=None, gt=0.0, description="Maximum tolerated p95 latency in milliseconds"
    )
    stop_loss_enabled: bool | None = Field(
        default=None, description="Whether breach detection runs"
    )

    def to_partial(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


# ==============================================================================
# Response Schemas
# ==============================================================================


class StopLossModel(BaseModel):
    error_rate_threshold: float
    p95_latency_threshold_ms: float
    enabled: bool


class RolloutConfigResponse(BaseModel):
    """Current configuration of one rollout."""

    rollout_id: str
    enabled: bool
    percentage: int = Field(ge=0, le=100)
    stop_loss: StopLossModel

    @classmethod
    def from_config(cls, rollout_id: str, config: RolloutConfig) -> RolloutConfigResponse:
        return cls(
            rollout_id=rollout_id,
            enabled=config.enabled,
            percentage=config.percentage,
            stop_loss=StopLossModel(
                error_rate_threshold=config.stop_loss.error_rate_threshold,
                p95_latency_threshold_ms=config.stop_loss.p95_latency_threshold_ms,
                enabled=config.stop_loss.enabled,
            ),
        )


class WindowResponse(BaseModel):
    """Current tumbling window of one rollout."""

    rollout_id: str
    request_count: int
    error_count: int
    sample_count: int
    error_rate: float
    p95_latency_ms: float | None = None
    window_start_ms: int

    @classmethod
    def from_snapshot(cls, snapshot: WindowSnapshot) -> WindowResponse:
        return cls(**snapshot.to_dict())


class DecisionResponse(BaseModel):
    """Routing verdict for one identifier."""

    rollout_id: str
    identifier: str
    bucket: int = Field(ge=0, lt=100)
    verdict: str


class ErrorBody(BaseModel):
    error_code: str
    message: str
    details: dict[str, Any] | None = None
    context: dict[str, Any] | None = None
    recoverable: bool = False


class ErrorResponse(BaseModel):
    error: ErrorBody
