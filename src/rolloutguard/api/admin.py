"""
Rollout admin API.

Operator endpoints mounted by the embedding application:
- GET   /rollouts/{rollout_id}           - Current config
- PATCH /rollouts/{rollout_id}           - Partial update (ramp, thresholds, re-enable)
- POST  /rollouts/{rollout_id}/disable   - Manual kill switch
- GET   /rollouts/{rollout_id}/window    - Current tumbling window
- GET   /rollouts/{rollout_id}/decision  - Routing verdict for one identifier
- GET   /metrics                         - Prometheus metrics

Example:
    app = FastAPI()
    app.include_router(build_admin_router(manager))
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, PlainTextResponse

from rolloutguard.api.schemas import (
    DecisionResponse,
    ErrorResponse,
    RolloutConfigResponse,
    RolloutUpdateRequest,
    WindowResponse,
)
from rolloutguard.bucketing import bucket
from rolloutguard.deploy.canary_manager import CanaryManager
from rolloutguard.observability.metrics import get_metrics_exporter
from rolloutguard.utils.errors import (
    ErrorCode,
    RolloutGuardError,
    create_error_response,
    get_http_status_for_error,
)

logger = logging.getLogger(__name__)

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid rollout id or update"},
    404: {"model": ErrorResponse, "description": "No window recorded"},
}


def _error_response(error: RolloutGuardError) -> JSONResponse:
    return JSONResponse(
        status_code=get_http_status_for_error(error),
        content=create_error_response(error),
    )


def build_admin_router(manager: CanaryManager, prefix: str = "") -> APIRouter:
    """Create the admin router bound to ``manager``."""
    router = APIRouter(prefix=prefix, tags=["rollouts"])

    @router.get(
        "/rollouts/{rollout_id}",
        response_model=RolloutConfigResponse,
        responses=_ERROR_RESPONSES,
    )
    def get_rollout(rollout_id: str) -> RolloutConfigResponse | JSONResponse:
        try:
            config = manager.get_config(rollout_id)
        except RolloutGuardError as e:
            return _error_response(e)
        return RolloutConfigResponse.from_config(rollout_id, config)

    @router.patch(
        "/rollouts/{rollout_id}",
        response_model=RolloutConfigResponse,
        responses=_ERROR_RESPONSES,
    )
    def update_rollout(
        rollout_id: str, body: RolloutUpdateRequest
    ) -> RolloutConfigResponse | JSONResponse:
        try:
            config = manager.update_config(rollout_id, body.to_partial())
        except RolloutGuardError as e:
            return _error_response(e)
        logger.info("Operator updated rollout %s: %s", rollout_id, body.to_partial())
        return RolloutConfigResponse.from_config(rollout_id, config)

    @router.post(
        "/rollouts/{rollout_id}/disable",
        response_model=RolloutConfigResponse,
        responses=_ERROR_RESPONSES,
    )
    def disable_rollout(rollout_id: str) -> RolloutConfigResponse | JSONResponse:
        try:
            config = manager.disable(rollout_id)
        except RolloutGuardError as e:
            return _error_response(e)
        logger.warning("Operator disabled rollout %s", rollout_id)
        return RolloutConfigResponse.from_config(rollout_id, config)

    @router.get(
        "/rollouts/{rollout_id}/window",
        response_model=WindowResponse,
        responses=_ERROR_RESPONSES,
    )
    def get_window(rollout_id: str) -> WindowResponse | JSONResponse:
        try:
            snapshot = manager.get_metrics(rollout_id)
            if snapshot is None:
                raise RolloutGuardError(
                    ErrorCode.E905_NOT_FOUND,
                    f"No window recorded for rollout {rollout_id}",
                )
        except RolloutGuardError as e:
            return _error_response(e)
        return WindowResponse.from_snapshot(snapshot)

    @router.get(
        "/rollouts/{rollout_id}/decision",
        response_model=DecisionResponse,
        responses=_ERROR_RESPONSES,
    )
    def get_decision(
        rollout_id: str,
        identifier: str = Query(..., description="Stable identifier being routed"),
    ) -> DecisionResponse | JSONResponse:
        try:
            canary = manager.use_canary(rollout_id, identifier)
        except RolloutGuardError as e:
            return _error_response(e)
        return DecisionResponse(
            rollout_id=rollout_id,
            identifier=identifier,
            bucket=bucket(identifier),
            verdict="canary" if canary else "stable",
        )

    @router.get("/metrics", response_class=PlainTextResponse)
    def metrics() -> str:
        """Prometheus text exposition of the manager's metrics."""
        exporter = manager.metrics or get_metrics_exporter()
        return exporter.get_metrics_text()

    return router
