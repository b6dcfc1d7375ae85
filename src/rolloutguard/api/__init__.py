"""HTTP admin surface for rollouts (FastAPI)."""

from rolloutguard.api.admin import build_admin_router

__all__ = ["build_admin_router"]
