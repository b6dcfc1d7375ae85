"""Configuration for the rollout controller."""

from rolloutguard.config.settings import ENV_PREFIX, CacheBackend, CanarySettings

__all__ = [
    "ENV_PREFIX",
    "CacheBackend",
    "CanarySettings",
]
