"""
Controller Settings for rolloutguard.

Process-level settings (window length, cache backend, notification and audit
targets) read from ``ROLLOUTGUARD_*`` environment variables. Per-rollout
defaults (``<ROLLOUT_ID>_ENABLED`` and friends) are not settings; they are
resolved by ``rolloutguard.flags.static_defaults``.

Configuration priority (highest to lowest):
1. Environment variables (ROLLOUTGUARD_* prefix)
2. Dataclass defaults

Usage:
    from rolloutguard.config import CanarySettings

    settings = CanarySettings.from_env()
    settings.validate()
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from rolloutguard.utils.env import get_env_float, get_env_int
from rolloutguard.utils.errors import ConfigurationError, ErrorCode

logger = logging.getLogger(__name__)

ENV_PREFIX = "ROLLOUTGUARD_"


class CacheBackend(str, Enum):
    """Supported config cache backends."""

    MEMORY = "memory"
    REDIS = "redis"


@dataclass
class CanarySettings:
    """Complete controller configuration."""

    window_ms: int = 300_000
    max_latency_samples: int = 1000
    sweep_interval_s: int = 60
    cache_backend: str = CacheBackend.MEMORY.value
    redis_url: str | None = None
    cache_ttl_s: int = 3600
    cache_timeout_s: float = 1.0
    env_prefix: str = ""
    flags_file: str | None = None
    webhook_url: str | None = None
    webhook_secret: str | None = None
    notify_timeout_s: float = 2.0
    audit_log_path: str | None = None
    platform_api_url: str | None = None
    platform_api_token: str | None = None
    dispatch_queue_size: int = 1000

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> CanarySettings:
        """Build settings from the environment.

        Args:
            env: Mapping to read instead of ``os.environ``

        Invalid numeric values fall back to defaults with a warning.
        """
        source = os.environ if env is None else env
        defaults = cls()

        def _str(name: str, default: str | None) -> str | None:
            value = source.get(ENV_PREFIX + name)
            if value is None or not value.strip():
                return default
            return value.strip()

        def _int(name: str, default: int, minimum: int = 1) -> int:
            value = get_env_int(ENV_PREFIX + name, source)
            if value is None:
                return default
            if value < minimum:
                logger.warning(
                    "%s%s=%d is below %d; using default %d",
                    ENV_PREFIX,
                    name,
                    value,
                    minimum,
                    default,
                )
                return default
            return value

        def _float(name: str, default: float) -> float:
            value = get_env_float(ENV_PREFIX + name, source)
            return default if value is None else value

        return cls(
            window_ms=_int("WINDOW_MS", defaults.window_ms),
            max_latency_samples=_int("MAX_LATENCY_SAMPLES", defaults.max_latency_samples),
            sweep_interval_s=_int("SWEEP_INTERVAL_S", defaults.sweep_interval_s, minimum=0),
            cache_backend=(_str("CACHE_BACKEND", defaults.cache_backend) or "").lower(),
            redis_url=_str("REDIS_URL", None),
            cache_ttl_s=_int("CACHE_TTL_S", defaults.cache_ttl_s),
            cache_timeout_s=_float("CACHE_TIMEOUT_S", defaults.cache_timeout_s),
            env_prefix=source.get(ENV_PREFIX + "ENV_PREFIX", defaults.env_prefix),
            flags_file=_str("FLAGS_FILE", None),
            webhook_url=_str("WEBHOOK_URL", None),
            webhook_secret=_str("WEBHOOK_SECRET", None),
            notify_timeout_s=_float("NOTIFY_TIMEOUT_S", defaults.notify_timeout_s),
            audit_log_path=_str("AUDIT_LOG_PATH", None),
            platform_api_url=_str("PLATFORM_API_URL", None),
            platform_api_token=_str("PLATFORM_API_TOKEN", None),
            dispatch_queue_size=_int("DISPATCH_QUEUE_SIZE", defaults.dispatch_queue_size),
        )

    def validate(self) -> None:
        """Reject structurally impossible settings.

        Raises:
            ConfigurationError: If a setting can never work
        """
        if self.window_ms <= 0:
            raise ConfigurationError(
                ErrorCode.E803_CONFIG_VALIDATION_FAILED,
                f"window_ms must be positive, got {self.window_ms}",
            )
        if self.max_latency_samples <= 0:
            raise ConfigurationError(
                ErrorCode.E803_CONFIG_VALIDATION_FAILED,
                f"max_latency_samples must be positive, got {self.max_latency_samples}",
            )
        if self.sweep_interval_s < 0:
            raise ConfigurationError(
                ErrorCode.E803_CONFIG_VALIDATION_FAILED,
                f"sweep_interval_s cannot be negative, got {self.sweep_interval_s}",
            )
        backends = {b.value for b in CacheBackend}
        if self.cache_backend not in backends:
            raise ConfigurationError(
                ErrorCode.E803_CONFIG_VALIDATION_FAILED,
                f"Unknown cache backend {self.cache_backend!r}; expected one of {sorted(backends)}",
            )
        if self.cache_backend == CacheBackend.REDIS.value and not self.redis_url:
            raise ConfigurationError(
                ErrorCode.E802_MISSING_REQUIRED_CONFIG,
                f"{ENV_PREFIX}REDIS_URL is required when the cache backend is redis",
            )
        if self.platform_api_url and not self.platform_api_token:
            raise ConfigurationError(
                ErrorCode.E802_MISSING_REQUIRED_CONFIG,
                f"{ENV_PREFIX}PLATFORM_API_TOKEN is required with {ENV_PREFIX}PLATFORM_API_URL",
            )

    def to_dict(self) -> dict[str, Any]:
        """Settings as a dict with secrets masked."""
        data = asdict(self)
        for secret in ("webhook_secret", "platform_api_token"):
            if data[secret]:
                data[secret] = "***"
        return data
