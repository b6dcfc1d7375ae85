"""
Flag Store Accessor.

Resolves a rollout's current config from a prioritized chain of sources and
persists operator (or automatic) updates.

Resolution order:
1. Config cache entry ``canary:<rollout_id>:config``
2. Static defaults (YAML rollout file, per-rollout env variables)
3. Hardcoded safe default: disabled, 0%, default stop-loss thresholds

Resolution is fail-closed: a cache outage or a malformed record falls
through to the next source and never raises, so a broken dependency can
only ever route traffic to the stable path.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from rolloutguard.contracts.models import SAFE_DEFAULT_CONFIG, RolloutConfig
from rolloutguard.flags.static_defaults import StaticDefaults
from rolloutguard.flags.write_back import CacheOnlyWriteBack, ConfigWriteBack
from rolloutguard.observability.logger import get_observability_logger
from rolloutguard.utils.errors import ErrorCode, ValidationError, log_error, require_rollout_id

if TYPE_CHECKING:
    from rolloutguard.observability.logger import ObservabilityLogger
    from rolloutguard.observability.metrics import MetricsExporter

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_TTL_S = 3600

SOURCE_CACHE = "cache"
SOURCE_STATIC = "static_defaults"
SOURCE_SAFE_DEFAULT = "safe_default"


@runtime_checkable
class ConfigCache(Protocol):
    """Shared key/value store with per-entry TTL."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool: ...

    def delete(self, key: str) -> bool: ...


def config_key(rollout_id: str) -> str:
    """Cache key holding a rollout's config record."""
    return f"canary:{rollout_id}:config"


class FlagStore:
    """Reads and writes rollout configuration.

    Args:
        cache: Shared config cache (``MemoryCache`` or ``RedisCache``)
        static_defaults: Second-priority source (env-only when omitted)
        write_back: Durable write-back after a cache write (cache-only when omitted)
        ttl: TTL in seconds for cache writes
        metrics: Optional metrics exporter for fallback/failure counters
        observability_logger: Structured event logger
    """

    def __init__(
        self,
        cache: ConfigCache,
        static_defaults: StaticDefaults | None = None,
        write_back: ConfigWriteBack | None = None,
        ttl: int = DEFAULT_CONFIG_TTL_S,
        metrics: MetricsExporter | None = None,
        observability_logger: ObservabilityLogger | None = None,
    ) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.cache = cache
        self.static_defaults = static_defaults or StaticDefaults()
        self.write_back = write_back or CacheOnlyWriteBack()
        self.ttl = ttl
        self.metrics = metrics
        self._events = observability_logger
        self._registry_lock = threading.Lock()
        self._update_locks: dict[str, threading.Lock] = {}
        self._write_back_locks: dict[str, threading.Lock] = {}
        self._generations: dict[str, int] = {}

    @property
    def events(self) -> ObservabilityLogger:
        if self._events is None:
            self._events = get_observability_logger()
        return self._events

    def get_config(self, rollout_id: str) -> RolloutConfig:
        """Resolve the current config for ``rollout_id``.

        Never raises for infrastructure failures.

        Raises:
            ValidationError: If ``rollout_id`` is empty
        """
        require_rollout_id(rollout_id)

        cache_error: str | None = None
        try:
            record = self.cache.get(config_key(rollout_id))
        except Exception as e:
            log_error(e, rollout_id=rollout_id, code=ErrorCode.E701_CACHE_UNAVAILABLE)
            record = None
            cache_error = str(e)

        if record is not None:
            if isinstance(record, Mapping):
                return RolloutConfig.from_record(record)
            cache_error = f"malformed cache record of type {type(record).__name__}"
            logger.warning("Ignoring %s for rollout %s", cache_error, rollout_id)

        try:
            static = self.static_defaults.resolve(rollout_id)
        except Exception as e:
            log_error(e, rollout_id=rollout_id, code=ErrorCode.E801_INVALID_CONFIG_FILE)
            static = None

        if static is not None:
            self._record_fallback(rollout_id, SOURCE_STATIC, cache_error)
            return static

        self._record_fallback(rollout_id, SOURCE_SAFE_DEFAULT, cache_error)
        return SAFE_DEFAULT_CONFIG

    def update_config(self, rollout_id: str, partial: Mapping[str, Any]) -> RolloutConfig:
        """Merge ``partial`` into the current config and persist it.

        The merged config is written to the cache with the store's TTL, then
        handed to the write-back. Updates of one rollout are serialized; the
        write-back runs outside that lock so a slow platform API never blocks
        other rollouts, and a write-back superseded by a newer update of the
        same rollout is skipped. Persistence failures are logged; the merged
        config is returned either way.

        Raises:
            ValidationError: If ``rollout_id`` is empty or ``partial`` is not a mapping
        """
        require_rollout_id(rollout_id)
        if not isinstance(partial, Mapping):
            raise ValidationError(
                code=ErrorCode.E103_INVALID_PARTIAL_UPDATE,
                details={"type": type(partial).__name__},
            )

        with self._lock_for(self._update_locks, rollout_id):
            current = self.get_config(rollout_id)
            updated = current.merge(partial)
            cached = self._write_cache(rollout_id, updated)
            generation = self._generations.get(rollout_id, 0) + 1
            self._generations[rollout_id] = generation

        with self._lock_for(self._write_back_locks, rollout_id):
            # A newer update of this rollout writes back its own state.
            if generation == self._generations[rollout_id]:
                self._write_back(rollout_id, updated)

        self.events.log_config_updated(rollout_id, updated.to_record(), cached=cached)
        return updated

    def disable(self, rollout_id: str) -> RolloutConfig:
        """Set ``enabled=False, percentage=0`` for ``rollout_id``."""
        return self.update_config(rollout_id, {"enabled": False, "percentage": 0})

    def _lock_for(self, locks: dict[str, threading.Lock], rollout_id: str) -> threading.Lock:
        with self._registry_lock:
            return locks.setdefault(rollout_id, threading.Lock())

    def _write_cache(self, rollout_id: str, config: RolloutConfig) -> bool:
        try:
            cached = bool(self.cache.set(config_key(rollout_id), config.to_record(), self.ttl))
        except Exception as e:
            log_error(e, rollout_id=rollout_id, code=ErrorCode.E701_CACHE_UNAVAILABLE)
            cached = False

        if not cached:
            logger.warning(
                "Config for %s was not cached; other processes keep their previous view",
                rollout_id,
                extra={"error_code": ErrorCode.E701_CACHE_UNAVAILABLE.value},
            )
        return cached

    def _write_back(self, rollout_id: str, config: RolloutConfig) -> bool:
        try:
            ok = bool(self.write_back.write_back(rollout_id, config))
        except Exception as e:
            log_error(e, rollout_id=rollout_id, code=ErrorCode.E704_WRITE_BACK_FAILED)
            ok = False

        if not ok:
            if self.metrics is not None:
                self.metrics.record_side_effect_failure("write_back")
            logger.warning(
                "Write-back failed for %s",
                rollout_id,
                extra={"error_code": ErrorCode.E704_WRITE_BACK_FAILED.value},
            )
        return ok

    def _record_fallback(self, rollout_id: str, source: str, error: str | None) -> None:
        if self.metrics is not None:
            self.metrics.record_config_fallback(source)
        if error is not None:
            self.events.log_config_fallback(rollout_id, source, error=error)
        else:
            logger.debug("Rollout %s resolved from %s", rollout_id, source)
