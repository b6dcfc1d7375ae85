"""
Canary rollout manager.

The client surface embedding code talks to. It routes traffic
deterministically to a canary slice, aggregates outcomes of that slice in
tumbling windows, and disables the rollout automatically when its stop-loss
thresholds are breached.

Lifecycle of a rollout::

    DISABLED (0%) --operator--> ENABLED (p%) --breach--> DISABLED (0%)
                                ENABLED (p%) --operator--> ENABLED (p'%)

Re-enabling after an automatic rollback is always an operator action
(``update_config``).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from rolloutguard.config.settings import CacheBackend, CanarySettings
from rolloutguard.contracts.models import RollbackEvent, RolloutConfig, WindowSnapshot
from rolloutguard.deploy.routing import RoutingDecision, routes_to_canary
from rolloutguard.deploy.stop_loss import RollbackTrigger, ThresholdEvaluator
from rolloutguard.deploy.window_metrics import WindowMetricsAggregator
from rolloutguard.flags.static_defaults import StaticDefaults
from rolloutguard.flags.store import FlagStore
from rolloutguard.flags.write_back import CacheOnlyWriteBack, PlatformEnvWriteBack
from rolloutguard.integrations.redis_cache import RedisCache
from rolloutguard.integrations.webhook_client import LoggingNotifier, WebhookNotifier
from rolloutguard.observability.audit import JsonlAuditLog, LoggingAuditSink
from rolloutguard.observability.logger import EventType, get_observability_logger
from rolloutguard.observability.metrics import MetricsExporter
from rolloutguard.utils.cache import MemoryCache
from rolloutguard.utils.dispatcher import SideEffectDispatcher
from rolloutguard.utils.errors import require_rollout_id

if TYPE_CHECKING:
    from rolloutguard.utils.time_provider import TimeProvider

logger = logging.getLogger(__name__)


class CanaryManager:
    """Routes, measures and guards progressive rollouts.

    Features:
    - Deterministic percentage routing per identifier
    - Tumbling-window error rate and p95 latency of canary traffic
    - Automatic disable on stop-loss breach, once per window and reason
    - Fail-closed config resolution (infrastructure errors route stable)

    Example:
        >>> manager = CanaryManager.from_settings()
        >>> if manager.use_canary("checkout-v2", user_id):
        ...     ok, latency_ms = run_new_checkout()
        ... else:
        ...     ok, latency_ms = run_old_checkout()
        >>> manager.record_outcome("checkout-v2", user_id, success=ok, latency_ms=latency_ms)

    Public operations never raise on infrastructure failures; an empty
    ``rollout_id`` raises ``ValidationError``.
    """

    def __init__(
        self,
        flag_store: FlagStore,
        aggregator: WindowMetricsAggregator,
        trigger: RollbackTrigger,
        evaluator: ThresholdEvaluator | None = None,
        metrics: MetricsExporter | None = None,
    ) -> None:
        self.flag_store = flag_store
        self.aggregator = aggregator
        self.trigger = trigger
        self.evaluator = evaluator or ThresholdEvaluator()
        self.metrics = metrics
        self.routing = RoutingDecision(flag_store)

    @classmethod
    def from_settings(
        cls,
        settings: CanarySettings | None = None,
        time_provider: TimeProvider | None = None,
        metrics: MetricsExporter | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CanaryManager:
        """Build a fully wired manager.

        Args:
            settings: Controller settings (read from the environment when omitted)
            time_provider: Clock shared by the cache, windows and events
            metrics: Metrics exporter (a private registry when omitted)
            env: Mapping used for per-rollout static defaults

        Raises:
            ConfigurationError: If the settings are structurally invalid
        """
        settings = settings or CanarySettings.from_env()
        settings.validate()

        events = get_observability_logger()
        metrics = metrics or MetricsExporter()

        if settings.cache_backend == CacheBackend.REDIS.value:
            cache: Any = RedisCache(
                url=settings.redis_url,
                ttl=settings.cache_ttl_s,
                socket_timeout=settings.cache_timeout_s,
            )
        else:
            cache = MemoryCache(default_ttl=settings.cache_ttl_s, time_provider=time_provider)

        if settings.platform_api_url and settings.platform_api_token:
            write_back: Any = PlatformEnvWriteBack(
                settings.platform_api_url,
                settings.platform_api_token,
                prefix=settings.env_prefix,
            )
        else:
            write_back = CacheOnlyWriteBack()

        flag_store = FlagStore(
            cache,
            static_defaults=StaticDefaults(
                env=env, prefix=settings.env_prefix, flags_file=settings.flags_file
            ),
            write_back=write_back,
            ttl=settings.cache_ttl_s,
            metrics=metrics,
            observability_logger=events,
        )

        aggregator = WindowMetricsAggregator(
            window_ms=settings.window_ms,
            max_samples=settings.max_latency_samples,
            time_provider=time_provider,
            observability_logger=events,
        )

        audit_sink: Any
        if settings.audit_log_path:
            audit_sink = JsonlAuditLog(settings.audit_log_path)
        else:
            audit_sink = LoggingAuditSink(events)

        notifier: Any
        if settings.webhook_url:
            notifier = WebhookNotifier(
                settings.webhook_url,
                secret=settings.webhook_secret,
                timeout=settings.notify_timeout_s,
            )
        else:
            notifier = LoggingNotifier()

        trigger = RollbackTrigger(
            flag_store,
            audit_sink,
            notifier,
            dispatcher=SideEffectDispatcher(max_queue=settings.dispatch_queue_size),
            metrics=metrics,
            observability_logger=events,
            time_provider=time_provider,
        )

        manager = cls(flag_store, aggregator, trigger, metrics=metrics)
        if settings.sweep_interval_s > 0:
            aggregator.start_sweeper(settings.sweep_interval_s)

        events.info(
            EventType.SYSTEM_STARTUP,
            "Rollout controller started",
            settings=settings.to_dict(),
        )
        return manager

    def use_canary(self, rollout_id: str, identifier: str) -> bool:
        """Return True if this unit of work should take the canary path.

        Any unexpected internal error routes to stable.
        """
        require_rollout_id(rollout_id)
        try:
            canary = self.routing.should_route_to_canary(rollout_id, identifier)
        except Exception:
            logger.exception("Routing failed for %s; routing to stable", rollout_id)
            return False

        if self.metrics is not None:
            self.metrics.record_decision(rollout_id, canary)
        return canary

    def record_outcome(
        self,
        rollout_id: str,
        identifier: str,
        success: bool,
        latency_ms: float | None = None,
    ) -> RollbackEvent | None:
        """Report the outcome of a unit of work.

        Only outcomes whose identifier routes to the canary are aggregated;
        stable-path outcomes are ignored. The window is evaluated on the same
        call.

        Returns:
            The rollback event if this outcome tripped the stop-loss
        """
        require_rollout_id(rollout_id)
        try:
            config = self.flag_store.get_config(rollout_id)
            if not routes_to_canary(config, identifier):
                return None
        except Exception:
            logger.exception("Outcome routing failed for %s", rollout_id)
            return None
        return self._record(rollout_id, config, success, latency_ms)

    def record_request(
        self,
        rollout_id: str,
        success: bool,
        latency_ms: float | None = None,
    ) -> RollbackEvent | None:
        """Record a canary outcome for a caller that already knows the path."""
        require_rollout_id(rollout_id)
        try:
            config = self.flag_store.get_config(rollout_id)
        except Exception:
            logger.exception("Config resolution failed for %s", rollout_id)
            return None
        return self._record(rollout_id, config, success, latency_ms)

    def _record(
        self,
        rollout_id: str,
        config: RolloutConfig,
        success: bool,
        latency_ms: float | None,
    ) -> RollbackEvent | None:
        try:
            snapshot = self.aggregator.record(rollout_id, success, latency_ms)
            if self.metrics is not None:
                self.metrics.record_outcome(rollout_id, success)
                self.metrics.update_window(
                    rollout_id,
                    snapshot.request_count,
                    snapshot.error_rate,
                    snapshot.p95_latency_ms,
                )
            return self._evaluate(rollout_id, config, snapshot)
        except Exception:
            logger.exception("Recording outcome failed for %s", rollout_id)
            return None

    def _evaluate(
        self,
        rollout_id: str,
        config: RolloutConfig,
        snapshot: WindowSnapshot,
    ) -> RollbackEvent | None:
        if not config.enabled:
            return None

        breach = self.evaluator.evaluate(snapshot, config.stop_loss)
        if breach is None:
            return None

        if not self.aggregator.claim_rollback(
            rollout_id, snapshot.window_start_ms, breach.reason.value
        ):
            return None

        return self.trigger.fire(rollout_id, breach, snapshot)

    def get_config(self, rollout_id: str) -> RolloutConfig:
        return self.flag_store.get_config(rollout_id)

    def update_config(self, rollout_id: str, partial: Mapping[str, Any]) -> RolloutConfig:
        """Operator update; the only way to re-enable after a rollback.

        Enabling a disabled rollout starts a new breach episode: its current
        window and rollback claims are discarded, so outcomes observed while
        it was off cannot trip the stop-loss and a fresh breach in the same
        clock window rolls back again.
        """
        before = self.flag_store.get_config(rollout_id)
        updated = self.flag_store.update_config(rollout_id, partial)
        if updated.enabled and not before.enabled:
            self.aggregator.reset(rollout_id)
        return updated

    def disable(self, rollout_id: str) -> RolloutConfig:
        return self.flag_store.disable(rollout_id)

    def get_metrics(self, rollout_id: str) -> WindowSnapshot | None:
        """Current window of ``rollout_id``, or None if nothing was recorded."""
        require_rollout_id(rollout_id)
        return self.aggregator.snapshot(rollout_id)

    def reset_metrics(self, rollout_id: str) -> bool:
        require_rollout_id(rollout_id)
        return self.aggregator.reset(rollout_id)

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop the window sweeper and flush pending side effects."""
        self.aggregator.stop_sweeper(timeout)
        self.trigger.dispatcher.shutdown(timeout)

    def __enter__(self) -> CanaryManager:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
