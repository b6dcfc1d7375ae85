"""
Stop-loss: threshold evaluation and automatic rollback.

Detect, decide, mitigate, notify:

1. ``ThresholdEvaluator`` compares a window snapshot with the rollout's
   stop-loss thresholds (error rate first, then p95 latency).
2. ``RollbackTrigger`` disables the rollout synchronously, then hands the
   audit record and the operator notification to a dispatcher so neither
   adds latency to the request that tripped the breach.

Every step is isolated: a failing audit sink or notifier never prevents the
disable, and no step raises to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rolloutguard.contracts.models import (
    RollbackEvent,
    RollbackReason,
    StopLossConfig,
    WindowSnapshot,
)
from rolloutguard.observability.logger import get_observability_logger
from rolloutguard.utils.dispatcher import Dispatcher, InlineDispatcher
from rolloutguard.utils.errors import ErrorCode, RolloutGuardError
from rolloutguard.utils.time_provider import DefaultTimeProvider, TimeProvider

if TYPE_CHECKING:
    from rolloutguard.flags.store import FlagStore
    from rolloutguard.integrations.webhook_client import Notifier
    from rolloutguard.observability.audit import AuditSink
    from rolloutguard.observability.logger import ObservabilityLogger
    from rolloutguard.observability.metrics import MetricsExporter


@dataclass(frozen=True)
class Breach:
    """A threshold exceeded by one window."""

    reason: RollbackReason
    measured: float
    threshold: float

    def details(self, snapshot: WindowSnapshot) -> dict[str, Any]:
        """Audit/notification details: measured value, threshold, window counters."""
        metric = "error_rate" if self.reason is RollbackReason.ERROR_RATE_EXCEEDED else "p95"
        return {
            metric: self.measured,
            "threshold": self.threshold,
            "request_count": snapshot.request_count,
            "error_count": snapshot.error_count,
            "sample_count": len(snapshot.latency_samples),
        }


class ThresholdEvaluator:
    """Checks a window snapshot against stop-loss thresholds.

    Error rate is evaluated first and short-circuits; p95 latency is only
    checked when the error rate is within budget.
    """

    def evaluate(self, snapshot: WindowSnapshot, stop_loss: StopLossConfig) -> Breach | None:
        if not stop_loss.enabled:
            return None

        if snapshot.request_count > 0:
            error_rate = snapshot.error_rate
            if error_rate > stop_loss.error_rate_threshold:
                return Breach(
                    RollbackReason.ERROR_RATE_EXCEEDED,
                    error_rate,
                    stop_loss.error_rate_threshold,
                )

        p95 = snapshot.p95_latency_ms
        if p95 is not None and p95 > stop_loss.p95_latency_threshold_ms:
            return Breach(
                RollbackReason.LATENCY_EXCEEDED,
                p95,
                stop_loss.p95_latency_threshold_ms,
            )

        return None


class RollbackTrigger:
    """Disables a breached rollout and records why.

    Args:
        flag_store: Store used for the synchronous disable
        audit_sink: Append-only destination for ``RollbackEvent`` records
        notifier: Operator alert channel
        dispatcher: Runs audit/notify off the request path (inline when omitted)
        metrics: Optional metrics exporter
        observability_logger: Structured event logger
        time_provider: Clock for event timestamps
    """

    def __init__(
        self,
        flag_store: FlagStore,
        audit_sink: AuditSink,
        notifier: Notifier,
        dispatcher: Dispatcher | None = None,
        metrics: MetricsExporter | None = None,
        observability_logger: ObservabilityLogger | None = None,
        time_provider: TimeProvider | None = None,
    ) -> None:
        self.flag_store = flag_store
        self.audit_sink = audit_sink
        self.notifier = notifier
        self.dispatcher = dispatcher or InlineDispatcher()
        self.metrics = metrics
        self._events = observability_logger
        self._time = time_provider or DefaultTimeProvider()

    @property
    def events(self) -> ObservabilityLogger:
        if self._events is None:
            self._events = get_observability_logger()
        return self._events

    def fire(self, rollout_id: str, breach: Breach, snapshot: WindowSnapshot) -> RollbackEvent:
        """Disable ``rollout_id`` and dispatch audit + notification.

        Returns:
            The rollback event handed to the audit sink
        """
        details = breach.details(snapshot)
        event = RollbackEvent.create(
            rollout_id=rollout_id,
            reason=breach.reason,
            details=details,
            window_start_ms=snapshot.window_start_ms,
            now=self._time.now(),
        )
        correlation_id = self.events.log_rollback_triggered(
            rollout_id, breach.reason.value, details
        )
        if self.metrics is not None:
            self.metrics.record_rollback(rollout_id, breach.reason.value)

        try:
            self.flag_store.disable(rollout_id)
        except Exception as e:
            self._failed(rollout_id, "disable", e, ErrorCode.E706_DISABLE_FAILED, correlation_id)

        if not self.dispatcher.submit("audit", self._audit, event, correlation_id):
            self._dropped(rollout_id, "audit", correlation_id)
        if not self.dispatcher.submit(
            "notify", self._notify, rollout_id, breach.reason.value, details, correlation_id
        ):
            self._dropped(rollout_id, "notify", correlation_id)

        return event

    def _audit(self, event: RollbackEvent, correlation_id: str) -> None:
        try:
            self.audit_sink.append(event)
        except Exception as e:
            self._failed(
                event.rollout_id, "audit", e, ErrorCode.E703_AUDIT_WRITE_FAILED, correlation_id
            )

    def _notify(
        self,
        rollout_id: str,
        reason: str,
        details: dict[str, Any],
        correlation_id: str,
    ) -> None:
        try:
            self.notifier.notify(rollout_id, reason, details)
        except Exception as e:
            self._failed(
                rollout_id, "notify", e, ErrorCode.E702_NOTIFICATION_FAILED, correlation_id
            )

    def _failed(
        self,
        rollout_id: str,
        action: str,
        error: Exception,
        default_code: ErrorCode,
        correlation_id: str,
    ) -> None:
        code = error.code if isinstance(error, RolloutGuardError) else default_code
        if self.metrics is not None:
            self.metrics.record_side_effect_failure(action)
        self.events.log_side_effect_failed(
            rollout_id, action, str(error), code.value, correlation_id=correlation_id
        )

    def _dropped(self, rollout_id: str, action: str, correlation_id: str) -> None:
        if self.metrics is not None:
            self.metrics.record_side_effect_failure(action)
        self.events.log_side_effect_failed(
            rollout_id,
            action,
            "dispatch queue rejected the task",
            ErrorCode.E705_DISPATCH_QUEUE_FULL.value,
            correlation_id=correlation_id,
        )
