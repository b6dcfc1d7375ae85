"""
Append-only audit sinks for rollback events.

Every breach-triggered disable produces exactly one ``RollbackEvent``. Sinks
only ever append; nothing here updates or deletes a record.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from rolloutguard.contracts.models import RollbackEvent
from rolloutguard.observability.logger import EventType, ObservabilityLogger

logger = logging.getLogger(__name__)


@runtime_checkable
class AuditSink(Protocol):
    """Durable, append-only destination for rollback events."""

    def append(self, event: RollbackEvent) -> None: ...


class InMemoryAuditLog:
    """Thread-safe in-process audit log, mainly for tests and debugging."""

    def __init__(self) -> None:
        self._events: list[RollbackEvent] = []
        self._lock = threading.Lock()

    def append(self, event: RollbackEvent) -> None:
        with self._lock:
            self._events.append(event)

    def events(self, rollout_id: str | None = None) -> list[RollbackEvent]:
        with self._lock:
            if rollout_id is None:
                return list(self._events)
            return [e for e in self._events if e.rollout_id == rollout_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


class LoggingAuditSink:
    """Writes rollback events as structured ``canary_rollback`` log records."""

    def __init__(self, observability_logger: ObservabilityLogger) -> None:
        self._logger = observability_logger

    def append(self, event: RollbackEvent) -> None:
        record = event.to_dict()
        self._logger.warning(
            EventType.CANARY_ROLLBACK,
            f"Rollback event: {event.rollout_id} ({event.reason.value})",
            rollout_id=event.rollout_id,
            reason=event.reason.value,
            details=record["details"],
            event_timestamp=event.timestamp,
            window_start_ms=event.window_start_ms,
        )


class JsonlAuditLog:
    """Appends one JSON object per line to a local file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def append(self, event: RollbackEvent) -> None:
        line = json.dumps(event.to_dict(), sort_keys=True, default=str)
        with self._lock:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")

    def read_all(self) -> list[dict]:
        if not self.path.exists():
            return []
        with self._lock:
            with self.path.open("r", encoding="utf-8") as fh:
                return [json.loads(line) for line in fh if line.strip()]
