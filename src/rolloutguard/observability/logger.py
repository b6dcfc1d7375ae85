"""JSON structured logging for rollout events.

Every rollout lifecycle event (config change, config fallback, automatic
rollback, side-effect failure, window housekeeping) is emitted as one JSON
line carrying ``event_type``, ``correlation_id`` and a ``metrics`` dict, so
rollbacks can be reconstructed from logs alone.

Key features:
- JSON formatter shared by console and (optional) rotating file output
- Thread-safe singleton via ``get_observability_logger()``
- Correlation IDs returned from every log call
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
        "event_type",
        "correlation_id",
        "metrics",
    }
)


class EventType(Enum):
    """Types of rollout events to log."""

    # Configuration events
    CONFIG_UPDATED = "config_updated"
    CONFIG_FALLBACK = "config_fallback"
    CONFIG_WRITE_BACK = "config_write_back"

    # Stop-loss events
    ROLLBACK_TRIGGERED = "rollback_triggered"
    CANARY_ROLLBACK = "canary_rollback"
    OPERATOR_NOTIFIED = "operator_notified"
    SIDE_EFFECT_FAILED = "side_effect_failed"

    # Window housekeeping
    WINDOW_RESET = "window_reset"
    WINDOW_SWEEP = "window_sweep"

    # System events
    SYSTEM_STARTUP = "system_startup"
    SYSTEM_SHUTDOWN = "system_shutdown"


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event_type": getattr(record, "event_type", "unknown"),
            "correlation_id": getattr(record, "correlation_id", ""),
            "message": record.getMessage(),
            "metrics": getattr(record, "metrics", {}),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class ObservabilityLogger:
    """Thread-safe structured logger for rollout events.

    Args:
        logger_name: Name for the underlying ``logging`` logger
        log_dir: Directory for a rotating log file (None disables file output)
        log_file: Name of the log file
        max_bytes: Maximum size of a log file before rotation
        backup_count: Number of backup files to keep
        console_output: Whether to also log to stderr
        min_level: Minimum logging level
    """

    def __init__(
        self,
        logger_name: str = "rolloutguard_events",
        log_dir: Path | str | None = None,
        log_file: str = "rolloutguard_events.log",
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        console_output: bool = True,
        min_level: int = logging.INFO,
    ) -> None:
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(min_level)
        self._lock = Lock()

        # Avoid duplicate handlers when re-created in tests
        self.logger.handlers.clear()

        formatter = JSONFormatter()
        self.log_path: Path | None = None

        if log_dir is not None:
            directory = Path(log_dir)
            directory.mkdir(parents=True, exist_ok=True)
            self.log_path = directory / log_file
            file_handler = RotatingFileHandler(
                filename=str(self.log_path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(min_level)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if console_output:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(min_level)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        self.min_level = min_level

    def _log_event(
        self,
        event_type: EventType,
        level: int,
        message: str,
        correlation_id: str | None = None,
        metrics: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> str:
        """Log one structured event and return its correlation ID."""
        with self._lock:
            if correlation_id is None:
                correlation_id = str(uuid.uuid4())

            extra = {
                "event_type": event_type.value,
                "correlation_id": correlation_id,
                "metrics": metrics or {},
            }
            for key, value in kwargs.items():
                if key not in _RESERVED_RECORD_KEYS:
                    extra[key] = value

            self.logger.log(level, message, extra=extra)
            return correlation_id

    def info(self, event_type: EventType, message: str, **kwargs: Any) -> str:
        return self._log_event(event_type, logging.INFO, message, **kwargs)

    def warning(self, event_type: EventType, message: str, **kwargs: Any) -> str:
        return self._log_event(event_type, logging.WARNING, message, **kwargs)

    def error(self, event_type: EventType, message: str, **kwargs: Any) -> str:
        return self._log_event(event_type, logging.ERROR, message, **kwargs)

    def log_config_updated(
        self, rollout_id: str, config: dict[str, Any], cached: bool
    ) -> str:
        """Log an explicit rollout config change."""
        return self.info(
            EventType.CONFIG_UPDATED,
            f"Rollout {rollout_id} config updated",
            rollout_id=rollout_id,
            config=config,
            cached=cached,
        )

    def log_config_fallback(self, rollout_id: str, source: str, error: str | None = None) -> str:
        """Log that config resolution fell through to a lower-priority source."""
        return self.warning(
            EventType.CONFIG_FALLBACK,
            f"Rollout {rollout_id} config resolved from {source}",
            rollout_id=rollout_id,
            source=source,
            error=error,
        )

    def log_rollback_triggered(
        self,
        rollout_id: str,
        reason: str,
        details: dict[str, Any],
        correlation_id: str | None = None,
    ) -> str:
        """Log an automatic rollback at ERROR level."""
        return self.error(
            EventType.ROLLBACK_TRIGGERED,
            f"Canary rollback triggered: {rollout_id} ({reason})",
            correlation_id=correlation_id,
            metrics={k: v for k, v in details.items() if isinstance(v, (int, float))},
            rollout_id=rollout_id,
            reason=reason,
        )

    def log_side_effect_failed(
        self,
        rollout_id: str,
        action: str,
        error: str,
        error_code: str,
        correlation_id: str | None = None,
    ) -> str:
        """Log a failed rollback side effect (disable, audit, notify)."""
        return self.error(
            EventType.SIDE_EFFECT_FAILED,
            f"Rollback side effect {action} failed for {rollout_id}: {error}",
            correlation_id=correlation_id,
            rollout_id=rollout_id,
            action=action,
            error_code=error_code,
        )

    def log_window_sweep(self, removed: int, remaining: int) -> str:
        return self.info(
            EventType.WINDOW_SWEEP,
            f"Swept {removed} idle rollout windows",
            metrics={"removed": removed, "remaining": remaining},
        )

    def get_config(self) -> dict[str, Any]:
        return {
            "logger_name": self.logger.name,
            "log_path": str(self.log_path) if self.log_path else None,
            "min_level": logging.getLevelName(self.min_level),
            "handlers": len(self.logger.handlers),
        }


_observability_logger: ObservabilityLogger | None = None
_observability_logger_lock = Lock()


def get_observability_logger(
    logger_name: str = "rolloutguard_events",
    **kwargs: Any,
) -> ObservabilityLogger:
    """Get or create the shared observability logger (double-checked locking)."""
    global _observability_logger

    if _observability_logger is None:
        with _observability_logger_lock:
            if _observability_logger is None:
                _observability_logger = ObservabilityLogger(logger_name=logger_name, **kwargs)

    return _observability_logger


def reset_observability_logger() -> None:
    """Drop the shared instance (tests)."""
    global _observability_logger
    with _observability_logger_lock:
        _observability_logger = None
