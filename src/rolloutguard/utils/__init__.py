"""
rolloutguard utility modules.

Provides common utilities including:
- In-memory TTL cache used as the default config cache
- Bounded side-effect dispatcher for fire-and-forget work
- Structured error codes
- Environment variable parsing
- Time provider abstraction for deterministic testing
"""

from .cache import CacheStats, MemoryCache
from .dispatcher import Dispatcher, InlineDispatcher, SideEffectDispatcher
from .errors import (
    ConfigurationError,
    ErrorCode,
    IntegrationError,
    RolloutGuardError,
    ValidationError,
    create_error_response,
    get_http_status_for_error,
    log_error,
    require_rollout_id,
)
from .time_provider import DefaultTimeProvider, FakeTimeProvider, TimeProvider

__all__ = [
    # Cache
    "CacheStats",
    "MemoryCache",
    # Dispatch
    "Dispatcher",
    "InlineDispatcher",
    "SideEffectDispatcher",
    # Errors
    "ConfigurationError",
    "ErrorCode",
    "IntegrationError",
    "RolloutGuardError",
    "ValidationError",
    "create_error_response",
    "get_http_status_for_error",
    "log_error",
    "require_rollout_id",
    # Time
    "DefaultTimeProvider",
    "FakeTimeProvider",
    "TimeProvider",
]
