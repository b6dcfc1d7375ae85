"""
Time provider abstraction for deterministic window tests.

Window bookkeeping is expressed in epoch milliseconds, so providers expose
both ``now()`` (seconds, like ``time.time()``) and ``now_ms()``.

Usage:
    # Production code - use default
    provider = DefaultTimeProvider()
    started = provider.now_ms()

    # Test code - use fake time
    fake = FakeTimeProvider(start_time=1000.0)
    fake.advance_ms(300_001)
    assert fake.now_ms() == 1_300_001
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class TimeProvider(Protocol):
    """Protocol for time providers."""

    def now(self) -> float:
        """Return current time in seconds since epoch."""
        ...

    def now_ms(self) -> int:
        """Return current time in whole milliseconds since epoch."""
        ...


class DefaultTimeProvider:
    """Time provider backed by the system clock."""

    def now(self) -> float:
        return time.time()

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class FakeTimeProvider:
    """Manually driven clock for tests.

    Usage:
        fake = FakeTimeProvider(start_time=1000.0)
        fake.advance(5.0)
        assert fake.now() == 1005.0
    """

    def __init__(self, start_time: float = 0.0) -> None:
        self._current_time = start_time

    def now(self) -> float:
        return self._current_time

    def now_ms(self) -> int:
        return int(round(self._current_time * 1000))

    def advance(self, seconds: float) -> None:
        """Advance time by ``seconds``.

        Raises:
            ValueError: If seconds is negative
        """
        if seconds < 0:
            raise ValueError("Cannot advance time by negative amount")
        self._current_time += seconds

    def advance_ms(self, milliseconds: float) -> None:
        """Advance time by ``milliseconds``."""
        self.advance(milliseconds / 1000.0)

    def set_time(self, time_value: float) -> None:
        self._current_time = time_value
