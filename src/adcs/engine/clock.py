# src/adcs/engine/clock.py
"""Clock abstraction for testable timeout logic.

The executor measures per-node timeouts and the invoker measures
processing time with monotonic time; trace records carry wall-clock UTC
timestamps. Both come from the same Clock so tests can control them.

Production code uses SystemClock (the default).
Tests inject MockClock to control time advancement.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Abstract clock for timeouts and trace timestamps.

    Implementations:
    - SystemClock: Uses time.monotonic() and the system UTC time (production)
    - MockClock: Returns controllable times (testing)
    """

    def monotonic(self) -> float:
        """Return monotonic time in seconds.

        Must never go backwards; suitable for elapsed time and timeouts.
        """
        ...

    def now(self) -> datetime:
        """Return the current wall-clock time as an aware UTC datetime."""
        ...


class SystemClock:
    """Production clock backed by time.monotonic() and datetime.now(UTC)."""

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now(UTC)


class MockClock:
    """Controllable clock for deterministic testing.

    Wall-clock time moves in step with monotonic time.

    Example:
        clock = MockClock(start=0.0)
        invoker = ProviderInvoker(transport, clock=clock)

        clock.advance(0.5)
        assert clock.monotonic() == 0.5
    """

    def __init__(self, start: float = 0.0, *, wall_start: datetime | None = None) -> None:
        """Initialize mock clock at a given time.

        Args:
            start: Initial monotonic time value (default 0.0).
            wall_start: Wall-clock time at ``start`` (default 2024-01-01T00:00:00Z).
        """
        self._start = start
        self._current = start
        self._wall_start = wall_start if wall_start is not None else datetime(2024, 1, 1, tzinfo=UTC)

    def monotonic(self) -> float:
        return self._current

    def now(self) -> datetime:
        return self._wall_start + timedelta(seconds=self._current - self._start)

    def advance(self, seconds: float) -> None:
        """Advance mock time by specified seconds.

        Raises:
            ValueError: If seconds is negative.
        """
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._current += seconds


# Default clock for production use
DEFAULT_CLOCK: Clock = SystemClock()
