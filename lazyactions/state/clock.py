"""Injectable clock for deterministic refresh scheduling.

The refresh scheduler measures intervals on a monotonic clock and the
display stamps "last updated" with wall-clock time. Both go through a
``Clock`` so tests can step time by hand.

Example usage:
    # Test code
    from lazyactions.state.clock import FrozenClock

    clock = FrozenClock()
    scheduler = RefreshScheduler(..., clock=clock)
    clock.advance(5.0)
    scheduler.tick()
"""

import time as _time
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Protocol


class Clock(Protocol):
    """Protocol for injectable time sources."""

    def monotonic(self) -> float:
        """Return a monotonic value in seconds for measuring intervals."""
        ...

    def wall(self) -> datetime:
        """Return the current timezone-aware wall-clock time."""
        ...


class SystemClock:
    """Clock backed by the standard library."""

    def monotonic(self) -> float:
        return _time.monotonic()

    def wall(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Clock that only moves when told to.

    Attributes:
        frozen_monotonic: The current monotonic value.
        frozen_wall: The current wall-clock time.

    Example:
        clock = FrozenClock(frozen_monotonic=100.0)
        clock.advance(5.0)
        assert clock.monotonic() == 105.0
    """

    def __init__(
        self,
        frozen_monotonic: float = 0.0,
        frozen_wall: datetime | None = None,
    ) -> None:
        """Initialize with specific frozen times.

        Args:
            frozen_monotonic: Monotonic value to start from.
            frozen_wall: Wall-clock time to start from. Defaults to 2024-01-01 UTC.
        """
        self._monotonic = frozen_monotonic
        self._wall = frozen_wall or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def monotonic(self) -> float:
        return self._monotonic

    def wall(self) -> datetime:
        return self._wall

    def advance(self, seconds: float) -> None:
        """Advance both clocks by the given number of seconds.

        Args:
            seconds: Number of seconds to advance.
        """
        self._monotonic += seconds
        self._wall += timedelta(seconds=seconds)


# Default global clock instance
_default_clock: Clock = SystemClock()


def get_clock() -> Clock:
    """Get the current default clock."""
    return _default_clock


def set_clock(clock: Clock) -> None:
    """Set the default clock (primarily for testing).

    Args:
        clock: Clock instance to use as default.
    """
    global _default_clock
    _default_clock = clock


def reset_clock() -> None:
    """Reset the default clock to SystemClock."""
    global _default_clock
    _default_clock = SystemClock()
