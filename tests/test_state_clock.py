"""Tests for the Clock protocol and implementations."""

import time
from collections.abc import Generator
from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest

from lazyactions.state.clock import FrozenClock
from lazyactions.state.clock import SystemClock
from lazyactions.state.clock import get_clock
from lazyactions.state.clock import reset_clock
from lazyactions.state.clock import set_clock


class TestSystemClock:
    """Tests for SystemClock."""

    def test_wall_is_current_and_aware(self) -> None:
        clock = SystemClock()
        before = datetime.now(timezone.utc)
        result = clock.wall()
        after = datetime.now(timezone.utc)
        assert before <= result <= after
        assert result.tzinfo is not None

    def test_monotonic_does_not_go_backwards(self) -> None:
        clock = SystemClock()
        first = clock.monotonic()
        time.sleep(0.001)
        assert clock.monotonic() >= first


class TestFrozenClock:
    """Tests for FrozenClock."""

    def test_defaults(self) -> None:
        clock = FrozenClock()
        assert clock.monotonic() == 0.0
        assert clock.wall() == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_custom_values(self) -> None:
        wall = datetime(2023, 6, 1, tzinfo=timezone.utc)
        clock = FrozenClock(frozen_monotonic=100.0, frozen_wall=wall)
        assert clock.monotonic() == 100.0
        assert clock.wall() == wall

    def test_advance_moves_both_clocks(self) -> None:
        clock = FrozenClock(frozen_monotonic=100.0)
        start = clock.wall()
        clock.advance(5.5)
        assert clock.monotonic() == 105.5
        assert clock.wall() - start == timedelta(seconds=5.5)

    def test_does_not_move_by_itself(self) -> None:
        clock = FrozenClock()
        first = clock.monotonic()
        time.sleep(0.001)
        assert clock.monotonic() == first


class TestGlobalClock:
    """Tests for the global clock helpers."""

    @pytest.fixture(autouse=True)
    def restore_clock(self) -> Generator[None, None, None]:
        yield
        reset_clock()

    def test_default_is_system_clock(self) -> None:
        assert isinstance(get_clock(), SystemClock)

    def test_set_and_reset(self) -> None:
        frozen = FrozenClock()
        set_clock(frozen)
        assert get_clock() is frozen
        reset_clock()
        assert isinstance(get_clock(), SystemClock)
