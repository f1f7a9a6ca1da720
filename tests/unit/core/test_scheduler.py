"""
Unit tests for timer scheduling.
"""

import asyncio

import pytest

from bookfeed.core.clock import SimClock
from bookfeed.core.scheduler import AsyncioScheduler, ManualScheduler


class TestManualScheduler:
    """Tests for the deterministic scheduler."""

    def test_nothing_fires_until_advanced(self) -> None:
        scheduler = ManualScheduler()
        fired: list[str] = []
        scheduler.call_later(100, lambda: fired.append("a"))
        assert fired == []
        assert len(scheduler.pending) == 1

    def test_fires_in_due_order(self) -> None:
        scheduler = ManualScheduler()
        fired: list[str] = []
        scheduler.call_later(300, lambda: fired.append("c"))
        scheduler.call_later(100, lambda: fired.append("a"))
        scheduler.call_later(200, lambda: fired.append("b"))
        assert scheduler.advance_by(1000) == 3
        assert fired == ["a", "b", "c"]
        assert scheduler.clock.now() == 1000

    def test_clock_set_to_due_time_while_firing(self) -> None:
        scheduler = ManualScheduler(SimClock(start_ms=1000))
        seen: list[int] = []
        scheduler.call_later(250, lambda: seen.append(scheduler.clock.now()))
        scheduler.advance_to(5000)
        assert seen == [1250]

    def test_partial_advance(self) -> None:
        scheduler = ManualScheduler()
        fired: list[int] = []
        scheduler.call_later(100, lambda: fired.append(1))
        scheduler.call_later(500, lambda: fired.append(2))
        assert scheduler.advance_by(100) == 1
        assert fired == [1]
        assert [h.due_ms for h in scheduler.pending] == [500]

    def test_cancelled_timer_never_fires(self) -> None:
        scheduler = ManualScheduler()
        fired: list[int] = []
        handle = scheduler.call_later(100, lambda: fired.append(1))
        handle.cancel()
        handle.cancel()
        assert scheduler.advance_by(200) == 0
        assert fired == []
        assert handle.cancelled
        assert not handle.pending

    def test_cancel_after_fire_is_noop(self) -> None:
        scheduler = ManualScheduler()
        handle = scheduler.call_later(10, lambda: None)
        scheduler.advance_by(10)
        handle.cancel()
        assert handle.fired
        assert not handle.cancelled

    def test_timer_scheduled_while_firing(self) -> None:
        """A timer scheduled from a callback fires in the same advance if due."""
        scheduler = ManualScheduler()
        fired: list[str] = []

        def first() -> None:
            fired.append("first")
            scheduler.call_later(50, lambda: fired.append("second"))

        scheduler.call_later(100, first)
        scheduler.advance_by(200)
        assert fired == ["first", "second"]

    def test_callback_error_is_contained(self) -> None:
        scheduler = ManualScheduler()
        fired: list[int] = []

        def boom() -> None:
            raise RuntimeError("boom")

        scheduler.call_later(10, boom)
        scheduler.call_later(20, lambda: fired.append(1))
        assert scheduler.advance_by(30) == 2
        assert fired == [1]


class TestAsyncioScheduler:
    """Tests for the event-loop backed scheduler."""

    @pytest.mark.asyncio
    async def test_fires_after_delay(self) -> None:
        scheduler = AsyncioScheduler()
        done = asyncio.Event()
        handle = scheduler.call_later(10, done.set)
        await asyncio.wait_for(done.wait(), timeout=1.0)
        assert handle.fired

    @pytest.mark.asyncio
    async def test_cancel_prevents_fire(self) -> None:
        scheduler = AsyncioScheduler()
        fired: list[int] = []
        handle = scheduler.call_later(10, lambda: fired.append(1))
        handle.cancel()
        await asyncio.sleep(0.05)
        assert fired == []
        assert handle.cancelled
