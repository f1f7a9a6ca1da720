"""
Cancellable one-shot timers for backoff and fallback refresh.

Two implementations share the same contract:
 - AsyncioScheduler: wraps loop.call_later, used at runtime
 - ManualScheduler: fires timers against a SimClock when advanced, used by tests

A cancelled TimerHandle never fires, and cancelling twice (or after firing) is a no-op.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from bookfeed.core.clock import Millis, SimClock

logger = logging.getLogger(__name__)


class TimerHandle:
    """Handle for a scheduled callback."""

    def __init__(self, due_ms: Millis, callback: Callable[[], None], name: str = "timer") -> None:
        self.due_ms = due_ms
        self.name = name
        self._callback = callback
        self._cancelled = False
        self._fired = False
        self._on_cancel: Optional[Callable[[], None]] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def pending(self) -> bool:
        """True until the timer fires or is cancelled."""
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        if not self.pending:
            return
        self._cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()

    def _fire(self) -> None:
        if not self.pending:
            return
        self._fired = True
        try:
            self._callback()
        except Exception as e:
            logger.error(f"[{self.name}] Timer callback error: {e}", exc_info=True)


class Scheduler(ABC):
    """Timer facility interface. Delays are in milliseconds."""

    @abstractmethod
    def call_later(
        self, delay_ms: Millis, callback: Callable[[], None], name: str = "timer"
    ) -> TimerHandle:
        """Schedule callback to run once after delay_ms."""
        raise NotImplementedError


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(
        self, delay_ms: Millis, callback: Callable[[], None], name: str = "timer"
    ) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        due_ms = int(loop.time() * 1000) + delay_ms
        handle = TimerHandle(due_ms=due_ms, callback=callback, name=name)
        loop_handle = loop.call_later(max(0, delay_ms) / 1000.0, handle._fire)
        handle._on_cancel = loop_handle.cancel
        return handle


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler driven by a SimClock.

    Nothing fires until `advance_by()` / `advance_to()` is called; due timers
    then fire in (due time, scheduling order) order, with the clock set to each
    timer's due time as it fires.
    """

    def __init__(self, clock: Optional[SimClock] = None) -> None:
        self.clock = clock or SimClock()
        self._heap: list[tuple[Millis, int, TimerHandle]] = []
        self._seq = itertools.count()

    def call_later(
        self, delay_ms: Millis, callback: Callable[[], None], name: str = "timer"
    ) -> TimerHandle:
        if delay_ms < 0:
            delay_ms = 0
        handle = TimerHandle(due_ms=self.clock.now() + delay_ms, callback=callback, name=name)
        heapq.heappush(self._heap, (handle.due_ms, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> list[TimerHandle]:
        """Pending handles ordered by due time."""
        return [h for _, _, h in sorted(self._heap) if h.pending]

    def advance_to(self, ts_ms: Millis) -> int:
        """Advance the clock to ts_ms, firing every timer due on the way. Returns count fired."""
        fired = 0
        while self._heap and self._heap[0][0] <= ts_ms:
            due_ms, _, handle = heapq.heappop(self._heap)
            if not handle.pending:
                continue
            self.clock.advance_to(max(due_ms, self.clock.now()))
            handle._fire()
            fired += 1
        self.clock.advance_to(max(ts_ms, self.clock.now()))
        return fired

    def advance_by(self, delta_ms: Millis) -> int:
        return self.advance_to(self.clock.now() + delta_ms)
