"""
now() provides the canonical notion of time for the feed engine. It is used by
 - ThrottleGate, to decide whether an update may replace the book
 - BookState, to stamp last_update on every snapshot
 - FallbackGenerator, to stamp synthetic snapshots
 - ManualScheduler, which fires timers against a SimClock
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

# type alias (at runtime equivalent to int)
Millis = int  # Milliseconds since epoch

# -------- Exceptions -----------------------------------------------------------


class ClockError(RuntimeError):
    """Raised when a clock operation would violate its invariants (e.g., going backward)."""


# -------- Interface -----------------------------------------------------------


class Clock(ABC):
    """
    Engine-wide time source interface.

    All timestamps are UTC epoch milliseconds (int). Implementations must be
    monotonic non-decreasing within a run.
    """

    def now(self) -> Millis:
        """Current time in UTC epoch milliseconds (monotonic within the run)."""
        raise NotImplementedError

    @property
    @abstractmethod
    def is_realtime(self) -> bool:
        """True for RealtimeClock; False for SimClock."""
        raise NotImplementedError


# -------- RealtimeClock -------------------------------------------------------


@dataclass
class RealtimeClock(Clock):
    """
    Realtime clock that is robust to system time changes.

    It anchors to the wall-clock at construction and then advances using
    time.monotonic(). This keeps `now()` monotonic within the run even if
    the OS clock is adjusted by NTP, so throttle windows never run backwards.
    """

    _t0_wall_ms: Optional[Millis] = None
    _t0_mono: Optional[float] = None

    def __post_init__(self) -> None:
        self._t0_wall_ms = int(time.time() * 1000)  # time since Unix Epoch (UTC)
        self._t0_mono = time.monotonic()

    @property
    def is_realtime(self) -> bool:
        return True

    def now(self) -> Millis:
        if self._t0_wall_ms is None or self._t0_mono is None:
            raise ClockError("Clock not properly initialized")
        elapsed_ms = int((time.monotonic() - self._t0_mono) * 1000)
        return self._t0_wall_ms + elapsed_ms


# -------- SimClock ------------------------------------------------------------


class SimClock(Clock):
    """
    Deterministic, manually-advanced clock.

    Tests and simulations drive it with `advance_to()` / `advance_by()`. All
    advances must be forward (monotonic).
    """

    def __init__(self, start_ms: Millis = 0):
        if start_ms < 0:
            raise ClockError(f"SimClock: start_ms must be >= 0, got {start_ms}")
        self.start_ms: Millis = start_ms
        self._current_ms: Millis = start_ms

    @property
    def is_realtime(self) -> bool:
        return False

    def now(self) -> Millis:
        return self._current_ms

    def advance_to(self, ts_ms: Millis) -> Millis:
        """
        Move the simulated time forward to exactly ts_ms.

        Returns the new current time. Raises ClockError on backward moves.
        """
        if ts_ms < self._current_ms:
            raise ClockError(f"SimClock: cannot go backwards: {ts_ms} < {self._current_ms}")
        self._current_ms = ts_ms
        return self._current_ms

    def advance_by(self, delta_ms: Millis) -> Millis:
        """Move the simulated time forward by delta_ms (>= 0)."""
        if delta_ms < 0:
            raise ClockError(f"SimClock: cannot go backwards, delta_ms < 0: {delta_ms}")
        return self.advance_to(self._current_ms + int(delta_ms))
