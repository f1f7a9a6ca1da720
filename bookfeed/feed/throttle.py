from __future__ import annotations

from typing import Optional

from bookfeed.core.clock import Millis


class ThrottleGate:
    """
    Rate limit for book replacements.

    Admits an update only if at least min_interval_ms have elapsed since the
    last admitted one. Rejected updates are not buffered: the next full
    snapshot supersedes them.
    """

    __slots__ = ("_min_interval_ms", "_last_admitted", "admitted", "dropped")

    def __init__(self, min_interval_ms: int = 200) -> None:
        self._min_interval_ms = min_interval_ms
        self._last_admitted: Optional[Millis] = None
        self.admitted = 0
        self.dropped = 0

    @property
    def last_admitted(self) -> Optional[Millis]:
        return self._last_admitted

    def admit(self, now: Millis) -> bool:
        if self._last_admitted is not None and now - self._last_admitted < self._min_interval_ms:
            self.dropped += 1
            return False
        self._last_admitted = now
        self.admitted += 1
        return True

    def reset(self) -> None:
        self._last_admitted = None
        self.admitted = 0
        self.dropped = 0
