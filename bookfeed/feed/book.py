"""
Authoritative in-memory book for one session.

Every accepted update is a full replace of both sides: the feed delivers full
depth snapshots, not diffs, so nothing from the previous snapshot survives.
"""

from __future__ import annotations

from typing import Iterable, Optional

from bookfeed.core.clock import Millis
from bookfeed.types.types import BookSnapshot, LevelsUpdate, PriceLevel

DEFAULT_DEPTH = 15


def _side(levels: Iterable[PriceLevel], *, descending: bool, depth: int) -> tuple[PriceLevel, ...]:
    # Last occurrence of a price wins
    by_price: dict[float, PriceLevel] = {}
    for level in levels:
        if level.size > 0:
            by_price[level.price] = level
    ordered = sorted(by_price.values(), key=lambda lvl: lvl.price, reverse=descending)
    return tuple(ordered[:depth])


def build_snapshot(
    update: LevelsUpdate,
    now: Millis,
    *,
    symbol: str,
    depth: int = DEFAULT_DEPTH,
    synthetic: bool = False,
) -> BookSnapshot:
    """Sort (bids descending, asks ascending), de-duplicate and truncate an update."""
    return BookSnapshot(
        symbol=symbol,
        bids=_side(update.bids, descending=True, depth=depth),
        asks=_side(update.asks, descending=False, depth=depth),
        last_update=now,
        synthetic=synthetic,
    )


class BookState:
    """
    Holds the current BookSnapshot.

    Thread-safety: NOT thread-safe. Designed for the single event-queue pump.
    Replacement is a single reference swap, so a reader always sees both sides
    from the same update.
    """

    __slots__ = ("_symbol", "_depth", "_snapshot", "_replacements")

    def __init__(self, symbol: str, depth: int = DEFAULT_DEPTH) -> None:
        self._symbol = symbol
        self._depth = depth
        self._snapshot = BookSnapshot.empty(symbol)
        self._replacements = 0

    @property
    def snapshot(self) -> BookSnapshot:
        return self._snapshot

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def replacements(self) -> int:
        """Number of snapshots installed since the last reset."""
        return self._replacements

    def merge(self, update: LevelsUpdate, now: Millis) -> BookSnapshot:
        """Build a snapshot from update and install it."""
        snapshot = build_snapshot(update, now, symbol=self._symbol, depth=self._depth)
        return self.replace(snapshot)

    def replace(self, snapshot: BookSnapshot) -> BookSnapshot:
        """Install a prebuilt snapshot (fallback path)."""
        self._snapshot = snapshot
        self._replacements += 1
        return snapshot

    def reset(self, symbol: Optional[str] = None) -> None:
        """Drop the book, e.g. at session start or on a symbol change."""
        if symbol is not None:
            self._symbol = symbol
        self._snapshot = BookSnapshot.empty(self._symbol)
        self._replacements = 0
