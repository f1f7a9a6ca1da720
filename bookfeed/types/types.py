from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# --- Order book ---

BOOK_CHANNEL = "l2Book"


@dataclass(frozen=True, slots=True)
class PriceLevel:
    """Single price level in an order book."""

    price: float
    size: float


@dataclass(frozen=True, slots=True)
class LevelsUpdate:
    """
    Decoded full-depth book message, before sorting and truncation.

    Every level has a finite price and size > 0; levels that failed validation
    are counted in dropped_levels.
    """

    coin: Optional[str]
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]
    dropped_levels: int = 0


@dataclass(frozen=True, slots=True)
class BookSnapshot:
    """Bounded L2 view handed to consumers. Replaced wholesale, never patched."""

    symbol: str
    bids: tuple[PriceLevel, ...]  # Best bid first (descending by price)
    asks: tuple[PriceLevel, ...]  # Best ask first (ascending by price)
    last_update: Optional[int] = None  # Unix ms, None until the first update
    synthetic: bool = False  # True for fallback-generated books

    @classmethod
    def empty(cls, symbol: str) -> BookSnapshot:
        return cls(symbol=symbol, bids=(), asks=())

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks

    @property
    def best_bid(self) -> Optional[float]:
        """Best bid price, or None if empty."""
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        """Best ask price, or None if empty."""
        return self.asks[0].price if self.asks else None

    @property
    def mid_price(self) -> Optional[float]:
        """Mid price, or None if either side is empty."""
        if self.bids and self.asks:
            return (self.bids[0].price + self.asks[0].price) / 2
        return None

    @property
    def spread(self) -> Optional[float]:
        """Absolute spread, or None if either side is empty."""
        if self.bids and self.asks:
            return self.asks[0].price - self.bids[0].price
        return None

    @property
    def spread_bps(self) -> Optional[float]:
        """Spread in basis points relative to mid price."""
        mid = self.mid_price
        spread = self.spread
        if mid and spread is not None and mid > 0:
            return (spread / mid) * 10000
        return None


@dataclass(frozen=True, slots=True)
class Subscription:
    """Channel subscription for one session. A new symbol means a new session."""

    symbol: str
    channel: str = BOOK_CHANNEL

    def to_message(self) -> dict[str, object]:
        return {
            "method": "subscribe",
            "subscription": {"type": self.channel, "coin": self.symbol},
        }
