"""
Synthetic order book used once the live feed is given up on.

Produces a structurally valid book around a fixed base price so consumers
always have something displayable: bids step down from base - spread, asks
step up from base + spread, sizes are uniform draws in [size_min, size_max).
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from bookfeed.core.clock import Millis
from bookfeed.feed.book import DEFAULT_DEPTH
from bookfeed.feed.config import FallbackConfig
from bookfeed.types.types import BookSnapshot, PriceLevel


class FallbackGenerator:
    """
    Builds synthetic BookSnapshots.

    Scheduling of the periodic refresh is owned by the ConnectionManager; this
    class only knows how to build one snapshot.
    """

    def __init__(
        self,
        symbol: str,
        config: Optional[FallbackConfig] = None,
        depth: int = DEFAULT_DEPTH,
    ) -> None:
        self._symbol = symbol
        self._config = config or FallbackConfig()
        self._depth = depth
        self._rng = np.random.default_rng(self._config.seed)
        self.generated = 0

    @property
    def config(self) -> FallbackConfig:
        return self._config

    def _sizes(self) -> list[float]:
        cfg = self._config
        raw = self._rng.uniform(cfg.size_min, cfg.size_max, size=self._depth)
        # Floor rather than round so the upper bound stays exclusive
        scale = 10**cfg.size_decimals
        return [max(cfg.size_min, math.floor(float(s) * scale) / scale) for s in raw]

    def _prices(self, start: float, step: float) -> list[float]:
        decimals = self._config.price_decimals
        return [round(start + i * step, decimals) for i in range(self._depth)]

    def generate(self, now: Millis, symbol: Optional[str] = None) -> BookSnapshot:
        cfg = self._config
        bid_prices = self._prices(cfg.base_price - cfg.spread, -cfg.tick)
        ask_prices = self._prices(cfg.base_price + cfg.spread, cfg.tick)
        bids = tuple(PriceLevel(p, s) for p, s in zip(bid_prices, self._sizes()))
        asks = tuple(PriceLevel(p, s) for p, s in zip(ask_prices, self._sizes()))
        self.generated += 1
        return BookSnapshot(
            symbol=symbol or self._symbol,
            bids=bids,
            asks=asks,
            last_update=now,
            synthetic=True,
        )
