"""
Unit tests for the synthetic book generator.
"""

import pytest

from bookfeed.feed.config import FallbackConfig
from bookfeed.feed.fallback import FallbackGenerator


class TestFallbackGenerator:
    """Tests for FallbackGenerator.generate."""

    @pytest.fixture
    def generator(self) -> FallbackGenerator:
        return FallbackGenerator("AVAX", FallbackConfig(seed=42), depth=15)

    def test_structure(self, generator: FallbackGenerator) -> None:
        snap = generator.generate(1000)
        assert snap.synthetic is True
        assert snap.symbol == "AVAX"
        assert snap.last_update == 1000
        assert len(snap.bids) == 15
        assert len(snap.asks) == 15

    def test_prices_around_base(self, generator: FallbackGenerator) -> None:
        snap = generator.generate(0)
        assert snap.bids[0].price == pytest.approx(29.499)
        assert snap.asks[0].price == pytest.approx(29.501)
        assert snap.bids[-1].price == pytest.approx(29.485)
        assert snap.asks[-1].price == pytest.approx(29.515)

    def test_sides_ordered_and_uncrossed(self, generator: FallbackGenerator) -> None:
        snap = generator.generate(0)
        bid_prices = [lvl.price for lvl in snap.bids]
        ask_prices = [lvl.price for lvl in snap.asks]
        assert bid_prices == sorted(bid_prices, reverse=True)
        assert ask_prices == sorted(ask_prices)
        assert snap.best_bid < snap.best_ask

    def test_sizes_in_range_with_two_decimals(self, generator: FallbackGenerator) -> None:
        for _ in range(20):
            snap = generator.generate(0)
            for level in snap.bids + snap.asks:
                assert 50.0 <= level.size < 250.0
                assert round(level.size, 2) == level.size

    def test_seeded_output_reproducible(self) -> None:
        a = FallbackGenerator("AVAX", FallbackConfig(seed=3)).generate(0)
        b = FallbackGenerator("AVAX", FallbackConfig(seed=3)).generate(0)
        assert a == b

    def test_symbol_override(self, generator: FallbackGenerator) -> None:
        assert generator.generate(0, symbol="BTC").symbol == "BTC"

    def test_generated_counter(self, generator: FallbackGenerator) -> None:
        generator.generate(0)
        generator.generate(1)
        assert generator.generated == 2
