"""
Configuration types for the book feed.

Provides immutable, validated configuration dataclasses for all feed components.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from bookfeed.feed.errors import ConfigurationError
from bookfeed.types.types import BOOK_CHANNEL

HYPERLIQUID_WS_URL = "wss://api.hyperliquid.xyz/ws"


@dataclass(frozen=True)
class ConnectionConfig:
    """Configuration for the WebSocket connection and its retry policy."""

    url: str = HYPERLIQUID_WS_URL

    # Connection behavior
    connect_timeout_s: float = 10.0
    heartbeat_s: float = 30.0

    # Retry policy: delay = min(base * 2^(attempt-1), max)
    max_reconnect_attempts: int = 5
    base_reconnect_delay_ms: int = 1000
    max_reconnect_delay_ms: int = 8000

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigurationError("url must be non-empty", field="url")
        if self.connect_timeout_s <= 0:
            raise ConfigurationError(
                "connect_timeout_s must be positive",
                field="connect_timeout_s",
                value=self.connect_timeout_s,
            )
        if self.max_reconnect_attempts < 1:
            raise ConfigurationError(
                "max_reconnect_attempts must be at least 1",
                field="max_reconnect_attempts",
                value=self.max_reconnect_attempts,
            )
        if self.base_reconnect_delay_ms <= 0:
            raise ConfigurationError(
                "base_reconnect_delay_ms must be positive",
                field="base_reconnect_delay_ms",
                value=self.base_reconnect_delay_ms,
            )
        if self.max_reconnect_delay_ms < self.base_reconnect_delay_ms:
            raise ConfigurationError(
                "max_reconnect_delay_ms must be >= base_reconnect_delay_ms",
                field="max_reconnect_delay_ms",
                value=self.max_reconnect_delay_ms,
            )

    def backoff_delay_ms(self, attempt: int) -> int:
        """Reconnect delay for the given (1-based) attempt number."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        delay = self.base_reconnect_delay_ms * (2 ** (attempt - 1))
        return min(delay, self.max_reconnect_delay_ms)


@dataclass(frozen=True)
class ThrottleConfig:
    """Minimum spacing between accepted book replacements."""

    min_interval_ms: int = 200

    def __post_init__(self) -> None:
        if self.min_interval_ms < 0:
            raise ConfigurationError(
                "min_interval_ms must be non-negative",
                field="min_interval_ms",
                value=self.min_interval_ms,
            )


@dataclass(frozen=True)
class FallbackConfig:
    """Synthetic book parameters used once the retry budget is spent."""

    base_price: float = 29.50
    spread: float = 0.001
    tick: float = 0.001
    size_min: float = 50.0
    size_max: float = 250.0
    refresh_interval_ms: int = 5000
    price_decimals: int = 3
    size_decimals: int = 2
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if self.tick <= 0:
            raise ConfigurationError("tick must be positive", field="tick", value=self.tick)
        if self.price_decimals >= 0 and round(self.tick, self.price_decimals) <= 0:
            raise ConfigurationError(
                "tick is below the price precision",
                field="tick",
                value=self.tick,
            )
        if self.spread < 0:
            raise ConfigurationError(
                "spread must be non-negative", field="spread", value=self.spread
            )
        if not (0 < self.size_min < self.size_max):
            raise ConfigurationError(
                "size range must satisfy 0 < size_min < size_max",
                field="size_min",
                value=(self.size_min, self.size_max),
            )
        if self.refresh_interval_ms <= 0:
            raise ConfigurationError(
                "refresh_interval_ms must be positive",
                field="refresh_interval_ms",
                value=self.refresh_interval_ms,
            )
        if self.price_decimals < 0 or self.size_decimals < 0:
            raise ConfigurationError(
                "decimals must be non-negative",
                field="price_decimals",
                value=(self.price_decimals, self.size_decimals),
            )


@dataclass(frozen=True)
class BookFeedConfig:
    """
    Immutable top-level configuration for one book feed.

    Example:
        config = BookFeedConfig(
            symbol="BTC",
            connection=ConnectionConfig(max_reconnect_attempts=3),
        )
    """

    symbol: str = "AVAX"
    channel: str = BOOK_CHANNEL
    depth: int = 15

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    throttle: ThrottleConfig = field(default_factory=ThrottleConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)

    def __post_init__(self) -> None:
        if not self.symbol or not self.symbol.strip():
            raise ConfigurationError("symbol must be non-empty", field="symbol")
        if self.channel != BOOK_CHANNEL:
            raise ConfigurationError(
                f"only the {BOOK_CHANNEL} channel is supported",
                field="channel",
                value=self.channel,
            )
        if self.depth <= 0:
            raise ConfigurationError("depth must be positive", field="depth", value=self.depth)
