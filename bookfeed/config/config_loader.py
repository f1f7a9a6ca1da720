"""
Purpose:
    - Loads a feed config file (TOML)
    - Validates it (unknown keys and wrong types are rejected)
    - Builds the immutable BookFeedConfig

Example file:

    [feed]
    symbol = "AVAX"
    depth = 15

    [connection]
    url = "wss://api.hyperliquid.xyz/ws"
    max_reconnect_attempts = 5

    [throttle]
    min_interval_ms = 200

    [fallback]
    base_price = 29.50
    seed = 7
"""

import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from bookfeed.feed.config import (
    HYPERLIQUID_WS_URL,
    BookFeedConfig,
    ConnectionConfig,
    FallbackConfig,
    ThrottleConfig,
)
from bookfeed.feed.errors import ConfigurationError
from bookfeed.types.types import BOOK_CHANNEL


class FeedSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    symbol: str = "AVAX"
    channel: str = BOOK_CHANNEL
    depth: int = 15


class ConnectionSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = HYPERLIQUID_WS_URL
    connect_timeout_s: float = 10.0
    heartbeat_s: float = 30.0
    max_reconnect_attempts: int = 5
    base_reconnect_delay_ms: int = 1000
    max_reconnect_delay_ms: int = 8000


class ThrottleSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_interval_ms: int = 200


class FallbackSection(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_price: float = 29.50
    spread: float = 0.001
    tick: float = 0.001
    size_min: float = 50.0
    size_max: float = 250.0
    refresh_interval_ms: int = 5000
    price_decimals: int = 3
    size_decimals: int = 2
    seed: Optional[int] = None


class LoadedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    feed: FeedSection = FeedSection()
    connection: ConnectionSection = ConnectionSection()
    throttle: ThrottleSection = ThrottleSection()
    fallback: FallbackSection = FallbackSection()


class ConfigLoader:
    """
    Config-loader; loading toml file.
    """

    def __init__(self, base_dir: str = ".") -> None:
        self._base_dir = base_dir

    def load(self, file_name: str) -> dict[str, Any]:
        path = Path(file_name)
        if not path.is_absolute():
            path = Path(self._base_dir) / file_name

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("rb") as f:
            return tomllib.load(f)

    def parse(self, data: dict[str, Any]) -> LoadedConfig:
        try:
            return LoadedConfig.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise ConfigurationError(
                f"Invalid config: {first.get('msg', 'validation error')}",
                field=location or None,
                component="ConfigLoader",
            ) from e

    def build(self, loaded: LoadedConfig, symbol: Optional[str] = None) -> BookFeedConfig:
        """Build the frozen config; dataclass validation still applies."""
        return BookFeedConfig(
            symbol=symbol or loaded.feed.symbol,
            channel=loaded.feed.channel,
            depth=loaded.feed.depth,
            connection=ConnectionConfig(**loaded.connection.model_dump()),
            throttle=ThrottleConfig(**loaded.throttle.model_dump()),
            fallback=FallbackConfig(**loaded.fallback.model_dump()),
        )

    def load_feed_config(self, file_name: str, symbol: Optional[str] = None) -> BookFeedConfig:
        return self.build(self.parse(self.load(file_name)), symbol=symbol)
