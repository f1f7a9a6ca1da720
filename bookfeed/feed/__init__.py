"""
Order Book Feed Module.

This module keeps a bounded, always-displayable L2 book for one symbol from a
streaming l2Book WebSocket feed, falling back to synthetic books when the feed
cannot be reached.

Components:
- OrderBookFeed: Control surface (snapshot, status, reconnect)
- ConnectionManager: Connection state machine, backoff, event pump
- decode_frame: Wire decoder for l2Book messages
- BookState: Sorted, truncated, atomically replaced snapshot
- ThrottleGate: Rate limit for book replacements
- FallbackGenerator: Synthetic books for the exhausted state

Usage:
    from bookfeed.feed import BookFeedConfig, OrderBookFeed

    async with OrderBookFeed(BookFeedConfig(symbol="AVAX")) as feed:
        feed.subscribe(lambda view: print(view.snapshot.best_bid))
        ...
"""

from bookfeed.feed.book import BookState, build_snapshot
from bookfeed.feed.config import (
    BookFeedConfig,
    ConnectionConfig,
    FallbackConfig,
    ThrottleConfig,
)
from bookfeed.feed.connection import ConnectionManager
from bookfeed.feed.decoder import decode_frame, decode_message
from bookfeed.feed.errors import (
    BookFeedError,
    ConfigurationError,
    MessageParseError,
    TransportError,
)
from bookfeed.feed.fallback import FallbackGenerator
from bookfeed.feed.surface import FeedView, OrderBookFeed
from bookfeed.feed.throttle import ThrottleGate
from bookfeed.feed.types import ConnectionState, FeedStats, FeedStatus

__all__ = [
    # Main entry point
    "OrderBookFeed",
    "FeedView",
    "BookFeedConfig",
    "ConnectionConfig",
    "ThrottleConfig",
    "FallbackConfig",
    # Components
    "ConnectionManager",
    "BookState",
    "build_snapshot",
    "ThrottleGate",
    "FallbackGenerator",
    "decode_frame",
    "decode_message",
    # Types
    "ConnectionState",
    "FeedStatus",
    "FeedStats",
    # Errors
    "BookFeedError",
    "TransportError",
    "MessageParseError",
    "ConfigurationError",
]
