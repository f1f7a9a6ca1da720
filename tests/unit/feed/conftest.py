"""
Shared fixtures for book feed tests.

FakeTransport stands in for the aiohttp socket; ManualScheduler and its SimClock
make backoff and fallback timing deterministic.
"""

from typing import Any, Optional

import orjson
import pytest

from bookfeed.core.scheduler import ManualScheduler
from bookfeed.feed.config import (
    BookFeedConfig,
    ConnectionConfig,
    FallbackConfig,
    ThrottleConfig,
)
from bookfeed.feed.errors import TransportError
from bookfeed.feed.transport import Transport, TransportListener


def book_frame(
    coin: str = "AVAX",
    bids: Optional[list[tuple[str, str]]] = None,
    asks: Optional[list[tuple[str, str]]] = None,
) -> str:
    """Build a raw l2Book text frame."""
    bids = bids if bids is not None else [("29.50", "10"), ("29.49", "4")]
    asks = asks if asks is not None else [("29.55", "5"), ("29.56", "7")]
    message = {
        "channel": "l2Book",
        "data": {
            "coin": coin,
            "time": 1700000000000,
            "levels": [
                [{"px": px, "sz": sz, "n": 1} for px, sz in bids],
                [{"px": px, "sz": sz, "n": 1} for px, sz in asks],
            ],
        },
    }
    return orjson.dumps(message).decode()


class FakeTransport(Transport):
    """In-memory transport; tests drive its listener directly."""

    def __init__(self, listener: TransportListener, fail_open: bool = False) -> None:
        self.listener = listener
        self.fail_open = fail_open
        self.fail_send = False
        self.opened = False
        self.closed = False
        self.sent: list[dict[str, Any]] = []

    async def open(self) -> None:
        if self.fail_open:
            raise TransportError("connection refused", url="wss://test")
        self.opened = True

    async def send(self, payload: dict[str, Any]) -> None:
        if self.fail_send:
            raise TransportError("send failed", url="wss://test")
        self.sent.append(payload)

    async def close(self) -> None:
        self.closed = True

    # --- Test drivers ---

    def push(self, raw: Any) -> None:
        self.listener.on_frame(raw)

    def drop(self, was_clean: bool = False, code: Optional[int] = 1006) -> None:
        self.listener.on_close(was_clean, code)

    def fail(self, error: Optional[Exception] = None) -> None:
        self.listener.on_error(error or ConnectionResetError("reset by peer"))


class FakeTransportFactory:
    """TransportFactory that records every transport it builds."""

    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []
        self.fail_open = False
        self.raise_on_create = False
        self.fail_send = False

    def __call__(self, config: ConnectionConfig, listener: TransportListener) -> FakeTransport:
        if self.raise_on_create:
            raise ValueError("bad url")
        transport = FakeTransport(listener, fail_open=self.fail_open)
        transport.fail_send = self.fail_send
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def factory() -> FakeTransportFactory:
    """Transport factory whose transports open successfully by default."""
    return FakeTransportFactory()


@pytest.fixture
def scheduler() -> ManualScheduler:
    """Deterministic scheduler starting at t=0."""
    return ManualScheduler()


@pytest.fixture
def feed_config() -> BookFeedConfig:
    """Default feed config with a seeded fallback generator."""
    return BookFeedConfig(
        symbol="AVAX",
        connection=ConnectionConfig(url="wss://test"),
        throttle=ThrottleConfig(min_interval_ms=200),
        fallback=FallbackConfig(seed=7),
    )


@pytest.fixture
def make_frame():
    """Factory for raw l2Book frames."""
    return book_frame
