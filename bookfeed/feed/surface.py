"""
Consumer-facing control surface.

Exposes the current snapshot, a coarse connection status, and the manual
reconnect command. This is the only interface a presentation layer needs.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Awaitable, Callable, Optional, Union

from bookfeed.core.clock import Clock
from bookfeed.core.scheduler import Scheduler
from bookfeed.feed.config import BookFeedConfig
from bookfeed.feed.connection import ConnectionManager
from bookfeed.feed.transport import TransportFactory, aiohttp_transport_factory
from bookfeed.feed.types import FeedStats, FeedStatus
from bookfeed.types.types import BookSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FeedView:
    """What an observer receives: the snapshot and the status it was produced under."""

    snapshot: BookSnapshot
    status: FeedStatus

    @property
    def connected(self) -> bool:
        return self.status.connected

    @property
    def connecting(self) -> bool:
        return self.status.connecting


Observer = Callable[[FeedView], Union[Awaitable[None], None]]


class OrderBookFeed:
    """
    Read-only view of one symbol's book plus the reconnect control.

    Observers are called after every snapshot replacement and every connection
    state change. An observer that raises is logged and skipped; it never
    affects the feed or other observers.

    Usage:
        async with OrderBookFeed(BookFeedConfig(symbol="AVAX")) as feed:
            feed.subscribe(lambda view: render(view.snapshot))
            ...
            feed.reconnect()
    """

    def __init__(
        self,
        config: Optional[BookFeedConfig] = None,
        *,
        transport_factory: TransportFactory = aiohttp_transport_factory,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Clock] = None,
        name: str = "book_feed",
    ) -> None:
        self._config = config or BookFeedConfig()
        self._name = name
        self._observers: list[Observer] = []
        self._manager = ConnectionManager(
            self._config,
            on_snapshot=self._on_snapshot,
            on_state_change=self._on_state_change,
            transport_factory=transport_factory,
            scheduler=scheduler,
            clock=clock,
            name=name,
        )

    # --- Read side ---

    @property
    def snapshot(self) -> BookSnapshot:
        """Current snapshot. Frozen; safe to hold across updates."""
        return self._manager.snapshot

    @property
    def status(self) -> FeedStatus:
        return self._manager.status

    @property
    def connected(self) -> bool:
        return self._manager.status.connected

    @property
    def connecting(self) -> bool:
        return self._manager.status.connecting

    @property
    def symbol(self) -> str:
        return self._manager.symbol

    @property
    def stats(self) -> FeedStats:
        return self._manager.stats

    @property
    def config(self) -> BookFeedConfig:
        return self._config

    def view(self) -> FeedView:
        return FeedView(snapshot=self._manager.snapshot, status=self._manager.status)

    # --- Observers ---

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer. Returns a callable that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    # --- Commands ---

    async def start(self) -> None:
        await self._manager.start()

    async def stop(self) -> None:
        await self._manager.stop()

    def reconnect(self) -> None:
        """
        Force a fresh connection attempt.

        While connecting or connected this only resets the retry budget.
        Otherwise (exhausted or disconnected) it cancels the synthetic refresh,
        resets the attempt counter, and opens a new transport.
        """
        self._manager.request_reconnect()

    def disconnect(self) -> None:
        """Close the live transport without scheduling a reconnect."""
        self._manager.request_disconnect()

    def set_symbol(self, symbol: str) -> None:
        """
        Tear down the current session and start a new one for symbol.

        Before start() (or after stop()) the symbol is kept for the next start().
        """
        self._manager.request_symbol(symbol)

    async def wait_idle(self) -> None:
        await self._manager.wait_idle()

    async def __aenter__(self) -> OrderBookFeed:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.stop()

    # --- Manager callbacks ---

    async def _on_snapshot(self, snapshot: BookSnapshot) -> None:
        await self._broadcast(FeedView(snapshot=snapshot, status=self._manager.status))

    async def _on_state_change(self, status: FeedStatus) -> None:
        await self._broadcast(FeedView(snapshot=self._manager.snapshot, status=status))

    async def _broadcast(self, view: FeedView) -> None:
        for observer in list(self._observers):
            try:
                result: Any = observer(view)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"[{self._name}] Observer error: {e}", exc_info=True)
