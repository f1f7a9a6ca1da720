"""
Connection Manager for the order book feed.

Owns the session for one symbol:
- Transport lifecycle (connect, subscribe, close)
- Exponential backoff reconnection with a bounded retry budget
- Decode -> throttle -> merge pipeline for incoming frames
- Fallback to synthetic books once the retry budget is spent

Everything that mutates the session runs inside a single pump task that
consumes SessionEvents from one asyncio.Queue. Transport callbacks and timer
callbacks only enqueue events, so merges and state transitions never
interleave.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from bookfeed.core.clock import Clock, RealtimeClock
from bookfeed.core.scheduler import AsyncioScheduler, Scheduler
from bookfeed.feed.book import BookState
from bookfeed.feed.config import BookFeedConfig
from bookfeed.feed.decoder import decode_frame
from bookfeed.feed.errors import TransportError
from bookfeed.feed.fallback import FallbackGenerator
from bookfeed.feed.throttle import ThrottleGate
from bookfeed.feed.transport import (
    Frame,
    Transport,
    TransportFactory,
    aiohttp_transport_factory,
)
from bookfeed.feed.types import (
    ConnectionState,
    EventType,
    FeedStats,
    FeedStatus,
    Session,
    SessionEvent,
)
from bookfeed.types.types import BookSnapshot, Subscription

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[BookSnapshot], Union[Awaitable[None], None]]
StatusCallback = Callable[[FeedStatus], Union[Awaitable[None], None]]

_TRANSPORT_EVENTS = frozenset({EventType.FRAME, EventType.CLOSED, EventType.ERROR})
_COMMAND_EVENTS = frozenset(
    {EventType.MANUAL_RECONNECT, EventType.DISCONNECT, EventType.SYMBOL_CHANGE}
)


class _SessionListener:
    """TransportListener bound to one session generation and one transport."""

    __slots__ = ("_manager", "_generation", "_transport_id")

    def __init__(self, manager: ConnectionManager, generation: int, transport_id: int) -> None:
        self._manager = manager
        self._generation = generation
        self._transport_id = transport_id

    def on_frame(self, raw: Frame) -> None:
        self._manager._post(
            SessionEvent(EventType.FRAME, self._generation, self._transport_id, raw=raw)
        )

    def on_close(self, was_clean: bool, code: Optional[int]) -> None:
        self._manager._post(
            SessionEvent(
                EventType.CLOSED,
                self._generation,
                self._transport_id,
                was_clean=was_clean,
                code=code,
            )
        )

    def on_error(self, error: Exception) -> None:
        self._manager._post(
            SessionEvent(EventType.ERROR, self._generation, self._transport_id, error=error)
        )


class ConnectionManager:
    """
    Connection state machine for a single l2Book subscription.

    State Machine:
        [DISCONNECTED] --start()--> [CONNECTING] --open ok--> [CONNECTED]
                                       ^    |                     |
                                       |    +--fail, retries left-+ (close/error)
                                       |    |
                                       |  fail, budget spent
                                       |    v
                                       +-- [EXHAUSTED] (fallback books)
                                    reconnect()

    The ConnectionManager never raises into its callers once started: every
    failure becomes a state change plus, eventually, a synthetic snapshot.

    Usage:
        manager = ConnectionManager(BookFeedConfig(symbol="AVAX"), on_snapshot=render)
        await manager.start()
        # ... later ...
        manager.request_reconnect()
        await manager.stop()
    """

    def __init__(
        self,
        config: BookFeedConfig,
        *,
        on_snapshot: Optional[SnapshotCallback] = None,
        on_state_change: Optional[StatusCallback] = None,
        transport_factory: TransportFactory = aiohttp_transport_factory,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Clock] = None,
        name: str = "book_feed",
    ) -> None:
        """
        Initialize the connection manager.

        Args:
            config: Feed configuration
            on_snapshot: Callback for every installed snapshot (live or synthetic)
            on_state_change: Callback for connection state changes
            transport_factory: Builds a Transport for each connection attempt
            scheduler: Timer facility for backoff and fallback refresh
            clock: Time source for throttling and snapshot timestamps
            name: Name for logging purposes
        """
        self._config = config
        self._on_snapshot = on_snapshot
        self._on_state_change = on_state_change
        self._transport_factory = transport_factory
        self._scheduler = scheduler or AsyncioScheduler()
        self._clock = clock or RealtimeClock()
        self._name = name

        # State
        self._state = ConnectionState.DISCONNECTED
        self._session: Optional[Session] = None
        self._generation = 0
        # Symbol the next start() subscribes to
        self._next_symbol = config.symbol

        # Pipeline
        self._book = BookState(config.symbol, depth=config.depth)
        self._throttle = ThrottleGate(config.throttle.min_interval_ms)
        self._fallback = FallbackGenerator(config.symbol, config.fallback, depth=config.depth)
        self._stats = FeedStats()

        # Event queue and its single consumer
        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._pump_task: Optional[asyncio.Task[None]] = None

    # --- Properties ---

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def status(self) -> FeedStatus:
        session = self._session
        return FeedStatus(
            state=self._state,
            attempts=session.attempts if session else 0,
            synthetic=self._book.snapshot.synthetic,
        )

    @property
    def snapshot(self) -> BookSnapshot:
        return self._book.snapshot

    @property
    def symbol(self) -> str:
        if self.is_running and self._session is not None:
            return self._session.symbol
        return self._next_symbol

    @property
    def stats(self) -> FeedStats:
        return self._stats

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def is_running(self) -> bool:
        return self._pump_task is not None and not self._pump_task.done()

    # --- Lifecycle ---

    async def start(self) -> None:
        """Start the event pump and open the first session."""
        if self.is_running:
            logger.warning(f"[{self._name}] Already running")
            return

        self._pump_task = asyncio.create_task(self._pump(), name=f"{self._name}_pump")
        session = self._new_session(self._next_symbol)
        logger.info(f"[{self._name}] Starting session {session.generation} for {session.symbol}")
        self._post(SessionEvent(EventType.CONNECT, session.generation))

    async def stop(self) -> None:
        """Tear down the session and stop the pump."""
        session = self._session
        if session is not None:
            session.live = False

        task = self._pump_task
        self._pump_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        # Events still queued belong to a dead session
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

        if session is not None:
            await self._teardown(session)
        await self._set_state(ConnectionState.DISCONNECTED)
        logger.info(f"[{self._name}] Stopped")

    async def wait_idle(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    # --- Commands (non-blocking, serialized through the queue) ---

    def request_reconnect(self) -> None:
        if not self.is_running or self._session is None:
            logger.debug(f"[{self._name}] Not running, reconnect ignored")
            return
        self._post(SessionEvent(EventType.MANUAL_RECONNECT, self._session.generation))

    def request_disconnect(self) -> None:
        if not self.is_running or self._session is None:
            logger.debug(f"[{self._name}] Not running, disconnect ignored")
            return
        self._post(SessionEvent(EventType.DISCONNECT, self._session.generation))

    def request_symbol(self, symbol: str) -> None:
        """Switch symbols. While stopped, the symbol is kept for the next start()."""
        if not self.is_running or self._session is None:
            self._next_symbol = symbol
            self._book.reset(symbol)
            return
        self._post(
            SessionEvent(EventType.SYMBOL_CHANGE, self._session.generation, symbol=symbol)
        )

    # --- Event pump ---

    def _post(self, event: SessionEvent) -> None:
        # Nothing drains the queue once the pump is gone
        if not self.is_running:
            return
        self._queue.put_nowait(event)

    async def _pump(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"[{self._name}] Error handling {event.type.value}: {e}", exc_info=True
                )
            finally:
                self._queue.task_done()

    def _is_current(self, event: SessionEvent) -> bool:
        session = self._session
        if session is None or not session.live:
            return False
        # Consumer commands target whichever session is live when they are handled
        if event.type in _COMMAND_EVENTS:
            return True
        if event.generation != session.generation:
            return False
        if event.type in _TRANSPORT_EVENTS:
            return session.transport is not None and event.transport_id == session.transport_id
        return True

    async def _dispatch(self, event: SessionEvent) -> None:
        if not self._is_current(event):
            self._stats.stale_events += 1
            logger.debug(f"[{self._name}] Dropping stale {event.type.value} event")
            return

        session = self._session
        if session is None:
            return

        if event.type == EventType.FRAME:
            await self._handle_frame(session, event.raw)
        elif event.type == EventType.CLOSED:
            reason = f"closed (code={event.code}, clean={event.was_clean})"
            await self._handle_loss(session, reason)
        elif event.type == EventType.ERROR:
            await self._handle_loss(session, f"error: {event.error}")
        elif event.type == EventType.CONNECT:
            await self._handle_connect(session)
        elif event.type == EventType.BACKOFF_ELAPSED:
            session.backoff_timer = None
            await self._handle_connect(session)
        elif event.type == EventType.FALLBACK_TICK:
            session.fallback_timer = None
            if self._state == ConnectionState.EXHAUSTED:
                await self._emit_fallback(session)
        elif event.type == EventType.MANUAL_RECONNECT:
            await self._handle_manual_reconnect(session)
        elif event.type == EventType.DISCONNECT:
            await self._handle_disconnect(session)
        elif event.type == EventType.SYMBOL_CHANGE and event.symbol:
            await self._handle_symbol_change(session, event.symbol)

    # --- Transitions ---

    async def _handle_connect(self, session: Session) -> None:
        """Open a transport unless one is already open or being opened."""
        if session.transport is not None or self._state == ConnectionState.CONNECTED:
            logger.debug(f"[{self._name}] Connect requested while connected/connecting, ignored")
            return
        if self._state == ConnectionState.EXHAUSTED:
            return

        session.cancel_backoff()
        await self._set_state(ConnectionState.CONNECTING)

        session.transport_id += 1
        listener = _SessionListener(self, session.generation, session.transport_id)
        self._stats.connect_attempts += 1
        logger.info(
            f"[{self._name}] Connecting to {self._config.connection.url} "
            f"(attempt {session.attempts + 1}/{self._config.connection.max_reconnect_attempts})"
        )

        try:
            transport = self._transport_factory(self._config.connection, listener)
        except Exception as e:
            error = TransportError(
                f"Failed to create transport: {e}",
                url=self._config.connection.url,
                reconnect_attempt=session.attempts,
                component="ConnectionManager",
            )
            await self._handle_loss(session, str(error))
            return

        session.transport = transport
        try:
            await transport.open()
        except Exception as e:
            if session.transport is transport:
                await self._handle_loss(session, f"open failed: {e}")
            return

        if not session.live or session.transport is not transport:
            await self._close_quietly(transport)
            return

        await self._on_opened(session, transport)

    async def _on_opened(self, session: Session, transport: Transport) -> None:
        session.attempts = 0
        await self._set_state(ConnectionState.CONNECTED)

        subscription = Subscription(symbol=session.symbol, channel=self._config.channel)
        try:
            await transport.send(subscription.to_message())
        except Exception as e:
            await self._handle_loss(session, f"subscribe failed: {e}")
            return
        logger.info(f"[{self._name}] Subscribed to {subscription.channel}:{subscription.symbol}")

    async def _handle_loss(self, session: Session, reason: str) -> None:
        """A close, error, or failed attempt: back off or give up."""
        transport = session.transport
        session.transport = None
        if transport is not None:
            await self._close_quietly(transport)

        self._stats.connection_losses += 1
        session.attempts += 1
        max_attempts = self._config.connection.max_reconnect_attempts

        if session.attempts >= max_attempts:
            logger.error(
                f"[{self._name}] Connection {reason}; max attempts ({max_attempts}) reached, "
                f"switching to synthetic book"
            )
            await self._enter_exhausted(session)
            return

        delay_ms = self._config.connection.backoff_delay_ms(session.attempts)
        logger.warning(
            f"[{self._name}] Connection {reason} (attempt {session.attempts}), "
            f"reconnecting in {delay_ms / 1000:.1f}s"
        )
        await self._set_state(ConnectionState.CONNECTING)
        session.cancel_backoff()
        generation = session.generation
        session.backoff_timer = self._scheduler.call_later(
            delay_ms,
            lambda: self._post(SessionEvent(EventType.BACKOFF_ELAPSED, generation)),
            name=f"{self._name}_backoff",
        )

    async def _enter_exhausted(self, session: Session) -> None:
        session.cancel_backoff()
        await self._set_state(ConnectionState.EXHAUSTED)
        await self._emit_fallback(session)

    async def _emit_fallback(self, session: Session) -> None:
        """Install one synthetic snapshot and schedule the next refresh."""
        snapshot = self._fallback.generate(self._clock.now(), symbol=session.symbol)
        if not session.live:
            return
        self._book.replace(snapshot)
        self._stats.fallback_ticks += 1
        await self._notify_snapshot(snapshot)

        session.cancel_fallback()
        generation = session.generation
        session.fallback_timer = self._scheduler.call_later(
            self._config.fallback.refresh_interval_ms,
            lambda: self._post(SessionEvent(EventType.FALLBACK_TICK, generation)),
            name=f"{self._name}_fallback",
        )

    async def _handle_manual_reconnect(self, session: Session) -> None:
        logger.info(f"[{self._name}] Manual reconnect")
        session.attempts = 0
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return

        session.cancel_fallback()
        session.cancel_backoff()
        # Leave EXHAUSTED so _handle_connect accepts the attempt
        await self._set_state(ConnectionState.DISCONNECTED)
        await self._handle_connect(session)

    async def _handle_disconnect(self, session: Session) -> None:
        logger.info(f"[{self._name}] Disconnect requested")
        transport = session.transport
        session.transport = None
        try:
            if transport is not None:
                await self._close_quietly(transport)
        finally:
            session.cancel_backoff()
            session.cancel_fallback()
        await self._set_state(ConnectionState.DISCONNECTED)

    async def _handle_symbol_change(self, session: Session, symbol: str) -> None:
        if symbol == session.symbol:
            return
        logger.info(f"[{self._name}] Switching symbol {session.symbol} -> {symbol}")
        await self._teardown(session)
        await self._set_state(ConnectionState.DISCONNECTED)

        new_session = self._new_session(symbol)
        await self._notify_snapshot(self._book.snapshot)
        await self._handle_connect(new_session)

    # --- Session helpers ---

    def _new_session(self, symbol: str) -> Session:
        self._generation += 1
        self._session = Session(generation=self._generation, symbol=symbol)
        self._next_symbol = symbol
        self._book.reset(symbol)
        self._throttle.reset()
        return self._session

    async def _teardown(self, session: Session) -> None:
        """Mark not live, close transport, cancel backoff, cancel fallback."""
        session.live = False
        transport = session.transport
        session.transport = None
        try:
            if transport is not None:
                await self._close_quietly(transport)
        finally:
            session.cancel_backoff()
            session.cancel_fallback()

    async def _close_quietly(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.warning(f"[{self._name}] Error closing transport: {e}")

    # --- Ingestion pipeline ---

    async def _handle_frame(self, session: Session, raw: Optional[Frame]) -> None:
        self._stats.frames_received += 1
        if raw is None:
            self._stats.frames_rejected += 1
            return

        update = decode_frame(raw)
        if update is None:
            self._stats.frames_rejected += 1
            return
        self._stats.levels_dropped += update.dropped_levels

        if update.coin is not None and update.coin != session.symbol:
            logger.debug(f"[{self._name}] Ignoring book for {update.coin}")
            self._stats.frames_rejected += 1
            return

        now = self._clock.now()
        if not self._throttle.admit(now):
            self._stats.updates_throttled += 1
            return

        if not session.live:
            return
        snapshot = self._book.merge(update, now)
        self._stats.updates_applied += 1
        await self._notify_snapshot(snapshot)

    # --- Notifications ---

    async def _set_state(self, new_state: ConnectionState) -> None:
        """Update state and notify listener."""
        old_state = self._state
        self._state = new_state

        if old_state != new_state:
            logger.debug(f"[{self._name}] State: {old_state.value} -> {new_state.value}")
            key = new_state.value
            self._stats.by_state[key] = self._stats.by_state.get(key, 0) + 1
            await self._invoke(self._on_state_change, self.status, "State change")

    async def _notify_snapshot(self, snapshot: BookSnapshot) -> None:
        await self._invoke(self._on_snapshot, snapshot, "Snapshot")

    async def _invoke(self, callback: Optional[Callable[[Any], Any]], arg: Any, label: str) -> None:
        if callback is None:
            return
        try:
            result = callback(arg)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"[{self._name}] {label} callback error: {e}")
