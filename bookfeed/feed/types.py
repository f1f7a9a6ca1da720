"""
Shared types, enums, and data structures for the book feed.

This module contains types used across the connection manager, the control
surface, and their tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from bookfeed.feed.transport import Frame

if TYPE_CHECKING:
    from bookfeed.core.scheduler import TimerHandle
    from bookfeed.feed.transport import Transport


class ConnectionState(str, Enum):
    """State machine for the feed connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    EXHAUSTED = "exhausted"  # retry budget spent, serving synthetic data


class EventType(str, Enum):
    """Events consumed by the connection state machine."""

    CONNECT = "connect"
    FRAME = "frame"
    CLOSED = "closed"
    ERROR = "error"
    BACKOFF_ELAPSED = "backoff_elapsed"
    FALLBACK_TICK = "fallback_tick"
    MANUAL_RECONNECT = "manual_reconnect"
    DISCONNECT = "disconnect"
    SYMBOL_CHANGE = "symbol_change"


@dataclass(frozen=True, slots=True)
class SessionEvent:
    """
    One item on the session event queue.

    generation identifies the session the event belongs to; transport_id
    identifies the socket for FRAME/CLOSED/ERROR. Events that no longer match
    the live session are discarded.
    """

    type: EventType
    generation: int
    transport_id: int = 0
    raw: Optional[Frame] = None
    was_clean: bool = False
    code: Optional[int] = None
    error: Optional[Exception] = None
    symbol: Optional[str] = None


@dataclass
class Session:
    """Mutable context for one logical session (one symbol)."""

    generation: int
    symbol: str
    live: bool = True
    attempts: int = 0
    transport: Optional[Transport] = None
    transport_id: int = 0
    backoff_timer: Optional[TimerHandle] = None
    fallback_timer: Optional[TimerHandle] = None

    def cancel_backoff(self) -> None:
        if self.backoff_timer is not None:
            self.backoff_timer.cancel()
            self.backoff_timer = None

    def cancel_fallback(self) -> None:
        if self.fallback_timer is not None:
            self.fallback_timer.cancel()
            self.fallback_timer = None


@dataclass(frozen=True, slots=True)
class FeedStatus:
    """Coarse connection status for consumers."""

    state: ConnectionState
    attempts: int = 0
    synthetic: bool = False

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def connecting(self) -> bool:
        return self.state == ConnectionState.CONNECTING


@dataclass
class FeedStats:
    """Counters for the ingestion pipeline and connection lifecycle."""

    frames_received: int = 0
    frames_rejected: int = 0
    levels_dropped: int = 0
    updates_throttled: int = 0
    updates_applied: int = 0
    connect_attempts: int = 0
    connection_losses: int = 0
    fallback_ticks: int = 0
    stale_events: int = 0
    by_state: dict[str, int] = field(default_factory=dict)
