"""
WebSocket transport for the book feed.

The transport owns one socket and nothing else: it does not parse messages,
retry, or track state. Every frame and every close/error is pushed
synchronously to a TransportListener; the ConnectionManager turns those calls
into queued session events.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Protocol, Union

import aiohttp
import orjson

from bookfeed.feed.config import ConnectionConfig
from bookfeed.feed.errors import TransportError

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]


class TransportListener(Protocol):
    """Receives transport callbacks. Implementations must not block."""

    def on_frame(self, raw: Frame) -> None: ...

    def on_close(self, was_clean: bool, code: Optional[int]) -> None: ...

    def on_error(self, error: Exception) -> None: ...


class Transport(ABC):
    """One connection attempt's socket."""

    @abstractmethod
    async def open(self) -> None:
        """Open the socket. Raises TransportError on failure."""
        raise NotImplementedError

    @abstractmethod
    async def send(self, payload: dict[str, Any]) -> None:
        """Send a JSON payload."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        raise NotImplementedError


TransportFactory = Callable[[ConnectionConfig, TransportListener], Transport]


class AiohttpTransport(Transport):
    """
    aiohttp-based WebSocket transport.

    Usage:
        transport = AiohttpTransport(config, listener)
        await transport.open()
        await transport.send({"method": "subscribe", ...})
        # ... frames arrive through listener.on_frame ...
        await transport.close()
    """

    def __init__(
        self,
        config: ConnectionConfig,
        listener: TransportListener,
        name: str = "transport",
    ) -> None:
        self._config = config
        self._listener = listener
        self._name = name

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._closing = False

    @property
    def url(self) -> str:
        return self._config.url

    async def open(self) -> None:
        timeout = aiohttp.ClientTimeout(total=self._config.connect_timeout_s)
        self._session = aiohttp.ClientSession(timeout=timeout)

        logger.info(f"[{self._name}] Connecting to {self._config.url}")
        try:
            self._ws = await self._session.ws_connect(
                self._config.url,
                heartbeat=self._config.heartbeat_s,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            await self._release()
            raise TransportError(
                f"Failed to open WebSocket: {e}",
                url=self._config.url,
                component="AiohttpTransport",
            ) from e

        self._receive_task = asyncio.create_task(
            self._receive_loop(), name=f"{self._name}_receive"
        )
        logger.info(f"[{self._name}] Connected successfully")

    async def send(self, payload: dict[str, Any]) -> None:
        if self._ws is None or self._ws.closed:
            raise TransportError(
                "Cannot send on a closed WebSocket",
                url=self._config.url,
                component="AiohttpTransport",
            )
        await self._ws.send_str(orjson.dumps(payload).decode())

    async def _receive_loop(self) -> None:
        """Forward frames to the listener until the socket ends."""
        ws = self._ws
        if ws is None:
            return

        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._listener.on_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self._listener.on_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    error = ws.exception() or TransportError(
                        "WebSocket error", url=self._config.url
                    )
                    logger.error(f"[{self._name}] WebSocket error: {error}")
                    self._listener.on_error(error)
                    return

        except asyncio.CancelledError:
            logger.debug(f"[{self._name}] Receive loop cancelled")
            raise
        except Exception as e:
            logger.error(f"[{self._name}] Receive loop error: {e}")
            self._listener.on_error(e)
            return

        if not self._closing:
            code = ws.close_code
            logger.info(f"[{self._name}] Server closed connection (code={code})")
            self._listener.on_close(code == aiohttp.WSCloseCode.OK, code)

    async def close(self) -> None:
        self._closing = True
        task = self._receive_task
        self._receive_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release()

    async def _release(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


def aiohttp_transport_factory(
    config: ConnectionConfig, listener: TransportListener
) -> Transport:
    """Default TransportFactory."""
    return AiohttpTransport(config, listener)
