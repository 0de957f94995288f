"""Self-healing WebSocket transport."""
from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Deque, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from telemetry_overlay.errors import TransportError
from telemetry_overlay.logging_utils import get_client_logger

_LOGGER = get_client_logger("Transport")

DEFAULT_URL = "ws://127.0.0.1:9001/ws"
DEFAULT_FAREWELL = "Client Closed!"
BACKLOG_LIMIT = 32

Frame = Union[str, bytes]
ConnectFn = Callable[[str], Awaitable[Any]]
StateListener = Callable[["ConnectionState"], None]
ErrorListener = Callable[[TransportError], None]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class BackoffPolicy:
    """Capped exponential delay between connection attempts; never gives up."""

    initial: float = 1.0
    factor: float = 1.5
    maximum: float = 10.0

    def next(self, current: float) -> float:
        return min(current * self.factor, self.maximum)


async def _default_connect(url: str) -> Any:
    return await websockets.connect(url)


class ReconnectingTransport:
    """One logical connection to one endpoint.

    `messages()` yields inbound frames in network order and keeps reconnecting
    until `close()` is called. Content is never inspected.
    """

    def __init__(
        self,
        url: str = DEFAULT_URL,
        *,
        backoff: Optional[BackoffPolicy] = None,
        farewell: Optional[str] = DEFAULT_FAREWELL,
        connect_fn: Optional[ConnectFn] = None,
        close_timeout: float = 1.0,
    ) -> None:
        self._url = url
        self._backoff = backoff or BackoffPolicy()
        self._farewell = farewell
        self._connect_fn = connect_fn or _default_connect
        self._close_timeout = close_timeout
        self._state = ConnectionState.CLOSED
        self._state_listeners: List[StateListener] = []
        self._error_listeners: List[ErrorListener] = []
        self._backlog: Deque[Frame] = deque()
        self._outgoing: Optional["asyncio.Queue[Optional[Frame]]"] = None
        self._ws: Any = None
        self._ever_opened = False
        self._closing = False
        self._stop_event: Optional[asyncio.Event] = None
        self._delay = self._backoff.initial

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    def add_state_listener(self, listener: StateListener) -> None:
        self._state_listeners.append(listener)

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def send(self, data: Frame) -> bool:
        """Queue a frame for the server.

        Frames sent before the first successful open are held and flushed on
        open; afterwards anything sent while not OPEN is dropped.
        """
        if self._state is ConnectionState.OPEN and self._outgoing is not None:
            self._outgoing.put_nowait(data)
            return True
        if not self._ever_opened and not self._closing and len(self._backlog) < BACKLOG_LIMIT:
            self._backlog.append(data)
            return True
        _LOGGER.debug("Dropped outbound frame while %s", self._state.value)
        return False

    async def messages(self) -> AsyncIterator[Frame]:
        self._stop_event = asyncio.Event()
        if self._closing:
            return
        self._set_state(ConnectionState.CONNECTING)
        while not self._closing:
            try:
                ws = await self._connect_fn(self._url)
            except asyncio.CancelledError:
                raise
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                self._report(f"Connect failed to {self._url}: {exc}", exc)
                await self._wait_backoff()
                continue

            if self._closing:
                # close() ran while the handshake was pending.
                await self._close_socket(ws)
                break

            self._ws = ws
            self._ever_opened = True
            self._delay = self._backoff.initial
            outgoing: "asyncio.Queue[Optional[Frame]]" = asyncio.Queue()
            self._outgoing = outgoing
            while self._backlog:
                outgoing.put_nowait(self._backlog.popleft())
            self._set_state(ConnectionState.OPEN)
            sender_task = asyncio.create_task(self._flush_outgoing(ws, outgoing))
            try:
                async for frame in ws:
                    yield frame
                    if self._closing:
                        break
                if not self._closing:
                    self._report(f"Server closed the connection to {self._url}", None)
            except ConnectionClosed as exc:
                if not self._closing:
                    self._report(f"Disconnected from {self._url}: {exc}", exc)
            except (OSError, asyncio.IncompleteReadError) as exc:
                self._report(f"Disconnected from {self._url}: {exc}", exc)
            finally:
                self._outgoing = None
                outgoing.put_nowait(None)
                await self._finish_sender(sender_task)
                if not self._closing:
                    self._ws = None
                    await self._close_socket(ws)
            if self._closing:
                break
            self._set_state(ConnectionState.RECONNECTING)
            await self._wait_backoff()
        if self._state is not ConnectionState.CLOSED:
            self._set_state(ConnectionState.CLOSED)

    async def close(self) -> None:
        """Caller-initiated close: best-effort farewell, then CLOSED. Never blocks shutdown."""
        if self._closing:
            return
        self._closing = True
        self._backlog.clear()
        if self._stop_event is not None:
            self._stop_event.set()
        ws = self._ws
        self._ws = None
        if ws is not None:
            if self._farewell is not None:
                try:
                    await asyncio.wait_for(ws.send(self._farewell), timeout=self._close_timeout)
                except (ConnectionClosed, OSError, asyncio.TimeoutError) as exc:
                    _LOGGER.debug("Farewell frame not delivered: %s", exc)
            await self._close_socket(ws)
        self._set_state(ConnectionState.CLOSED)

    # Internal helpers ------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        previous = self._state
        self._state = state
        _LOGGER.debug("Connection state %s -> %s (%s)", previous.value, state.value, self._url)
        for listener in list(self._state_listeners):
            listener(state)

    def _report(self, message: str, cause: Optional[BaseException]) -> None:
        _LOGGER.warning(message)
        error = TransportError(message, url=self._url, cause=cause)
        for listener in list(self._error_listeners):
            listener(error)

    async def _wait_backoff(self) -> None:
        delay = self._delay
        self._delay = self._backoff.next(delay)
        await self._pause(delay)

    async def _pause(self, delay: float) -> None:
        stop_event = self._stop_event
        if stop_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def _flush_outgoing(self, ws: Any, queue_ref: "asyncio.Queue[Optional[Frame]]") -> None:
        while True:
            payload = await queue_ref.get()
            if payload is None:
                break
            try:
                await ws.send(payload)
            except (ConnectionClosed, OSError) as exc:
                _LOGGER.warning("Failed to write outgoing frame: %s", exc)
                break

    async def _finish_sender(self, sender_task: "asyncio.Task[None]") -> None:
        try:
            await asyncio.wait_for(sender_task, timeout=self._close_timeout)
        except asyncio.TimeoutError:
            _LOGGER.debug("Sender task did not drain before disconnect; cancelled")

    async def _close_socket(self, ws: Any) -> None:
        try:
            await asyncio.wait_for(ws.close(), timeout=self._close_timeout)
        except (ConnectionClosed, OSError, asyncio.TimeoutError) as exc:
            _LOGGER.debug("Error closing websocket: %s", exc)
