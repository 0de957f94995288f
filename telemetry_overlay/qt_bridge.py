"""Runs the asyncio transport on a worker thread and forwards frames to the Qt thread."""
from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from typing import Optional

from PyQt6.QtCore import QObject, pyqtSignal

from telemetry_overlay.errors import TransportError
from telemetry_overlay.logging_utils import get_client_logger
from telemetry_overlay.pipeline import TelemetryPipeline
from telemetry_overlay.transport import ConnectionState, Frame, ReconnectingTransport

_LOGGER = get_client_logger("Bridge")


class TransportBridge(QObject):
    """Async WebSocket client that forwards frames to the Qt thread.

    Qt queues cross-thread signals in emission order, so frames reach the
    pipeline one at a time and in network order.
    """

    frame_received = pyqtSignal(object)
    state_changed = pyqtSignal(str)
    error_reported = pyqtSignal(str)

    def __init__(self, transport: ReconnectingTransport, *, stop_timeout: float = 5.0) -> None:
        super().__init__()
        self._transport = transport
        self._stop_timeout = stop_timeout
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ready = threading.Event()
        transport.add_state_listener(self._on_state)
        transport.add_error_listener(self._on_error)

    @property
    def transport(self) -> ReconnectingTransport:
        return self._transport

    def connect_pipeline(self, pipeline: TelemetryPipeline) -> None:
        self.frame_received.connect(pipeline.handle_raw)
        self.state_changed.connect(lambda value: pipeline.on_connection_state(ConnectionState(value)))

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._ready.clear()
        self._thread = threading.Thread(target=self._thread_main, name="TelemetryOverlay-Transport", daemon=True)
        self._thread.start()
        self._ready.wait(timeout=self._stop_timeout)

    def stop(self) -> None:
        loop = self._loop
        if loop is not None and loop.is_running():
            future = asyncio.run_coroutine_threadsafe(self._transport.close(), loop)
            try:
                future.result(timeout=self._stop_timeout)
            except concurrent.futures.TimeoutError:
                _LOGGER.warning("Transport did not close within %.1fs", self._stop_timeout)
        if self._thread:
            self._thread.join(timeout=self._stop_timeout)
        self._loop = None
        self._thread = None

    def send(self, data: Frame) -> bool:
        loop = self._loop
        if loop is None or not loop.is_running():
            return False
        try:
            loop.call_soon_threadsafe(self._transport.send, data)
        except RuntimeError as exc:
            _LOGGER.warning("Failed to enqueue outbound frame on transport loop: %s", exc)
            return False
        return True

    # Background thread ----------------------------------------------------

    def _thread_main(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._run())
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    async def _run(self) -> None:
        self._ready.set()
        async for frame in self._transport.messages():
            self.frame_received.emit(frame)

    def _on_state(self, state: ConnectionState) -> None:
        self.state_changed.emit(state.value)

    def _on_error(self, error: TransportError) -> None:
        self.error_reported.emit(str(error))
