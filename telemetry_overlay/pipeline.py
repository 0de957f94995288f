"""Transport -> Decoder -> StateStore -> RenderDispatcher wiring."""
from __future__ import annotations

from typing import Optional

from telemetry_overlay.bindings import BindingSet
from telemetry_overlay.debug_config import DebugConfig
from telemetry_overlay.decoder import Decoder, RawMessage
from telemetry_overlay.diff_engine import Delta, DiffEngine
from telemetry_overlay.errors import DecodeError
from telemetry_overlay.logging_utils import get_client_logger
from telemetry_overlay.render_dispatcher import RenderDispatcher
from telemetry_overlay.sinks import Animator, RenderSink
from telemetry_overlay.state_store import StateStore
from telemetry_overlay.transport import ConnectionState, ReconnectingTransport

_LOGGER = get_client_logger("Pipeline")


class TelemetryPipeline:
    """Processes one frame at a time, start to finish, in arrival order.

    The last snapshot survives reconnects by default so a brief drop does not
    blank the overlay; `reset_on_reconnect=True` clears it when the transport
    starts reconnecting, making the first frame afterwards a full refresh.
    """

    def __init__(
        self,
        bindings: BindingSet,
        sink: RenderSink,
        animator: Animator,
        *,
        decoder: Optional[Decoder] = None,
        reset_on_reconnect: bool = False,
        debug_config: Optional[DebugConfig] = None,
    ) -> None:
        self._debug = debug_config or DebugConfig()
        self.decoder = decoder or Decoder()
        self.engine = DiffEngine(bindings)
        self.store = StateStore(self.engine)
        self.dispatcher = RenderDispatcher(sink, animator, debug_config=self._debug)
        self._reset_on_reconnect = reset_on_reconnect
        self._transport: Optional[ReconnectingTransport] = None
        self._processed = 0
        self._dropped = 0
        self._closed = False

    @property
    def processed(self) -> int:
        return self._processed

    @property
    def dropped(self) -> int:
        return self._dropped

    def handle_raw(self, raw: RawMessage) -> Optional[Delta]:
        """Decode, diff and dispatch one frame. Malformed frames are logged and dropped."""
        if self._closed:
            return None
        try:
            snapshot = self.decoder.decode(raw)
        except DecodeError as exc:
            self._dropped += 1
            if self._debug.log_dropped_frames:
                _LOGGER.warning("Dropped malformed frame: %s", exc)
            else:
                _LOGGER.debug("Dropped malformed frame: %s", exc)
            return None
        delta = self.store.compare(snapshot)
        self.dispatcher.dispatch(delta)
        self._processed += 1
        return delta

    def on_connection_state(self, state: ConnectionState) -> None:
        if state is ConnectionState.OPEN:
            _LOGGER.info("Telemetry stream connected")
        elif state is ConnectionState.RECONNECTING:
            if self._reset_on_reconnect:
                _LOGGER.info("Telemetry stream lost; clearing last snapshot before reconnect")
                self.store.reset()
            else:
                _LOGGER.info("Telemetry stream lost; keeping last snapshot while reconnecting")
        elif state is ConnectionState.CLOSED:
            _LOGGER.info("Telemetry stream closed")

    def attach(self, transport: ReconnectingTransport) -> None:
        self._transport = transport
        transport.add_state_listener(self.on_connection_state)

    async def run(self, transport: ReconnectingTransport) -> None:
        """Consume the transport until it is closed."""
        self.attach(transport)
        async for raw in transport.messages():
            self.handle_raw(raw)
            if self._closed:
                break

    def close_render(self) -> None:
        """Stop processing frames and cancel in-flight animations."""
        if self._closed:
            return
        self._closed = True
        self.dispatcher.close()

    async def close(self) -> None:
        """Cancel animations and release the connection without waiting for the server."""
        self.close_render()
        transport = self._transport
        if transport is not None:
            await transport.close()
        _LOGGER.info(
            "Pipeline closed (processed=%d dropped=%d)",
            self._processed,
            self._dropped,
        )
