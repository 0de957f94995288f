"""In-memory stand-ins for a websocket server used by the transport tests."""
from __future__ import annotations

import asyncio
from typing import Any, List, Optional

from websockets.exceptions import ConnectionClosedError


class FakeSocket:
    """Yields canned frames, then ends, raises, or holds until closed."""

    def __init__(self, frames, *, error: Optional[BaseException] = None, hold: bool = False) -> None:
        self.frames = list(frames)
        self.error = error
        self.hold = hold
        self.sent: List[Any] = []
        self.closed = False
        self._closed_event: Optional[asyncio.Event] = None

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        self._closed_event = asyncio.Event()
        for frame in self.frames:
            await asyncio.sleep(0)
            yield frame
        if self.hold:
            await self._closed_event.wait()
            return
        if self.error is not None:
            raise self.error

    async def send(self, data) -> None:
        if self.closed:
            raise ConnectionClosedError(None, None)
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        if self._closed_event is not None:
            self._closed_event.set()


class FakeServer:
    """Hands out the planned sockets (or raises the planned errors) in order."""

    def __init__(self, plan) -> None:
        self.plan = list(plan)
        self.attempts = 0

    async def connect(self, url: str) -> FakeSocket:
        self.attempts += 1
        if not self.plan:
            raise OSError("connection refused")
        item = self.plan.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item
