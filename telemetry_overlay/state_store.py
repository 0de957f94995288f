from __future__ import annotations

from typing import Any, NamedTuple, Optional

from telemetry_overlay.diff_engine import EMPTY_PROJECTION, Delta, DiffEngine, Projection
from telemetry_overlay.snapshot import Snapshot


class _State(NamedTuple):
    snapshot: Optional[Snapshot]
    projection: Projection


class StateStore:
    """Holds the last accepted snapshot and its projection.

    Both are swapped together in a single assignment, so readers never see a
    snapshot paired with another snapshot's projection.
    """

    def __init__(self, engine: DiffEngine) -> None:
        self._engine = engine
        self._state = _State(None, EMPTY_PROJECTION)

    def compare(self, snapshot: Snapshot) -> Delta:
        previous = self._state
        delta, projection = self._engine.diff(previous.projection, snapshot)
        self._state = _State(snapshot, projection)
        return delta

    def current(self) -> Optional[Snapshot]:
        return self._state.snapshot

    def projected(self) -> Projection:
        return self._state.projection

    def value(self, name: str, default: Any = None) -> Any:
        return self._state.projection.get(name, default)

    def reset(self) -> None:
        self._state = _State(None, EMPTY_PROJECTION)
