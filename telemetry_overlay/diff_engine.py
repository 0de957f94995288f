"""Field-level change detection between consecutive snapshots."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Tuple

from telemetry_overlay.bindings import BindingSet, FieldBinding
from telemetry_overlay.errors import BindingError
from telemetry_overlay.logging_utils import LogOnce, get_client_logger
from telemetry_overlay.snapshot import ABSENT, Snapshot

_LOGGER = get_client_logger("DiffEngine")

Projection = Mapping[str, Any]
EMPTY_PROJECTION: Projection = MappingProxyType({})


@dataclass(frozen=True)
class FieldChange:
    binding: FieldBinding
    old: Any
    new: Any

    @property
    def name(self) -> str:
        return self.binding.name


class Delta:
    """Changes for one snapshot transition, in binding order."""

    __slots__ = ("_changes", "sequence")

    def __init__(self, changes: Tuple[FieldChange, ...] = (), *, sequence: int = 0) -> None:
        self._changes = tuple(changes)
        self.sequence = sequence

    def __iter__(self) -> Iterator[FieldChange]:
        return iter(self._changes)

    def __len__(self) -> int:
        return len(self._changes)

    def __bool__(self) -> bool:
        return bool(self._changes)

    def __repr__(self) -> str:
        body = ", ".join(f"{change.name}: {change.old!r}->{change.new!r}" for change in self._changes)
        return f"Delta(seq={self.sequence}, [{body}])"

    def names(self) -> Tuple[str, ...]:
        return tuple(change.name for change in self._changes)

    def get(self, name: str) -> FieldChange | None:
        for change in self._changes:
            if change.name == name:
                return change
        return None


class DiffEngine:
    """Projects snapshots through each binding's rule and reports what moved."""

    def __init__(self, bindings: BindingSet) -> None:
        self._bindings = bindings
        self._binding_errors = LogOnce(_LOGGER)

    @property
    def bindings(self) -> BindingSet:
        return self._bindings

    def diff(self, previous: Projection, snapshot: Snapshot) -> Tuple[Delta, Projection]:
        """Return the delta and the projection that replaces `previous`.

        Bindings with nothing new carry their previous value forward, so the
        projection always reflects the last known value of every field.
        """
        projected: Dict[str, Any] = dict(previous)
        changes = []
        for binding in self._bindings:
            old = previous.get(binding.name, ABSENT)
            try:
                new = binding.rule.project(snapshot, binding.paths, old, binding.name)
            except BindingError as exc:
                self._binding_errors.warning(
                    binding.name, "Binding '%s' disabled until the schema matches again: %s", binding.name, exc
                )
                continue
            if self._binding_errors.reported(binding.name):
                _LOGGER.info("Binding '%s' resolved again", binding.name)
                self._binding_errors.clear(binding.name)
            if new is ABSENT:
                continue
            if binding.rule.changed(old, new):
                changes.append(FieldChange(binding, old, new))
                projected[binding.name] = new
        return Delta(tuple(changes), sequence=snapshot.sequence), MappingProxyType(projected)

    def render_full(self, snapshot: Snapshot) -> Projection:
        """Project a single snapshot from a blank state."""
        _, projection = self.diff(EMPTY_PROJECTION, snapshot)
        return projection
