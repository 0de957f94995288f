"""Immutable telemetry snapshots."""
from __future__ import annotations

from collections.abc import Mapping as MappingABC
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Tuple

from telemetry_overlay.errors import BindingError


class _Absent:
    """Sentinel for a path that is missing from a snapshot."""

    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_Absent, ())


ABSENT: Any = _Absent()


def _freeze(value: Any) -> Any:
    if isinstance(value, MappingABC):
        return MappingProxyType({str(key): _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def split_path(path: str) -> Tuple[str, ...]:
    parts = tuple(path.strip().split("."))
    if not all(parts):
        raise ValueError(f"Empty segment in field path: {path!r}")
    return parts


class Snapshot(Mapping[str, Any]):
    """One decoded telemetry state. Never mutated after creation."""

    __slots__ = ("_data", "_sequence")

    def __init__(self, data: Mapping[str, Any], *, sequence: int = 0) -> None:
        self._data = _freeze(data)
        self._sequence = int(sequence)

    @property
    def sequence(self) -> int:
        return self._sequence

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Snapshot(seq={self._sequence}, keys={sorted(self._data)})"

    def lookup(self, path: str, *, owner: str = "") -> Any:
        """Return the value at a dotted path, or ABSENT when a segment is missing.

        Walking into a value that is not an object raises BindingError: the path
        cannot exist in this schema, which is different from an optional field
        that happens to be missing.
        """
        node: Any = self._data
        walked = []
        for part in split_path(path):
            if not isinstance(node, MappingABC):
                raise BindingError(
                    owner or path,
                    f"path '{path}' expects an object at '{'.'.join(walked) or '<root>'}', found {type(node).__name__}",
                )
            if part not in node:
                return ABSENT
            node = node[part]
            walked.append(part)
        return node

    def resolve(self, paths: Tuple[str, ...], *, owner: str = "") -> Any:
        """Return the first present value among alternate paths."""
        for path in paths:
            value = self.lookup(path, owner=owner)
            if value is not ABSENT:
                return value
        return ABSENT
