"""Turn raw text frames into snapshots."""
from __future__ import annotations

import itertools
import json
from typing import Any, Iterable, Union

from telemetry_overlay.errors import DecodeError
from telemetry_overlay.snapshot import Snapshot

DEFAULT_GROUPS = ("beatmap", "gameplay", "menu")

RawMessage = Union[str, bytes, bytearray]


class Decoder:
    """Structural parse of one frame. Never raises anything but DecodeError."""

    def __init__(self, expected_groups: Iterable[str] = DEFAULT_GROUPS) -> None:
        self._expected_groups = tuple(expected_groups)
        self._sequence = itertools.count(1)

    @property
    def expected_groups(self) -> tuple[str, ...]:
        return self._expected_groups

    def decode(self, raw: RawMessage) -> Snapshot:
        if isinstance(raw, (bytes, bytearray)):
            try:
                text = bytes(raw).decode("utf-8")
            except UnicodeDecodeError as exc:
                raise DecodeError(f"frame is not valid UTF-8: {exc}", raw=raw) from exc
        elif isinstance(raw, str):
            text = raw
        else:
            raise DecodeError(f"unsupported frame type {type(raw).__name__}", raw=raw)

        try:
            payload: Any = json.loads(text)
        except (json.JSONDecodeError, RecursionError) as exc:
            raise DecodeError(f"invalid JSON payload: {exc}", raw=raw) from exc

        if not isinstance(payload, dict):
            raise DecodeError(f"expected a JSON object, got {type(payload).__name__}", raw=raw)
        for group in self._expected_groups:
            if group in payload and not isinstance(payload[group], dict):
                raise DecodeError(
                    f"group '{group}' must be an object, got {type(payload[group]).__name__}",
                    raw=raw,
                )
        try:
            return Snapshot(payload, sequence=next(self._sequence))
        except RecursionError as exc:
            raise DecodeError("payload nests too deeply to snapshot", raw=raw) from exc
