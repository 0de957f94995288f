"""Declarative field bindings: which snapshot fields drive which sinks, and how."""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from telemetry_overlay.diff_rules import DerivedRule, DiffRule, ResourceRule, as_number, rule_from_config
from telemetry_overlay.errors import BindingConfigError, BindingError
from telemetry_overlay.snapshot import split_path

PRESETS_DIR = Path(__file__).resolve().parent / "presets"


class SinkKind(str, Enum):
    SET_TEXT = "set_text"
    SET_ATTRIBUTE = "set_attribute"
    SET_VISIBILITY = "set_visibility"
    ANIMATE_NUMERIC = "animate_numeric"

    @classmethod
    def parse(cls, raw: Any) -> "SinkKind":
        token = str(raw or "").strip().lower().replace("-", "_")
        for member in cls:
            if member.value == token:
                return member
        raise BindingConfigError(f"unknown sink kind '{raw}'")


@dataclass(frozen=True)
class VisibilityStyle:
    """Two fixed states a visibility sink switches between.

    `opacity` mode uses `hidden_opacity` / `shown_opacity`; `offset` mode moves
    the element by a fraction of its own size (e.g. -1.1 == translateX(-110%)).
    """

    mode: str = "opacity"
    hidden_opacity: float = 0.0
    shown_opacity: float = 1.0
    hidden_offset: Tuple[float, float] = (0.0, 0.0)
    shown_offset: Tuple[float, float] = (0.0, 0.0)

    @classmethod
    def from_config(cls, raw: Any) -> "VisibilityStyle":
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise BindingConfigError("visibility must be an object")
        mode = str(raw.get("mode", "opacity")).strip().lower()
        if mode not in {"opacity", "offset"}:
            raise BindingConfigError(f"visibility mode must be 'opacity' or 'offset', got '{mode}'")

        def _float(value: Any, fallback: float) -> float:
            if value is None:
                return fallback
            try:
                return float(value)
            except (TypeError, ValueError) as exc:
                raise BindingConfigError(f"visibility value must be numeric: {value!r}") from exc

        def _pair(value: Any, fallback: Tuple[float, float]) -> Tuple[float, float]:
            if value is None:
                return fallback
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                raise BindingConfigError(f"visibility offset must be [x, y], got {value!r}")
            return (_float(value[0], 0.0), _float(value[1], 0.0))

        if mode == "opacity":
            return cls(
                mode=mode,
                hidden_opacity=_float(raw.get("hidden"), 0.0),
                shown_opacity=_float(raw.get("shown"), 1.0),
            )
        return cls(
            mode=mode,
            hidden_offset=_pair(raw.get("hidden"), (0.0, 0.0)),
            shown_offset=_pair(raw.get("shown"), (0.0, 0.0)),
        )


@dataclass(frozen=True)
class AnimationSpec:
    """Fixed per binding; messages never change how a counter animates."""

    duration_ms: int = 500
    easing: str = "OutExpo"
    decimals: int = 2
    grouping: bool = False
    separator: str = " "
    decimal: str = "."

    @classmethod
    def from_config(cls, raw: Any) -> "AnimationSpec":
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise BindingConfigError("animation must be an object")
        try:
            duration = int(raw.get("duration_ms", cls.duration_ms))
            decimals = int(raw.get("decimals", cls.decimals))
        except (TypeError, ValueError) as exc:
            raise BindingConfigError(f"animation values must be integers: {exc}") from exc
        return cls(
            duration_ms=max(0, duration),
            easing=str(raw.get("easing", cls.easing)),
            decimals=max(0, decimals),
            grouping=bool(raw.get("grouping", cls.grouping)),
            separator=str(raw.get("separator", cls.separator)),
            decimal=str(raw.get("decimal", cls.decimal)),
        )

    def format_value(self, value: float) -> str:
        text = f"{value:,.{self.decimals}f}" if self.grouping else f"{value:.{self.decimals}f}"
        return text.replace(",", "\0").replace(".", self.decimal).replace("\0", self.separator)


def format_duration(milliseconds: Any) -> str:
    """`75000` -> `1m 15s`; anything at or under a minute -> `42s`."""
    numeric = as_number(milliseconds)
    if numeric is None:
        raise ValueError(f"duration needs a number, got {milliseconds!r}")
    seconds = int(round(numeric / 1000))
    minutes = math.floor(seconds % 3600 / 60)
    if seconds > 60:
        return f"{minutes}m {seconds - minutes * 60}s"
    return f"{seconds}s"


@dataclass(frozen=True)
class FieldBinding:
    name: str
    sink_id: str
    sink: SinkKind
    paths: Tuple[str, ...] = ()
    rule: DiffRule = field(default_factory=lambda: rule_from_config(None))
    attribute: Optional[str] = None
    format: Optional[str] = None
    visibility: VisibilityStyle = field(default_factory=VisibilityStyle)
    animation: AnimationSpec = field(default_factory=AnimationSpec)

    def render_text(self, value: Any) -> str:
        """Format a projected value for set-text / set-attribute sinks."""
        try:
            if self.format is None:
                if isinstance(value, bool):
                    return "true" if value else "false"
                return str(value)
            if self.format == "duration":
                return format_duration(value)
            if self.format == "round":
                numeric = as_number(value)
                if numeric is None:
                    raise ValueError(f"round needs a number, got {value!r}")
                return str(int(round(numeric)))
            return self.format.format(value=value)
        except (ValueError, TypeError, KeyError, IndexError) as exc:
            raise BindingError(self.name, f"cannot format {value!r} with {self.format!r}: {exc}") from exc


def binding_from_config(raw: Mapping[str, Any], index: int = 0) -> FieldBinding:
    if not isinstance(raw, Mapping):
        raise BindingConfigError(f"binding #{index} must be an object")
    sink_id = str(raw.get("sink_id") or raw.get("element") or "").strip()
    if not sink_id:
        raise BindingConfigError(f"binding #{index} is missing 'sink_id'")
    name = str(raw.get("name") or sink_id).strip()
    sink = SinkKind.parse(raw.get("sink"))

    raw_paths = raw.get("paths", raw.get("path"))
    if raw_paths is None:
        paths: Tuple[str, ...] = ()
    elif isinstance(raw_paths, str):
        paths = (raw_paths,)
    elif isinstance(raw_paths, (list, tuple)) and all(isinstance(path, str) for path in raw_paths):
        paths = tuple(raw_paths)
    else:
        raise BindingConfigError(f"binding '{name}': paths must be a string or a list of strings")
    for path in paths:
        try:
            split_path(path)
        except ValueError as exc:
            raise BindingConfigError(f"binding '{name}': {exc}") from exc

    rule = rule_from_config(raw.get("rule"))
    if not isinstance(rule, DerivedRule) and not paths:
        raise BindingConfigError(f"binding '{name}': rule '{rule.kind}' needs at least one path")

    attribute = raw.get("attribute")
    if isinstance(rule, ResourceRule):
        if sink not in (SinkKind.SET_ATTRIBUTE, SinkKind.SET_TEXT):
            raise BindingConfigError(f"binding '{name}': resource rules drive set_attribute sinks")
        if sink is SinkKind.SET_ATTRIBUTE and not attribute:
            attribute = "src"
    if sink is SinkKind.SET_ATTRIBUTE and not attribute:
        raise BindingConfigError(f"binding '{name}': set_attribute needs an 'attribute'")

    fmt = raw.get("format")
    if fmt is not None and not isinstance(fmt, str):
        raise BindingConfigError(f"binding '{name}': format must be a string")

    return FieldBinding(
        name=name,
        sink_id=sink_id,
        sink=sink,
        paths=paths,
        rule=rule,
        attribute=str(attribute) if attribute else None,
        format=fmt,
        visibility=VisibilityStyle.from_config(raw.get("visibility")),
        animation=AnimationSpec.from_config(raw.get("animation")),
    )


class BindingSet(Sequence[FieldBinding]):
    """Ordered, immutable collection of bindings with unique names."""

    def __init__(self, bindings: Iterable[FieldBinding], *, label: str = "custom", url: Optional[str] = None) -> None:
        items: List[FieldBinding] = list(bindings)
        seen: Dict[str, FieldBinding] = {}
        for binding in items:
            if binding.name in seen:
                raise BindingConfigError(f"duplicate binding name '{binding.name}'")
            seen[binding.name] = binding
        self._items: Tuple[FieldBinding, ...] = tuple(items)
        self._by_name = seen
        self.label = label
        self.url = url

    def __getitem__(self, index):  # type: ignore[override]
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[FieldBinding]:
        return iter(self._items)

    def get(self, name: str) -> Optional[FieldBinding]:
        return self._by_name.get(name)

    def sink_ids(self) -> Tuple[str, ...]:
        ordered: Dict[str, None] = {}
        for binding in self._items:
            ordered.setdefault(binding.sink_id, None)
        return tuple(ordered)


def bindings_from_config(data: Any, *, label: str = "custom") -> BindingSet:
    if isinstance(data, list):
        entries: Any = data
        url = None
    elif isinstance(data, Mapping):
        entries = data.get("bindings")
        url = data.get("url")
        label = str(data.get("name") or label)
    else:
        raise BindingConfigError("binding config must be a list or an object with 'bindings'")
    if not isinstance(entries, list) or not entries:
        raise BindingConfigError("binding config has no bindings")
    if url is not None and not isinstance(url, str):
        raise BindingConfigError("binding config 'url' must be a string")
    return BindingSet(
        (binding_from_config(entry, index) for index, entry in enumerate(entries)),
        label=label,
        url=url,
    )


def available_presets() -> Tuple[str, ...]:
    return tuple(sorted(path.stem for path in PRESETS_DIR.glob("*.json")))


def load_bindings(source: str | Path) -> BindingSet:
    """Load bindings from a preset name (e.g. "InGame1") or a JSON file path."""
    path = Path(source).expanduser()
    if not path.suffix and not path.exists():
        path = PRESETS_DIR / f"{source}.json"
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        presets = ", ".join(available_presets()) or "none"
        raise BindingConfigError(f"cannot read bindings from {path}: {exc} (presets: {presets})") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise BindingConfigError(f"invalid JSON in {path}: {exc}") from exc
    return bindings_from_config(data, label=path.stem)
