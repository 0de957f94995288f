"""Per-binding projection and equality rules.

A rule turns a snapshot into the value a binding would display (its
projection) and decides whether two projections differ. ``ABSENT`` as a
projection means "nothing new, keep the last known value".
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from telemetry_overlay.errors import BindingConfigError
from telemetry_overlay.game_state import coerce_state_token
from telemetry_overlay.snapshot import ABSENT, Snapshot, split_path


def as_number(value: Any) -> Optional[float]:
    """Return a finite float for numbers and numeric strings, None otherwise."""
    if isinstance(value, bool) or value is None or value is ABSENT:
        return None
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        token = value.strip()
        if not token:
            return None
        try:
            numeric = float(token)
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(numeric):
        return None
    return numeric


def zero_gate(value: Any) -> Any:
    """Positive numbers pass through unchanged; anything else becomes 0."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value if math.isfinite(value) and value > 0 else 0
    numeric = as_number(value)
    if numeric is not None and numeric > 0:
        return int(numeric) if numeric.is_integer() else numeric
    return 0


# Predicates ---------------------------------------------------------------


def _matches(current: Any, expected: Any) -> bool:
    if current == expected:
        return True
    # Servers that send the state by name still match a numeric state code.
    return isinstance(current, str) and not isinstance(expected, str) and coerce_state_token(current) == expected


@dataclass(frozen=True)
class AnyPositive:
    paths: Tuple[str, ...]

    def evaluate(self, snapshot: Snapshot, owner: str) -> bool:
        for path in self.paths:
            numeric = as_number(snapshot.lookup(path, owner=owner))
            if numeric is not None and numeric > 0:
                return True
        return False


@dataclass(frozen=True)
class Equals:
    path: str
    value: Any

    def evaluate(self, snapshot: Snapshot, owner: str) -> bool:
        current = snapshot.lookup(self.path, owner=owner)
        if current is ABSENT:
            return False
        return _matches(current, self.value)

    @property
    def paths(self) -> Tuple[str, ...]:
        return (self.path,)


@dataclass(frozen=True)
class NotEquals:
    path: str
    value: Any

    def evaluate(self, snapshot: Snapshot, owner: str) -> bool:
        current = snapshot.lookup(self.path, owner=owner)
        if current is ABSENT:
            return False
        return not _matches(current, self.value)

    @property
    def paths(self) -> Tuple[str, ...]:
        return (self.path,)


@dataclass(frozen=True)
class Ratio:
    numerator: str
    denominator: str
    scale: float = 100.0

    def evaluate(self, snapshot: Snapshot, owner: str) -> float:
        top = as_number(snapshot.lookup(self.numerator, owner=owner))
        bottom = as_number(snapshot.lookup(self.denominator, owner=owner))
        if top is None or bottom is None or bottom <= 0:
            return 0.0
        return max(0.0, min(self.scale, top / bottom * self.scale))

    @property
    def paths(self) -> Tuple[str, ...]:
        return (self.numerator, self.denominator)


# Rules --------------------------------------------------------------------


@dataclass(frozen=True)
class StrictRule:
    """Changed iff new != old. Optional `above` gate skips values at or below it."""

    above: Optional[float] = None
    kind = "strict"

    def project(self, snapshot: Snapshot, paths: Tuple[str, ...], previous: Any, owner: str) -> Any:
        value = snapshot.resolve(paths, owner=owner)
        if isinstance(value, float) and not math.isfinite(value):
            # Non-finite readings project as absent.
            return ABSENT
        if value is ABSENT or self.above is None:
            return value
        numeric = as_number(value)
        if numeric is None or numeric <= self.above:
            return ABSENT
        return value

    def changed(self, old: Any, new: Any) -> bool:
        return old is ABSENT or new != old


@dataclass(frozen=True)
class ZeroGateRule:
    kind = "zero_gate"

    def project(self, snapshot: Snapshot, paths: Tuple[str, ...], previous: Any, owner: str) -> Any:
        value = snapshot.resolve(paths, owner=owner)
        if value is ABSENT:
            # Absent at stream start still has to show something: 0.
            return 0 if previous is ABSENT else ABSENT
        return zero_gate(value)

    def changed(self, old: Any, new: Any) -> bool:
        return old is ABSENT or new != old


@dataclass(frozen=True)
class DerivedRule:
    """Value computed from other fields, re-evaluated on every snapshot."""

    predicate: Any
    kind = "derived"

    def project(self, snapshot: Snapshot, paths: Tuple[str, ...], previous: Any, owner: str) -> Any:
        return self.predicate.evaluate(snapshot, owner)

    def changed(self, old: Any, new: Any) -> bool:
        return old is ABSENT or new != old


@dataclass(frozen=True)
class ResourceRule:
    """Compared by string identity of a resource key such as a background path."""

    kind = "resource"

    def project(self, snapshot: Snapshot, paths: Tuple[str, ...], previous: Any, owner: str) -> Any:
        value = snapshot.resolve(paths, owner=owner)
        if value is ABSENT or value is None:
            return ABSENT
        return str(value)

    def changed(self, old: Any, new: Any) -> bool:
        return old is ABSENT or str(new) != str(old)


DiffRule = Any
RULE_KINDS = ("strict", "zero_gate", "derived", "resource")


def _require_path(raw: Any, label: str) -> str:
    if not isinstance(raw, str):
        raise BindingConfigError(f"{label} must be a dotted path string")
    try:
        split_path(raw)
    except ValueError as exc:
        raise BindingConfigError(f"{label}: {exc}") from exc
    return raw


def predicate_from_config(data: Mapping[str, Any]) -> Any:
    if "any_positive" in data:
        raw_paths = data["any_positive"]
        if isinstance(raw_paths, str):
            raw_paths = [raw_paths]
        if not isinstance(raw_paths, (list, tuple)) or not raw_paths:
            raise BindingConfigError("any_positive needs a non-empty list of paths")
        return AnyPositive(tuple(_require_path(path, "any_positive") for path in raw_paths))
    for key, cls in (("equals", Equals), ("not_equals", NotEquals)):
        if key in data:
            spec = data[key]
            if not isinstance(spec, Mapping) or "path" not in spec or "value" not in spec:
                raise BindingConfigError(f"{key} needs 'path' and 'value'")
            return cls(_require_path(spec["path"], key), coerce_state_token(spec["value"]))
    if "ratio" in data:
        spec = data["ratio"]
        if not isinstance(spec, Mapping):
            raise BindingConfigError("ratio needs 'numerator' and 'denominator'")
        try:
            scale = float(spec.get("scale", 100.0))
        except (TypeError, ValueError) as exc:
            raise BindingConfigError(f"ratio scale must be numeric: {exc}") from exc
        return Ratio(
            _require_path(spec.get("numerator"), "ratio.numerator"),
            _require_path(spec.get("denominator"), "ratio.denominator"),
            scale,
        )
    raise BindingConfigError(
        "derived rule needs one of: any_positive, equals, not_equals, ratio"
    )


def rule_from_config(raw: Any) -> DiffRule:
    """Build a rule from either a bare kind string or a mapping with a `kind` key."""
    if raw is None:
        return StrictRule()
    if isinstance(raw, str):
        data: Mapping[str, Any] = {"kind": raw}
    elif isinstance(raw, Mapping):
        data = raw
    else:
        raise BindingConfigError(f"rule must be a string or object, got {type(raw).__name__}")
    kind = str(data.get("kind", "strict")).strip().lower()
    if kind == "strict":
        above = data.get("above")
        if above is None:
            return StrictRule()
        try:
            return StrictRule(above=float(above))
        except (TypeError, ValueError) as exc:
            raise BindingConfigError(f"strict.above must be numeric: {exc}") from exc
    if kind == "zero_gate":
        return ZeroGateRule()
    if kind == "derived":
        return DerivedRule(predicate_from_config(data))
    if kind == "resource":
        return ResourceRule()
    raise BindingConfigError(f"unknown rule kind '{kind}' (expected one of {', '.join(RULE_KINDS)})")
