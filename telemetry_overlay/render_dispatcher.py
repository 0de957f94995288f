"""Apply deltas to render sinks."""
from __future__ import annotations

import math
from typing import Any, Dict, Optional

from telemetry_overlay.bindings import FieldBinding, SinkKind
from telemetry_overlay.debug_config import DebugConfig
from telemetry_overlay.diff_engine import Delta
from telemetry_overlay.diff_rules import as_number
from telemetry_overlay.errors import BindingError
from telemetry_overlay.logging_utils import LogOnce, get_client_logger
from telemetry_overlay.sinks import AnimationHandle, Animator, RenderSink

_LOGGER = get_client_logger("RenderDispatcher")
_MISSING = object()


def _same_value(previous: Any, value: Any) -> bool:
    if type(previous) is not type(value):
        return False
    if isinstance(value, float) and math.isnan(value):
        return math.isnan(previous)
    return previous == value


class RenderDispatcher:
    """Routes each change to its sink.

    Keeps the last value applied per binding and skips identical writes, and
    keeps at most one animation handle per binding: a new target retargets the
    running animation instead of starting a second one.
    """

    def __init__(
        self,
        sink: RenderSink,
        animator: Animator,
        *,
        debug_config: Optional[DebugConfig] = None,
    ) -> None:
        self._sink = sink
        self._animator = animator
        self._debug = debug_config or DebugConfig()
        self._applied: Dict[str, Any] = {}
        self._animations: Dict[str, AnimationHandle] = {}
        self._failures = LogOnce(_LOGGER)
        self._closed = False

    def dispatch(self, delta: Delta) -> int:
        """Apply every change in `delta`; returns the number of sink writes issued."""
        if self._closed:
            return 0
        writes = 0
        for change in delta:
            binding = change.binding
            try:
                applied = self._apply(binding, change.new)
            except BindingError as exc:
                self._failures.warning(binding.name, "Render of '%s' skipped: %s", binding.name, exc)
                continue
            if self._failures.reported(binding.name):
                self._failures.clear(binding.name)
            if applied:
                writes += 1
        if self._debug.log_deltas and delta:
            _LOGGER.debug("Delta #%d applied (%d writes): %s", delta.sequence, writes, delta.names())
        return writes

    def last_applied(self, name: str, default: Any = None) -> Any:
        return self._applied.get(name, default)

    def active_animation(self, name: str) -> Optional[AnimationHandle]:
        handle = self._animations.get(name)
        if handle is not None and handle.is_running():
            return handle
        return None

    def close(self) -> None:
        """Stop all in-flight animations; later deltas are ignored."""
        self._closed = True
        handles = list(self._animations.values())
        self._animations.clear()
        for handle in handles:
            if handle.is_running():
                handle.stop()

    def _apply(self, binding: FieldBinding, value: Any) -> bool:
        key = binding.name
        previous = self._applied.get(key, _MISSING)
        if previous is not _MISSING and _same_value(previous, value):
            return False

        if binding.sink is SinkKind.SET_TEXT:
            self._sink.set_text(binding.sink_id, binding.render_text(value))
        elif binding.sink is SinkKind.SET_ATTRIBUTE:
            if binding.attribute is None:
                raise BindingError(binding.name, "set_attribute binding has no attribute name")
            self._sink.set_attribute(binding.sink_id, binding.attribute, binding.render_text(value))
        elif binding.sink is SinkKind.SET_VISIBILITY:
            self._sink.set_visibility(binding.sink_id, bool(value), binding.visibility)
        else:
            self._animate(binding, value, previous)

        self._applied[key] = value
        if self._debug.traces(binding.sink_id):
            _LOGGER.debug("trace sink=%s binding=%s value=%r", binding.sink_id, key, value)
        return True

    def _animate(self, binding: FieldBinding, value: Any, previous: Any) -> None:
        target = as_number(value)
        if target is None:
            raise BindingError(binding.name, f"animate_numeric needs a number, got {value!r}")
        handle = self._animations.get(binding.name)
        if handle is not None and handle.is_running():
            handle.retarget(target)
            return
        start = as_number(previous) if previous is not _MISSING else None
        self._animations[binding.name] = self._animator.start(
            binding.sink_id,
            start if start is not None else 0.0,
            target,
            binding.animation,
        )
