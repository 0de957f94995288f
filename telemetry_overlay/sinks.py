"""Render sink capability surface plus the headless implementations."""
from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from telemetry_overlay.bindings import AnimationSpec, VisibilityStyle
from telemetry_overlay.logging_utils import get_client_logger


class RenderSink(Protocol):
    """The four operations the pipeline may perform on a visual surface."""

    def set_text(self, sink_id: str, text: str) -> None: ...

    def set_attribute(self, sink_id: str, name: str, value: str) -> None: ...

    def set_visibility(self, sink_id: str, visible: bool, style: VisibilityStyle) -> None: ...


class AnimationHandle(Protocol):
    def is_running(self) -> bool: ...

    def retarget(self, value: float) -> None: ...

    def stop(self) -> None: ...


class Animator(Protocol):
    """Starts numeric animations; progression belongs to an external timing loop."""

    def start(self, sink_id: str, start: float, end: float, spec: AnimationSpec) -> AnimationHandle: ...


class LogSink:
    """Headless sink that records the visible state and logs every write."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or get_client_logger("Sink")
        self.texts: Dict[str, str] = {}
        self.attributes: Dict[str, Dict[str, str]] = {}
        self.visible: Dict[str, bool] = {}

    def set_text(self, sink_id: str, text: str) -> None:
        self.texts[sink_id] = text
        self._logger.info("%s = %s", sink_id, text)

    def set_attribute(self, sink_id: str, name: str, value: str) -> None:
        self.attributes.setdefault(sink_id, {})[name] = value
        self._logger.info("%s[%s] = %s", sink_id, name, value)

    def set_visibility(self, sink_id: str, visible: bool, style: VisibilityStyle) -> None:
        self.visible[sink_id] = visible
        self._logger.info("%s %s (%s)", sink_id, "shown" if visible else "hidden", style.mode)


class _FinishedAnimation:
    def is_running(self) -> bool:
        return False

    def retarget(self, value: float) -> None:  # pragma: no cover - never running
        return None

    def stop(self) -> None:
        return None


class InstantAnimator:
    """Jumps straight to the target value; used when there is no frame clock."""

    def __init__(self, sink: RenderSink) -> None:
        self._sink = sink

    def start(self, sink_id: str, start: float, end: float, spec: AnimationSpec) -> AnimationHandle:
        self._sink.set_text(sink_id, spec.format_value(end))
        return _FinishedAnimation()
