from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Tuple

import pytest

from telemetry_overlay.bindings import AnimationSpec, VisibilityStyle, bindings_from_config
from telemetry_overlay.logging_utils import ROOT_LOGGER_NAME


@pytest.fixture(autouse=True)
def _pin_client_root_logger_propagation(monkeypatch):
    """Keep the client root logger at its production default (no propagation) so
    tests that attach ``caplog.handler`` to a component logger see each record once."""
    monkeypatch.setattr(logging.getLogger(ROOT_LOGGER_NAME), "propagate", False)


def pytest_runtest_setup(item):
    if item.get_closest_marker("pyqt_required"):
        if not os.getenv("PYQT_TESTS"):
            pytest.skip("PYQT_TESTS not set; skipping PyQt-dependent test")


class RecordingSink:
    """Keeps every write plus the resulting visible state."""

    def __init__(self) -> None:
        self.calls: List[Tuple[Any, ...]] = []
        self.texts: Dict[str, str] = {}
        self.attributes: Dict[Tuple[str, str], str] = {}
        self.visible: Dict[str, bool] = {}

    def set_text(self, sink_id: str, text: str) -> None:
        self.calls.append(("text", sink_id, text))
        self.texts[sink_id] = text

    def set_attribute(self, sink_id: str, name: str, value: str) -> None:
        self.calls.append(("attribute", sink_id, name, value))
        self.attributes[(sink_id, name)] = value

    def set_visibility(self, sink_id: str, visible: bool, style: VisibilityStyle) -> None:
        self.calls.append(("visibility", sink_id, visible, style.mode))
        self.visible[sink_id] = visible


class ManualHandle:
    def __init__(self, sink_id: str, start: float, end: float) -> None:
        self.sink_id = sink_id
        self.start = start
        self.targets = [end]
        self.running = True
        self.stopped = False

    @property
    def target(self) -> float:
        return self.targets[-1]

    def is_running(self) -> bool:
        return self.running

    def retarget(self, value: float) -> None:
        self.targets.append(value)

    def stop(self) -> None:
        self.running = False
        self.stopped = True

    def finish(self) -> None:
        self.running = False


class ManualAnimator:
    """Animations stay in flight until the test finishes them."""

    def __init__(self) -> None:
        self.started: List[ManualHandle] = []

    def start(self, sink_id: str, start: float, end: float, spec: AnimationSpec) -> ManualHandle:
        handle = ManualHandle(sink_id, start, end)
        self.started.append(handle)
        return handle

    def running(self, sink_id: str) -> List[ManualHandle]:
        return [handle for handle in self.started if handle.sink_id == sink_id and handle.running]


INGAME_CONFIG = {
    "name": "test-ingame",
    "bindings": [
        {
            "name": "wrapper_slide",
            "sink_id": "wrapper",
            "sink": "set_visibility",
            "rule": {"kind": "derived", "equals": {"path": "state", "value": 2}},
            "visibility": {"mode": "offset", "hidden": [-1.1, 0], "shown": [0, 0]},
        },
        {"sink_id": "pp", "sink": "animate_numeric", "paths": ["current_pp"], "rule": "zero_gate"},
        {"sink_id": "hun", "sink": "set_text", "paths": ["gameplay.hit_100"], "rule": "zero_gate"},
        {"sink_id": "miss", "sink": "set_text", "paths": ["gameplay.hit_miss"], "rule": "zero_gate"},
        {
            "name": "fc_visible",
            "sink_id": "ifFcpp",
            "sink": "set_visibility",
            "rule": {"kind": "derived", "any_positive": ["gameplay.hit_miss", "gameplay.slider_breaks"]},
        },
        {"sink_id": "title", "sink": "set_text", "paths": ["beatmap.title", "title"]},
        {
            "sink_id": "bg",
            "sink": "set_attribute",
            "paths": ["beatmap.paths.background_path_full"],
            "rule": "resource",
            "format": "http://songs/{value}",
        },
    ],
}


@pytest.fixture
def ingame_bindings():
    return bindings_from_config(INGAME_CONFIG)


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def manual_animator():
    return ManualAnimator()


def frame(
    *,
    state: Any = 2,
    pp: Any = 0,
    hit_100: Any = 0,
    hit_miss: Any = 0,
    slider_breaks: Any = 0,
    title: str = "Not Today",
    bg: str = "575767/bg.jpg",
) -> Dict[str, Any]:
    return {
        "state": state,
        "current_pp": pp,
        "beatmap": {"title": title, "paths": {"background_path_full": bg}},
        "gameplay": {"hit_100": hit_100, "hit_miss": hit_miss, "slider_breaks": slider_breaks},
    }


@pytest.fixture
def make_frame():
    return frame
