from __future__ import annotations

import os

import pytest
from PyQt6.QtCore import QEasingCurve
from PyQt6.QtWidgets import QApplication

from telemetry_overlay.bindings import AnimationSpec, VisibilityStyle
from telemetry_overlay.errors import BindingError
from telemetry_overlay.qt_surface import OverlaySurface, QtNumericAnimator, resolve_easing

pytestmark = pytest.mark.pyqt_required


@pytest.fixture(scope="module")
def qt_app():
    # Force Qt to run headless for CI/CLI test runs.
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    app = QApplication.instance()
    if app is None:
        app = QApplication([])
    return app


@pytest.fixture
def surface(qt_app, ingame_bindings):
    widget = OverlaySurface(ingame_bindings)
    yield widget
    widget.deleteLater()


def test_one_label_per_sink_id(surface, ingame_bindings):
    for sink_id in ingame_bindings.sink_ids():
        assert surface.label(sink_id).objectName() == sink_id
    assert surface.label("pp").text() == "0"
    assert surface.label("hun").text() == ""


def test_unknown_sink_id_is_a_binding_error(surface):
    with pytest.raises(BindingError):
        surface.set_text("nope", "1")


def test_set_text_and_attribute(surface):
    surface.set_text("hun", "12")
    assert surface.label("hun").text() == "12"
    surface.set_attribute("bg", "src", "http://127.0.0.1:9001/Songs/1/bg.jpg")
    assert surface.label("bg").property("src") == "http://127.0.0.1:9001/Songs/1/bg.jpg"
    surface.set_attribute("bg", "src", "/does/not/exist.png")
    assert surface.label("bg").pixmap().isNull()


def test_opacity_visibility_switches_effect(surface):
    style = VisibilityStyle(mode="opacity", hidden_opacity=0.0, shown_opacity=1.0)
    surface.set_visibility("ifFcpp", False, style)
    effect = surface.label("ifFcpp").graphicsEffect()
    assert effect.opacity() == 0.0
    surface.set_visibility("ifFcpp", True, style)
    assert surface.label("ifFcpp").graphicsEffect() is effect
    assert effect.opacity() == 1.0


def test_offset_visibility_moves_relative_to_home(surface):
    label = surface.label("wrapper")
    home = label.pos()
    style = VisibilityStyle(mode="offset", hidden_offset=(-1.1, 0.0), shown_offset=(0.0, 0.0))
    surface.set_visibility("wrapper", False, style)
    assert label.pos().x() == home.x() + int(-1.1 * label.width())
    surface.set_visibility("wrapper", True, style)
    assert label.pos() == home


def test_zero_duration_animation_writes_final_value(surface):
    animator = QtNumericAnimator(surface)
    handle = animator.start("pp", 0.0, 42.0, AnimationSpec(duration_ms=0, decimals=1))
    assert handle.is_running() is False
    assert surface.label("pp").text() == "42.0"


def test_animation_reuses_one_qt_animation_per_sink(surface):
    animator = QtNumericAnimator(surface)
    spec = AnimationSpec(duration_ms=1000)
    first = animator.start("pp", 0.0, 10.0, spec)
    assert first.is_running()
    first.retarget(20.0)
    assert first.animation.endValue() == 20.0
    first.stop()
    assert first.is_running() is False
    second = animator.start("pp", 20.0, 30.0, spec)
    assert second.animation is first.animation
    second.stop()


def test_resolve_easing_accepts_loose_names():
    assert resolve_easing("OutExpo") == QEasingCurve.Type.OutExpo
    assert resolve_easing("in-out-quad") == QEasingCurve.Type.InOutQuad
    assert resolve_easing("wobble") == QEasingCurve.Type.OutExpo
