"""PyQt6 render surface: one label per sink id, Qt's event loop drives animations."""
from __future__ import annotations

from typing import Callable, Dict, Optional

from PyQt6.QtCore import QAbstractAnimation, QEasingCurve, QPoint, Qt, QUrl, QVariantAnimation
from PyQt6.QtGui import QPixmap
from PyQt6.QtWidgets import QGraphicsOpacityEffect, QLabel, QWidget

from telemetry_overlay.bindings import AnimationSpec, BindingSet, SinkKind, VisibilityStyle
from telemetry_overlay.errors import BindingError
from telemetry_overlay.logging_utils import get_client_logger

_LOGGER = get_client_logger("Surface")

_ROW_SPACING = 6
_MARGIN = 10


class OverlaySurface(QWidget):
    """Transparent, frameless window exposing the render sink operations."""

    def __init__(self, bindings: BindingSet, parent: Optional[QWidget] = None) -> None:
        super().__init__(parent)
        self.setWindowTitle(f"Telemetry Overlay - {bindings.label}")
        self.setWindowFlags(
            Qt.WindowType.FramelessWindowHint
            | Qt.WindowType.WindowStaysOnTopHint
            | Qt.WindowType.Tool
        )
        self.setAttribute(Qt.WidgetAttribute.WA_TranslucentBackground, True)
        self.setAttribute(Qt.WidgetAttribute.WA_TransparentForMouseEvents, True)
        self._labels: Dict[str, QLabel] = {}
        self._effects: Dict[str, QGraphicsOpacityEffect] = {}
        self._home: Dict[str, QPoint] = {}
        animated = {binding.sink_id for binding in bindings if binding.sink is SinkKind.ANIMATE_NUMERIC}
        for sink_id in bindings.sink_ids():
            label = QLabel("0" if sink_id in animated else "", self)
            label.setObjectName(sink_id)
            label.setStyleSheet("color: white; font-size: 20px;")
            self._labels[sink_id] = label
        self._arrange()

    def label(self, sink_id: str) -> QLabel:
        try:
            return self._labels[sink_id]
        except KeyError:
            raise BindingError(sink_id, f"no element with id '{sink_id}' on the overlay surface") from None

    # Render sink surface -------------------------------------------------

    def set_text(self, sink_id: str, text: str) -> None:
        label = self.label(sink_id)
        if label.text() == text:
            return
        label.setText(text)
        label.adjustSize()

    def set_attribute(self, sink_id: str, name: str, value: str) -> None:
        label = self.label(sink_id)
        label.setProperty(name, value)
        if name == "src":
            self._load_image(label, value)

    def set_visibility(self, sink_id: str, visible: bool, style: VisibilityStyle) -> None:
        label = self.label(sink_id)
        if style.mode == "opacity":
            effect = self._effects.get(sink_id)
            if effect is None:
                effect = QGraphicsOpacityEffect(label)
                label.setGraphicsEffect(effect)
                self._effects[sink_id] = effect
            effect.setOpacity(style.shown_opacity if visible else style.hidden_opacity)
            return
        dx, dy = style.shown_offset if visible else style.hidden_offset
        home = self._home.get(sink_id, label.pos())
        label.move(home.x() + int(dx * label.width()), home.y() + int(dy * label.height()))

    # Internal helpers ----------------------------------------------------

    def _arrange(self) -> None:
        y = _MARGIN
        width = 0
        for sink_id, label in self._labels.items():
            label.adjustSize()
            label.move(_MARGIN, y)
            self._home[sink_id] = QPoint(_MARGIN, y)
            y += max(label.sizeHint().height(), 24) + _ROW_SPACING
            width = max(width, label.sizeHint().width())
        self.resize(max(320, width + 2 * _MARGIN), y + _MARGIN)

    def _load_image(self, label: QLabel, value: str) -> None:
        url = QUrl(value)
        if url.scheme() and not url.isLocalFile():
            # Remote assets are the theme's business; keep the key for it to pick up.
            _LOGGER.debug("Background for '%s' set to remote resource %s", label.objectName(), value)
            return
        path = url.toLocalFile() if url.isLocalFile() else value
        pixmap = QPixmap(path)
        if pixmap.isNull():
            _LOGGER.debug("Could not load image '%s' for '%s'", path, label.objectName())
            label.clear()
            return
        label.setPixmap(pixmap)
        label.adjustSize()


class _QtAnimationHandle:
    def __init__(self, animation: QVariantAnimation) -> None:
        self._animation = animation

    @property
    def animation(self) -> QVariantAnimation:
        return self._animation

    def is_running(self) -> bool:
        return self._animation.state() == QAbstractAnimation.State.Running

    def retarget(self, value: float) -> None:
        current = self._animation.currentValue()
        self._animation.stop()
        self._animation.setStartValue(float(current) if current is not None else float(value))
        self._animation.setEndValue(float(value))
        self._animation.start()

    def stop(self) -> None:
        self._animation.stop()


class _DoneHandle:
    def is_running(self) -> bool:
        return False

    def retarget(self, value: float) -> None:  # pragma: no cover - never running
        return None

    def stop(self) -> None:
        return None


def resolve_easing(name: str) -> QEasingCurve.Type:
    token = (name or "").replace("-", "").replace("_", "").lower()
    for candidate in QEasingCurve.Type:
        if candidate.name.lower() == token:
            return candidate
    return QEasingCurve.Type.OutExpo


class QtNumericAnimator:
    """Numeric counters driven by QVariantAnimation on the surface's event loop."""

    def __init__(self, surface: OverlaySurface) -> None:
        self._surface = surface
        self._animations: Dict[str, QVariantAnimation] = {}

    def start(self, sink_id: str, start: float, end: float, spec: AnimationSpec):
        self._surface.label(sink_id)
        if spec.duration_ms <= 0:
            self._surface.set_text(sink_id, spec.format_value(end))
            return _DoneHandle()
        # One QVariantAnimation per element, reused across starts.
        animation = self._animations.get(sink_id)
        if animation is None:
            animation = QVariantAnimation(self._surface)
            animation.setDuration(spec.duration_ms)
            animation.setEasingCurve(QEasingCurve(resolve_easing(spec.easing)))
            animation.valueChanged.connect(self._writer(sink_id, spec))
            self._animations[sink_id] = animation
        animation.stop()
        animation.setStartValue(float(start))
        animation.setEndValue(float(end))
        animation.start()
        return _QtAnimationHandle(animation)

    def _writer(self, sink_id: str, spec: AnimationSpec) -> Callable[[object], None]:
        def _write(value: object) -> None:
            self._surface.set_text(sink_id, spec.format_value(float(value)))  # type: ignore[arg-type]

        return _write
