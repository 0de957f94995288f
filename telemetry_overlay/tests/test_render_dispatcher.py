from __future__ import annotations

import logging
from dataclasses import replace

from telemetry_overlay.bindings import SinkKind, bindings_from_config
from telemetry_overlay.diff_engine import Delta, DiffEngine, FieldChange
from telemetry_overlay.errors import BindingError
from telemetry_overlay.render_dispatcher import RenderDispatcher
from telemetry_overlay.snapshot import ABSENT, Snapshot
from telemetry_overlay.state_store import StateStore


def _change(bindings, name, new, old=ABSENT) -> FieldChange:
    return FieldChange(bindings.get(name), old, new)


def test_text_and_attribute_writes_are_formatted(ingame_bindings, recording_sink, manual_animator) -> None:
    dispatcher = RenderDispatcher(recording_sink, manual_animator)
    writes = dispatcher.dispatch(
        Delta((_change(ingame_bindings, "hun", 7), _change(ingame_bindings, "bg", "1/bg.png")))
    )
    assert writes == 2
    assert recording_sink.texts["hun"] == "7"
    assert recording_sink.attributes[("bg", "src")] == "http://songs/1/bg.png"


def test_identical_value_is_never_reapplied(ingame_bindings, recording_sink, manual_animator) -> None:
    dispatcher = RenderDispatcher(recording_sink, manual_animator)
    delta = Delta((_change(ingame_bindings, "hun", 3), _change(ingame_bindings, "wrapper_slide", True)))
    assert dispatcher.dispatch(delta) == 2
    assert dispatcher.dispatch(delta) == 0
    assert len(recording_sink.calls) == 2
    assert dispatcher.last_applied("hun") == 3


def test_visibility_is_an_immediate_switch(ingame_bindings, recording_sink, manual_animator) -> None:
    dispatcher = RenderDispatcher(recording_sink, manual_animator)
    dispatcher.dispatch(Delta((_change(ingame_bindings, "wrapper_slide", False),)))
    dispatcher.dispatch(Delta((_change(ingame_bindings, "wrapper_slide", True, False),)))
    assert recording_sink.calls == [
        ("visibility", "wrapper", False, "offset"),
        ("visibility", "wrapper", True, "offset"),
    ]
    assert manual_animator.started == []


def test_rapid_updates_retarget_a_single_animation(ingame_bindings, recording_sink, manual_animator) -> None:
    dispatcher = RenderDispatcher(recording_sink, manual_animator)
    dispatcher.dispatch(Delta((_change(ingame_bindings, "pp", 10.0),)))
    dispatcher.dispatch(Delta((_change(ingame_bindings, "pp", 25.5, 10.0),)))
    running = manual_animator.running("pp")
    assert len(running) == 1
    assert len(manual_animator.started) == 1
    assert running[0].target == 25.5
    assert running[0].targets == [10.0, 25.5]
    assert dispatcher.active_animation("pp") is running[0]


def test_finished_animation_is_replaced_starting_from_last_value(
    ingame_bindings, recording_sink, manual_animator
) -> None:
    dispatcher = RenderDispatcher(recording_sink, manual_animator)
    dispatcher.dispatch(Delta((_change(ingame_bindings, "pp", 10.0),)))
    manual_animator.started[0].finish()
    dispatcher.dispatch(Delta((_change(ingame_bindings, "pp", 20.0, 10.0),)))
    assert len(manual_animator.started) == 2
    second = manual_animator.started[1]
    assert (second.start, second.target) == (10.0, 20.0)
    assert manual_animator.started[0].start == 0.0


def test_close_stops_in_flight_animations(ingame_bindings, recording_sink, manual_animator) -> None:
    dispatcher = RenderDispatcher(recording_sink, manual_animator)
    dispatcher.dispatch(Delta((_change(ingame_bindings, "pp", 10.0),)))
    handle = manual_animator.started[0]
    dispatcher.close()
    assert handle.stopped is True
    assert dispatcher.active_animation("pp") is None
    assert dispatcher.dispatch(Delta((_change(ingame_bindings, "hun", 1),))) == 0
    assert recording_sink.calls == []


def test_sink_failure_skips_only_that_field_and_logs_once(
    ingame_bindings, recording_sink, manual_animator, caplog
) -> None:
    class PickySink(type(recording_sink)):
        def set_text(self, sink_id: str, text: str) -> None:
            if sink_id == "hun":
                raise BindingError(sink_id, "no such element")
            super().set_text(sink_id, text)

    sink = PickySink()
    dispatcher = RenderDispatcher(sink, manual_animator)
    logger = logging.getLogger("TelemetryOverlay.Client.RenderDispatcher")
    logger.addHandler(caplog.handler)
    caplog.set_level(logging.WARNING)
    try:
        dispatcher.dispatch(Delta((_change(ingame_bindings, "hun", 1), _change(ingame_bindings, "miss", 2))))
        dispatcher.dispatch(Delta((_change(ingame_bindings, "hun", 5), _change(ingame_bindings, "miss", 3))))
    finally:
        logger.removeHandler(caplog.handler)
    assert sink.texts == {"miss": "3"}
    assert dispatcher.last_applied("hun") is None
    assert len([record for record in caplog.records if "'hun'" in record.getMessage()]) == 1


def test_non_numeric_animation_target_is_skipped(ingame_bindings, recording_sink, manual_animator) -> None:
    dispatcher = RenderDispatcher(recording_sink, manual_animator)
    assert dispatcher.dispatch(Delta((_change(ingame_bindings, "pp", "fast"),))) == 0
    assert manual_animator.started == []


def test_pipeline_rendering_is_idempotent(recording_sink, manual_animator, make_frame) -> None:
    bindings = bindings_from_config(
        [
            {"sink_id": "h100", "sink": "set_text", "paths": ["gameplay.hit_100"], "rule": "zero_gate"},
            {"sink_id": "title", "sink": "set_text", "paths": ["beatmap.title"]},
        ]
    )
    store = StateStore(DiffEngine(bindings))
    dispatcher = RenderDispatcher(recording_sink, manual_animator)
    payload = make_frame(hit_100=4, title="Song")
    dispatcher.dispatch(store.compare(Snapshot(payload)))
    visible_once = dict(recording_sink.texts)
    dispatcher.dispatch(store.compare(Snapshot(payload)))
    assert recording_sink.texts == visible_once == {"h100": "4", "title": "Song"}
    assert len(recording_sink.calls) == 2


def test_nan_is_applied_once(recording_sink, manual_animator) -> None:
    bindings = bindings_from_config([{"sink_id": "ur", "sink": "set_text", "paths": ["unstable_rate"]}])
    dispatcher = RenderDispatcher(recording_sink, manual_animator)
    nan = float("nan")
    assert dispatcher.dispatch(Delta((_change(bindings, "ur", nan),))) == 1
    assert dispatcher.dispatch(Delta((_change(bindings, "ur", float("nan"), nan),))) == 0
    assert recording_sink.calls == [("text", "ur", "nan")]


def test_attribute_binding_without_attribute_is_skipped(recording_sink, manual_animator) -> None:
    bindings = bindings_from_config([{"sink_id": "bg", "sink": "set_text", "paths": ["bg"]}])
    binding = replace(bindings.get("bg"), sink=SinkKind.SET_ATTRIBUTE)
    dispatcher = RenderDispatcher(recording_sink, manual_animator)
    assert dispatcher.dispatch(Delta((FieldChange(binding, ABSENT, "1/bg.png"),))) == 0
    assert recording_sink.calls == []
