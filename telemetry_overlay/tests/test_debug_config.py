from __future__ import annotations

import json

from telemetry_overlay import debug_config as module


def test_troubleshooting_disabled_returns_defaults(tmp_path):
    cfg = module.load_troubleshooting_config(tmp_path / "debug.json", enabled=False)
    assert cfg.overlay_logs_to_keep is None


def test_troubleshooting_reads_and_clamps_overlay_logs(tmp_path):
    path = tmp_path / "debug.json"
    path.write_text(json.dumps({"overlay_logs_to_keep": 7}), encoding="utf-8")
    assert module.load_troubleshooting_config(path, enabled=True).overlay_logs_to_keep == 7
    path.write_text(json.dumps({"overlay_logs_to_keep": 99}), encoding="utf-8")
    assert module.load_troubleshooting_config(path, enabled=True).overlay_logs_to_keep == 20
    path.write_text(json.dumps({"overlay_logs_to_keep": "many"}), encoding="utf-8")
    assert module.load_troubleshooting_config(path, enabled=True).overlay_logs_to_keep is None


def test_dev_settings_release_ignores_file(monkeypatch, tmp_path):
    path = tmp_path / "dev_settings.json"
    path.write_text(json.dumps({"tracing": {"enabled": True}}), encoding="utf-8")
    monkeypatch.setattr(module, "DEBUG_CONFIG_ENABLED", False, raising=False)
    cfg = module.load_dev_settings(path)
    assert cfg.trace_enabled is False
    assert cfg.traces("pp") is False


def test_dev_settings_enabled_reads_file(monkeypatch, tmp_path):
    path = tmp_path / "dev_settings.json"
    payload = {
        "tracing": {"enabled": True, "sink_ids": ["pp", " ", "hun"]},
        "log_deltas": True,
    }
    path.write_text(json.dumps(payload), encoding="utf-8")
    monkeypatch.setattr(module, "DEBUG_CONFIG_ENABLED", True, raising=False)
    cfg = module.load_dev_settings(path)
    assert cfg.trace_enabled is True
    assert cfg.trace_sink_ids == ("pp", "hun")
    assert cfg.log_deltas is True
    assert cfg.traces("pp") is True
    assert cfg.traces("bg") is False


def test_dev_settings_writes_defaults_when_missing(monkeypatch, tmp_path):
    path = tmp_path / "dev_settings.json"
    monkeypatch.setattr(module, "DEBUG_CONFIG_ENABLED", True, raising=False)
    cfg = module.load_dev_settings(path)
    assert cfg.trace_enabled is False
    assert cfg.log_dropped_frames is True
    written = json.loads(path.read_text(encoding="utf-8"))
    assert written["log_dropped_frames"] is True
    assert written["sink_ids"] == []


def test_trace_without_sink_filter_traces_everything():
    cfg = module.DebugConfig(trace_enabled=True)
    assert cfg.traces("anything") is True
