"""Debug configuration loader for pipeline tracing."""

from __future__ import annotations

import json
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from telemetry_overlay.version import __version__, is_dev_build

DEBUG_CONFIG_ENABLED = is_dev_build(__version__)
CLIENT_LOG_RETENTION_MIN = 1
CLIENT_LOG_RETENTION_MAX = 20


@dataclass(frozen=True)
class TroubleshootingConfig:
    overlay_logs_to_keep: Optional[int] = None


@dataclass(frozen=True)
class DebugConfig:
    trace_enabled: bool = False
    trace_sink_ids: tuple[str, ...] = ()
    log_deltas: bool = False
    log_dropped_frames: bool = False

    def traces(self, sink_id: str) -> bool:
        if not self.trace_enabled:
            return False
        if not self.trace_sink_ids:
            return True
        return sink_id in self.trace_sink_ids


def _coerce_log_retention(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        numeric = int(value)
    except (TypeError, ValueError):
        return None
    if numeric <= 0:
        return CLIENT_LOG_RETENTION_MIN
    if numeric > CLIENT_LOG_RETENTION_MAX:
        return CLIENT_LOG_RETENTION_MAX
    return numeric


def load_troubleshooting_config(path: Path, *, enabled: bool) -> TroubleshootingConfig:
    """Read user-facing troubleshooting flags (log retention) from debug.json."""

    if not enabled:
        return TroubleshootingConfig()
    try:
        raw_text = path.read_text(encoding="utf-8")
        data = json.loads(raw_text)
    except (FileNotFoundError, OSError, json.JSONDecodeError):
        data = {}
    overlay_logs_to_keep = None
    if isinstance(data, dict):
        overlay_logs_to_keep = _coerce_log_retention(data.get("overlay_logs_to_keep"))
    return TroubleshootingConfig(overlay_logs_to_keep=overlay_logs_to_keep)


def load_dev_settings(path: Path) -> DebugConfig:
    """Load dev-mode-only flags from dev_settings.json."""

    if not DEBUG_CONFIG_ENABLED:
        return DebugConfig()
    defaults = {
        "trace_enabled": False,
        "sink_ids": [],
        "log_deltas": False,
        "log_dropped_frames": True,
    }
    raw_data: dict[str, Any] = {}
    needs_write = False
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError:
        raw_data = deepcopy(defaults)
        needs_write = True
    else:
        try:
            loaded = json.loads(raw_text)
        except json.JSONDecodeError:
            raw_data = deepcopy(defaults)
            needs_write = True
        else:
            raw_data = loaded if isinstance(loaded, dict) else {}
            if not isinstance(loaded, dict):
                needs_write = True

    data: dict[str, Any] = deepcopy(raw_data)
    for key, default_value in defaults.items():
        if key not in data:
            data[key] = default_value
            needs_write = True

    tracing_section = data.get("tracing")
    if isinstance(tracing_section, dict):
        trace_enabled = bool(tracing_section.get("enabled", False))
        sink_value = tracing_section.get("sink_ids")
        if sink_value is None:
            sink_value = tracing_section.get("sink_id")
    else:
        trace_enabled = bool(data.get("trace_enabled", False))
        sink_value = data.get("sink_ids")
        if sink_value is None:
            sink_value = data.get("sink_id")

    sink_ids: tuple[str, ...] = ()
    if isinstance(sink_value, (list, tuple, set)):
        cleaned = [str(item).strip() for item in sink_value if isinstance(item, (str, int, float))]
        sink_ids = tuple(filter(None, cleaned))
    elif sink_value is not None:
        single = str(sink_value).strip()
        if single:
            sink_ids = (single,)

    normalized = DebugConfig(
        trace_enabled=trace_enabled,
        trace_sink_ids=sink_ids,
        log_deltas=bool(data.get("log_deltas", False)),
        log_dropped_frames=bool(data.get("log_dropped_frames", True)),
    )

    if needs_write:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
        except OSError:
            pass

    return normalized
