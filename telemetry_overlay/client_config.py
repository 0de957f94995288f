"""Configuration helpers for the telemetry overlay client."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlsplit

from telemetry_overlay.transport import DEFAULT_FAREWELL, DEFAULT_URL, BackoffPolicy

URL_ENV_VAR = "TELEMETRY_OVERLAY_URL"
BINDINGS_ENV_VAR = "TELEMETRY_OVERLAY_BINDINGS"


@dataclass(frozen=True)
class OverlaySettings:
    """Values used to bootstrap the client; fixed for the process lifetime."""

    url: Optional[str] = None
    bindings: str = "InGame1"
    backoff_initial: float = 1.0
    backoff_factor: float = 1.5
    backoff_max: float = 10.0
    farewell: Optional[str] = DEFAULT_FAREWELL
    reset_on_reconnect: bool = False
    client_log_retention: int = 5
    headless: bool = False

    def backoff(self) -> BackoffPolicy:
        return BackoffPolicy(
            initial=self.backoff_initial,
            factor=self.backoff_factor,
            maximum=self.backoff_max,
        )

    def resolve_url(self, preset_url: Optional[str] = None) -> str:
        """Explicit setting wins, then the binding preset's own endpoint, then the default."""
        return self.url or preset_url or DEFAULT_URL


def is_websocket_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in {"ws", "wss"} and bool(parts.hostname)


def _float(value: Any, fallback: float, *, minimum: float) -> float:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return fallback
    return max(minimum, numeric)


def _int(value: Any, fallback: int, *, minimum: int) -> int:
    try:
        numeric = int(value)
    except (TypeError, ValueError):
        return fallback
    return max(minimum, numeric)


def settings_from_mapping(data: Mapping[str, Any]) -> OverlaySettings:
    defaults = OverlaySettings()
    url = data.get("url")
    if not isinstance(url, str) or not is_websocket_url(url):
        url = defaults.url
    bindings = data.get("bindings")
    if not isinstance(bindings, str) or not bindings.strip():
        bindings = defaults.bindings
    farewell = data.get("farewell", defaults.farewell)
    if farewell is not None and not isinstance(farewell, str):
        farewell = defaults.farewell
    backoff_initial = _float(data.get("backoff_initial"), defaults.backoff_initial, minimum=0.05)
    return OverlaySettings(
        url=url,
        bindings=bindings.strip(),
        backoff_initial=backoff_initial,
        backoff_factor=_float(data.get("backoff_factor"), defaults.backoff_factor, minimum=1.0),
        backoff_max=_float(data.get("backoff_max"), defaults.backoff_max, minimum=backoff_initial),
        farewell=farewell,
        reset_on_reconnect=bool(data.get("reset_on_reconnect", defaults.reset_on_reconnect)),
        client_log_retention=_int(data.get("client_log_retention"), defaults.client_log_retention, minimum=1),
        headless=bool(data.get("headless", defaults.headless)),
    )


def load_settings(settings_path: Path) -> OverlaySettings:
    """Read bootstrap defaults from overlay_settings.json if it exists."""
    try:
        raw = settings_path.read_text(encoding="utf-8")
    except OSError:
        return OverlaySettings()
    try:
        data: Dict[str, Any] = json.loads(raw)
    except json.JSONDecodeError:
        return OverlaySettings()
    if not isinstance(data, dict):
        return OverlaySettings()
    return settings_from_mapping(data)


def apply_env_overrides(settings: OverlaySettings, env: Optional[Mapping[str, str]] = None) -> OverlaySettings:
    source = os.environ if env is None else env
    updates: Dict[str, Any] = {}
    url = source.get(URL_ENV_VAR, "").strip()
    if url and is_websocket_url(url):
        updates["url"] = url
    bindings = source.get(BINDINGS_ENV_VAR, "").strip()
    if bindings:
        updates["bindings"] = bindings
    return replace(settings, **updates) if updates else settings
