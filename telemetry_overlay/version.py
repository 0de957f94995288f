"""Version metadata for the telemetry overlay client."""
from __future__ import annotations

import os
from typing import Optional

__version__ = "0.4.0"

DEV_MODE_ENV_VAR = "TELEMETRY_OVERLAY_DEV_MODE"


def is_dev_build(version: Optional[str] = None) -> bool:
    """Return True when running a -dev build or when dev mode is forced via env."""

    value = os.getenv(DEV_MODE_ENV_VAR)
    if value is not None:
        token = value.strip().lower()
        if token in {"1", "true", "yes", "on"}:
            return True
        if token in {"0", "false", "no", "off"}:
            return False
    label = (version if version is not None else __version__) or ""
    return "dev" in label.lower()
