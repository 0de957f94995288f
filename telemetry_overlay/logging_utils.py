from __future__ import annotations

import logging
import os
import tempfile
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Set

from telemetry_overlay.debug_config import DEBUG_CONFIG_ENABLED

ROOT_LOGGER_NAME = "TelemetryOverlay.Client"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


class _ReleaseLogLevelFilter(logging.Filter):
    """Promote debug logs to INFO in release builds so diagnostics stay visible."""

    def __init__(self, release_mode: bool) -> None:
        super().__init__()
        self._release_mode = release_mode

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging shim
        if self._release_mode and record.levelno == logging.DEBUG:
            record.levelno = logging.INFO
            record.levelname = "INFO"
        return True


def _propagation_requested() -> bool:
    return os.environ.get("TELEMETRY_OVERLAY_PROPAGATE_LOGS", "").lower() in {"1", "true", "yes", "on"}


def get_client_logger(suffix: Optional[str] = None) -> logging.Logger:
    """Return a component logger under the client root, configured once."""
    name = ROOT_LOGGER_NAME if not suffix else f"{ROOT_LOGGER_NAME}.{suffix}"
    logger = logging.getLogger(name)
    if getattr(logger, "_telemetry_overlay_configured", False):
        return logger
    logger.setLevel(resolve_log_level(DEBUG_CONFIG_ENABLED))
    if suffix:
        # Component loggers always feed the client root so one handler captures everything.
        logger.propagate = True
    else:
        # Opt-in propagation flag for environments/tests that want client logs upstream.
        logger.propagate = _propagation_requested()
    logger.addFilter(_ReleaseLogLevelFilter(release_mode=not DEBUG_CONFIG_ENABLED))
    setattr(logger, "_telemetry_overlay_configured", True)
    return logger


class LogOnce:
    """Emit a warning the first time a key fails, stay quiet until it recovers."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger
        self._reported: Set[str] = set()

    def warning(self, key: str, message: str, *args: object) -> bool:
        if key in self._reported:
            return False
        self._reported.add(key)
        self._logger.warning(message, *args)
        return True

    def clear(self, key: str) -> None:
        self._reported.discard(key)

    def reported(self, key: str) -> bool:
        return key in self._reported


def resolve_logs_dir(base_path: Path, log_dir_name: str = "TelemetryOverlay") -> Path:
    """
    Resolve the directory to store overlay logs.

    Strategy:
    - Use TELEMETRY_OVERLAY_LOG_DIR if set.
    - Fall back to XDG state/cache locations, then `cwd/logs/<log_dir_name>`.
    - Final fallback: tempdir/<log_dir_name>.
    `base_path` is only used to skip candidates inside the installed package tree.
    """
    package_root = base_path.resolve()
    candidates = []

    env_override = os.environ.get("TELEMETRY_OVERLAY_LOG_DIR")
    if env_override:
        candidates.append(Path(env_override).expanduser())

    state_home = Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state"))
    cache_home = Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache"))
    candidates.append(state_home / "telemetry-overlay" / "logs")
    candidates.append(cache_home / "telemetry-overlay" / "logs")
    candidates.append(Path.cwd() / "logs")

    for base in candidates:
        target = base / log_dir_name
        if package_root in target.resolve().parents:
            continue
        try:
            target.mkdir(parents=True, exist_ok=True)
            return target
        except OSError:
            continue

    temp_fallback = Path(tempfile.gettempdir()) / "TelemetryOverlay" / log_dir_name
    temp_fallback.mkdir(parents=True, exist_ok=True)
    return temp_fallback


def build_rotating_file_handler(
    log_dir: Path,
    filename: str,
    *,
    retention: int = 5,
    max_bytes: int = 512 * 1024,
    formatter: Optional[logging.Formatter] = None,
) -> logging.Handler:
    """Construct a rotating file handler with sane defaults."""
    retention = max(1, retention)
    backup_count = max(0, retention - 1)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / filename
    handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    if formatter is not None:
        handler.setFormatter(formatter)
    return handler


def resolve_log_level(debug_enabled: bool) -> int:
    """Return DEBUG in dev mode, INFO otherwise."""
    return logging.DEBUG if debug_enabled else logging.INFO
