from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from telemetry_overlay.bindings import BindingSet, available_presets, load_bindings
from telemetry_overlay.client_config import OverlaySettings, apply_env_overrides, is_websocket_url, load_settings
from telemetry_overlay.debug_config import (
    DEBUG_CONFIG_ENABLED,
    DebugConfig,
    load_dev_settings,
    load_troubleshooting_config,
)
from telemetry_overlay.errors import BindingConfigError
from telemetry_overlay.logging_utils import (
    LOG_FORMAT,
    build_rotating_file_handler,
    get_client_logger,
    resolve_logs_dir,
)
from telemetry_overlay.pipeline import TelemetryPipeline
from telemetry_overlay.sinks import InstantAnimator, LogSink
from telemetry_overlay.transport import ReconnectingTransport
from telemetry_overlay.version import DEV_MODE_ENV_VAR, __version__

CLIENT_DIR = Path(__file__).resolve().parent
_CLIENT_LOGGER = get_client_logger()


def resolve_settings_path(args_config: Optional[str]) -> Path:
    if args_config:
        return Path(args_config).expanduser().resolve()
    env_override = os.getenv("TELEMETRY_OVERLAY_SETTINGS")
    if env_override:
        return Path(env_override).expanduser().resolve()
    return (Path.cwd() / "overlay_settings.json").resolve()


def configure_logging(settings: OverlaySettings, retention_override: Optional[int] = None) -> logging.Handler:
    retention = retention_override if retention_override is not None else settings.client_log_retention
    handler = build_rotating_file_handler(
        resolve_logs_dir(CLIENT_DIR),
        "telemetry-overlay.log",
        retention=retention,
        formatter=logging.Formatter(LOG_FORMAT),
    )
    _CLIENT_LOGGER.addHandler(handler)
    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    _CLIENT_LOGGER.addHandler(console)
    return handler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Real-time telemetry overlay client")
    parser.add_argument("--config", help="Path to overlay_settings.json")
    parser.add_argument("--url", help="WebSocket endpoint, e.g. ws://127.0.0.1:9001/ws")
    parser.add_argument(
        "--bindings",
        help=f"Binding preset name ({', '.join(available_presets())}) or path to a bindings JSON file",
    )
    parser.add_argument("--headless", action="store_true", help="Log sink writes instead of showing a window")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_settings(args: argparse.Namespace) -> OverlaySettings:
    settings = apply_env_overrides(load_settings(resolve_settings_path(args.config)))
    if args.url:
        if not is_websocket_url(args.url):
            raise SystemExit(f"--url must be a ws:// or wss:// URL, got {args.url!r}")
        settings = replace(settings, url=args.url)
    if args.bindings:
        settings = replace(settings, bindings=args.bindings)
    if args.headless:
        settings = replace(settings, headless=True)
    return settings


def build_transport(settings: OverlaySettings, bindings: BindingSet) -> ReconnectingTransport:
    return ReconnectingTransport(
        settings.resolve_url(bindings.url),
        backoff=settings.backoff(),
        farewell=settings.farewell,
    )


async def run_headless(settings: OverlaySettings, bindings: BindingSet, debug_config: DebugConfig) -> None:
    sink = LogSink()
    pipeline = TelemetryPipeline(
        bindings,
        sink,
        InstantAnimator(sink),
        reset_on_reconnect=settings.reset_on_reconnect,
        debug_config=debug_config,
    )
    transport = build_transport(settings, bindings)
    try:
        await pipeline.run(transport)
    finally:
        await pipeline.close()


def run_qt(settings: OverlaySettings, bindings: BindingSet, debug_config: DebugConfig) -> int:
    from PyQt6.QtWidgets import QApplication

    from telemetry_overlay.qt_bridge import TransportBridge
    from telemetry_overlay.qt_surface import OverlaySurface, QtNumericAnimator

    app = QApplication(sys.argv)
    surface = OverlaySurface(bindings)
    pipeline = TelemetryPipeline(
        bindings,
        surface,
        QtNumericAnimator(surface),
        reset_on_reconnect=settings.reset_on_reconnect,
        debug_config=debug_config,
    )
    bridge = TransportBridge(build_transport(settings, bindings))
    bridge.connect_pipeline(pipeline)
    bridge.error_reported.connect(lambda message: _CLIENT_LOGGER.debug("Transport error: %s", message))

    def _shutdown() -> None:
        pipeline.close_render()
        bridge.stop()

    app.aboutToQuit.connect(_shutdown)
    surface.show()
    bridge.start()
    return int(app.exec())


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = resolve_settings(args)
    troubleshooting = load_troubleshooting_config(
        resolve_settings_path(args.config).with_name("debug.json"), enabled=True
    )
    configure_logging(settings, troubleshooting.overlay_logs_to_keep)
    debug_config = load_dev_settings(resolve_settings_path(args.config).with_name("dev_settings.json"))
    if not DEBUG_CONFIG_ENABLED:
        _CLIENT_LOGGER.debug(
            "dev_settings.json ignored (release mode). Export %s=1 to enable trace toggles.",
            DEV_MODE_ENV_VAR,
        )

    try:
        bindings = load_bindings(settings.bindings)
    except BindingConfigError as exc:
        _CLIENT_LOGGER.error("Invalid binding configuration: %s", exc)
        return 2

    _CLIENT_LOGGER.info(
        "Starting telemetry overlay %s (pid=%s) bindings=%s (%d fields) url=%s headless=%s",
        __version__,
        os.getpid(),
        bindings.label,
        len(bindings),
        settings.resolve_url(bindings.url),
        settings.headless,
    )
    if settings.headless:
        try:
            asyncio.run(run_headless(settings, bindings, debug_config))
        except KeyboardInterrupt:
            _CLIENT_LOGGER.info("Interrupted; overlay client exiting")
        return 0
    exit_code = run_qt(settings, bindings, debug_config)
    _CLIENT_LOGGER.info("Overlay client exiting with code %s", exit_code)
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
