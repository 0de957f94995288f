"""Error taxonomy for the telemetry pipeline.

None of these are fatal once the pipeline is running: transport errors are
recovered by reconnecting, decode errors drop a single frame, and binding
errors freeze a single field. Only ``BindingConfigError`` may abort startup.
"""
from __future__ import annotations


class TelemetryOverlayError(Exception):
    """Base class for all overlay client errors."""


class TransportError(TelemetryOverlayError):
    """Connection refused, reset, timed out or failed the handshake."""

    def __init__(self, message: str, *, url: str = "", cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.cause = cause


class DecodeError(TelemetryOverlayError):
    """An inbound frame could not be turned into a snapshot."""

    def __init__(self, message: str, *, raw: object = None) -> None:
        super().__init__(message)
        self.raw = raw


class BindingError(TelemetryOverlayError):
    """A bound field could not be resolved or applied at runtime."""

    def __init__(self, binding_name: str, message: str) -> None:
        super().__init__(f"{binding_name}: {message}")
        self.binding_name = binding_name


class BindingConfigError(TelemetryOverlayError):
    """The binding configuration itself is invalid."""
