"""Telemetry: logging setup and OpenTelemetry tracing for snapshot runs."""

from permsnap.shared.telemetry.logging import setup_logging
from permsnap.shared.telemetry.telemetry import (
    SnapshotTelemetry,
    get_telemetry,
    setup_telemetry_from_settings,
    shutdown_telemetry,
)
from permsnap.shared.telemetry.tracing import add_span_attributes, add_span_event, traced

__all__ = [
    "SnapshotTelemetry",
    "add_span_attributes",
    "add_span_event",
    "get_telemetry",
    "setup_logging",
    "setup_telemetry_from_settings",
    "shutdown_telemetry",
    "traced",
]
