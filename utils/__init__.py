"""
Utility modules for the transmitter.

This package provides the measurement snapshot, payload encoders and the
shared state read by the display.
"""

from .destination_state import DestinationState, DestinationStatus, StatusBoard
from .measurement import EnvironmentReading, MeasurementSnapshot
from .protocol import (
    JsonVariant,
    PayloadKind,
    build_environment_frame,
    build_environment_json,
    build_geiger_frame,
    build_geiger_json,
    build_influx_line,
    parse_environment_frame,
    parse_geiger_frame,
    parse_lora_version,
)
from .transmitter_state import TransmitterState

__all__ = [
    # Snapshot
    "EnvironmentReading",
    "MeasurementSnapshot",
    # Status
    "DestinationState",
    "DestinationStatus",
    "StatusBoard",
    "TransmitterState",
    # Payloads
    "JsonVariant",
    "PayloadKind",
    "build_geiger_json",
    "build_environment_json",
    "build_geiger_frame",
    "build_environment_frame",
    "parse_geiger_frame",
    "parse_environment_frame",
    "build_influx_line",
    "parse_lora_version",
]
