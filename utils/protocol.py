"""
Payload encodings for every telemetry destination.

This module turns a MeasurementSnapshot into the exact wire format each
backend expects. All builders are pure: same input, same output, no I/O.

Payload families:
- JSON (HTTP): generic value types, or value types named after the tube /
  BME280 sensor (Madavi needs the sensor name to tell tubes apart)
- LoRaWAN binary: fixed-width big-endian frames to keep airtime short
- InfluxDB line protocol: one line per cycle, environment fields appended
"""

import json
import re
import struct
from dataclasses import dataclass
from enum import Enum, IntEnum

from utils.measurement import EnvironmentReading, MeasurementSnapshot


# =============================================================================
# Payload Kinds and Variants
# =============================================================================

class PayloadKind(IntEnum):
    """Payload kind; the value doubles as LoRa frame type tag and port."""

    GEIGER = 1
    ENVIRONMENT = 2


class JsonVariant(Enum):
    """How value_type names are spelled in HTTP JSON payloads."""

    GENERIC = "generic"
    NAMED_BY_TUBE = "named_by_tube"


# The tube type string starts with a fixed 10 character prefix
# ("Radiation "), the rest is the tube model name.
TUBE_TYPE_PREFIX_LEN = 10

ENVIRONMENT_SENSOR_NAME = "BME280"


def tube_model_name(tube_type: str) -> str:
    """Strip the fixed-length prefix from a tube type ("Radiation SBM-20" -> "SBM-20")."""
    return tube_type[TUBE_TYPE_PREFIX_LEN:]


# =============================================================================
# Firmware Version
# =============================================================================

_VERSION_RE = re.compile(r"^V(\d+)\.(\d+)\.(\d+)")


def parse_lora_version(version: str) -> int:
    """
    Pack a "Vmajor.minor.patch" version string into 16 bits.

    Layout: major << 12 | minor << 4 | patch. Strings that don't match the
    pattern give 0.
    """
    match = _VERSION_RE.match(version)
    if match is None:
        return 0
    major, minor, patch = (int(g) for g in match.groups())
    return ((major << 12) + (minor << 4) + patch) & 0xFFFF


def unpack_lora_version(packed: int) -> tuple[int, int, int]:
    """Inverse of parse_lora_version (for small minor/patch numbers)."""
    return (packed >> 12) & 0xF, (packed >> 4) & 0xFF, packed & 0xF


# =============================================================================
# HTTP JSON Payloads
# =============================================================================

def _json_body(software_version: str, values: list[tuple[str, str]]) -> str:
    message = {
        "software_version": software_version,
        "sensordatavalues": [
            {"value_type": value_type, "value": value}
            for value_type, value in values
        ],
    }
    return json.dumps(message, separators=(",", ":"))


def build_geiger_json(
    snapshot: MeasurementSnapshot,
    software_version: str,
    variant: JsonVariant = JsonVariant.GENERIC,
) -> str:
    """
    Build the radiation JSON body.

    Counts are sent as integer strings. For NAMED_BY_TUBE every value type
    is prefixed with the tube model name, e.g. "SBM-20_counts_per_minute".
    """
    prefix = ""
    if variant is JsonVariant.NAMED_BY_TUBE:
        prefix = tube_model_name(snapshot.tube_type) + "_"

    values = [
        (f"{prefix}counts_per_minute", str(int(snapshot.cpm))),
        (f"{prefix}hv_pulses", str(int(snapshot.hv_pulses))),
        (f"{prefix}counts", str(int(snapshot.counts))),
        (f"{prefix}sample_time_ms", str(int(snapshot.interval_ms))),
    ]
    return _json_body(software_version, values)


def build_environment_json(
    environment: EnvironmentReading,
    software_version: str,
    variant: JsonVariant = JsonVariant.GENERIC,
) -> str:
    """Build the temperature/humidity/pressure JSON body (2 decimals)."""
    prefix = ""
    if variant is JsonVariant.NAMED_BY_TUBE:
        prefix = ENVIRONMENT_SENSOR_NAME + "_"

    values = [
        (f"{prefix}temperature", f"{environment.temperature:.2f}"),
        (f"{prefix}humidity", f"{environment.humidity:.2f}"),
        (f"{prefix}pressure", f"{environment.pressure:.2f}"),
    ]
    return _json_body(software_version, values)


# =============================================================================
# LoRaWAN Binary Frames
# =============================================================================

GEIGER_FRAME_LEN = 10
ENVIRONMENT_FRAME_LEN = 5

# Interval is carried in 3 bytes (max ~4h 39m)
INTERVAL_MASK = 0xFFFFFF


@dataclass(frozen=True)
class GeigerFrame:
    """Decoded contents of a geiger uplink frame."""

    counts: int
    interval_ms: int
    version: int
    tube_index: int


def build_geiger_frame(snapshot: MeasurementSnapshot, lora_version: int) -> bytes:
    """
    Pack counts, interval, firmware version and tube index (10 bytes).

    Layout: counts u32 | interval_ms u24 | version u16 | tube u8
    """
    interval = snapshot.interval_ms & INTERVAL_MASK
    frame = (
        struct.pack(">I", snapshot.counts & 0xFFFFFFFF)
        + interval.to_bytes(3, "big")
        + struct.pack(">HB", lora_version & 0xFFFF, snapshot.tube_index & 0xFF)
    )
    return frame


def build_environment_frame(environment: EnvironmentReading) -> bytes:
    """
    Pack temperature, humidity and pressure (5 bytes).

    Layout: temperature*10 i16 | humidity*2 u8 | pressure/10 u16
    Scaled values truncate toward zero and wrap to their field width.
    """
    temperature = int(environment.temperature * 10) & 0xFFFF
    humidity = int(environment.humidity * 2) & 0xFF
    pressure = int(environment.pressure / 10) & 0xFFFF
    frame = struct.pack(">HBH", temperature, humidity, pressure)
    return frame


def parse_geiger_frame(data: bytes) -> GeigerFrame | None:
    """Decode a geiger frame, or None if the length is wrong."""
    if len(data) != GEIGER_FRAME_LEN:
        return None
    (counts,) = struct.unpack(">I", data[0:4])
    interval_ms = int.from_bytes(data[4:7], "big")
    version, tube_index = struct.unpack(">HB", data[7:10])
    return GeigerFrame(
        counts=counts,
        interval_ms=interval_ms,
        version=version,
        tube_index=tube_index,
    )


def parse_environment_frame(data: bytes) -> EnvironmentReading | None:
    """Decode an environment frame, or None if the length is wrong."""
    if len(data) != ENVIRONMENT_FRAME_LEN:
        return None
    temperature, humidity, pressure = struct.unpack(">hBH", data)
    return EnvironmentReading(
        temperature=temperature / 10,
        humidity=humidity / 2,
        pressure=pressure * 10,
    )


# =============================================================================
# InfluxDB Line Protocol
# =============================================================================

def build_influx_line(snapshot: MeasurementSnapshot, measurement: str) -> str:
    """
    Build a single line-protocol record, newline terminated.

    Environment fields are appended to the same line when present.
    """
    fields = [
        f"cpm={int(snapshot.cpm)}",
        f"hv_pulses={int(snapshot.hv_pulses)}",
        f"gm_count={int(snapshot.counts)}",
        f"timediff={int(snapshot.interval_ms)}",
        f"dose_rate={snapshot.dose_rate:f}",
    ]
    env = snapshot.environment
    if env is not None:
        fields += [
            f"temperature={env.temperature:f}",
            f"humidity={env.humidity:f}",
            f"pressure={env.pressure:f}",
        ]
    return f"{measurement} {','.join(fields)}\n"
