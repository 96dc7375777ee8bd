"""
Measurement snapshot handed to the transmitter once per cycle.

The acquisition process (tube pulse counting, BME280 reads) produces one
snapshot per measurement cycle. Snapshots are immutable and discarded once
the cycle's transmissions are done.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class EnvironmentReading:
    """Temperature (C), relative humidity (%RH) and pressure (hPa)."""

    temperature: float
    humidity: float
    pressure: float


@dataclass(frozen=True)
class MeasurementSnapshot:
    """One cycle's worth of measured values."""

    tube_type: str
    tube_index: int
    interval_ms: int
    hv_pulses: int
    counts: int
    cpm: int
    dose_rate: float
    environment: EnvironmentReading | None = None
    wifi_connected: bool = False

    @property
    def has_environment(self) -> bool:
        return self.environment is not None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MeasurementSnapshot":
        """
        Build a snapshot from its JSON form.

        Environment values are optional; all three must be present for the
        snapshot to carry environment data.
        """
        env = data.get("environment")
        environment = None
        if env:
            environment = EnvironmentReading(
                temperature=float(env["temperature"]),
                humidity=float(env["humidity"]),
                pressure=float(env["pressure"]),
            )
        return cls(
            tube_type=str(data["tube_type"]),
            tube_index=int(data["tube_index"]),
            interval_ms=int(data["interval_ms"]),
            hv_pulses=int(data["hv_pulses"]),
            counts=int(data["counts"]),
            cpm=int(data["cpm"]),
            dose_rate=float(data["dose_rate"]),
            environment=environment,
            wifi_connected=bool(data.get("wifi_connected", False)),
        )
