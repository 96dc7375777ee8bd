"""
Shared runtime state for the transmitter.

Holds what the display needs besides destination statuses: uptime, cycle
count and the last snapshot handed to the dispatcher.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from utils.measurement import MeasurementSnapshot


@dataclass
class TransmitterState:
    """Thread-safe cycle bookkeeping shared by the runner and display pages."""

    device_id: str
    start_time: float = field(default_factory=time.time)
    cycle_count: int = 0
    last_snapshot: MeasurementSnapshot | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def record_cycle(self, snapshot: MeasurementSnapshot) -> None:
        """Store the snapshot of a starting cycle (thread-safe)."""
        with self._lock:
            self.cycle_count += 1
            self.last_snapshot = snapshot

    def get_cycle_count(self) -> int:
        with self._lock:
            return self.cycle_count

    def get_last_snapshot(self) -> MeasurementSnapshot | None:
        with self._lock:
            return self.last_snapshot
