"""
Display pages for the transmitter.

- TransmissionStatusPage: one line per destination with state and codes
- LastCyclePage: values of the last snapshot sent
- DeviceInfoPage: device id, uptime, cycle count
"""

import time

from display.base import ScreenPage, _format_duration
from utils.destination_state import DestinationState, StatusBoard
from utils.transmitter_state import TransmitterState

# Short labels so a line fits on 128 px
STATE_LABELS = {
    DestinationState.OFF: "off",
    DestinationState.INIT: "init",
    DestinationState.IDLE: "ok",
    DestinationState.SENDING: "send",
    DestinationState.ERROR: "ERR",
}


class TransmissionStatusPage(ScreenPage):
    """Shows "name state codes" for every destination that isn't off."""

    def __init__(self, status_board: StatusBoard, show_disabled: bool = False):
        self._status_board = status_board
        self._show_disabled = show_disabled

    def get_lines(self) -> list[str | None]:
        lines: list[str | None] = ["Transmission"]
        for name, status in self._status_board.snapshot().items():
            if status.state is DestinationState.OFF and not self._show_disabled:
                continue
            line = f"{name[:8]:<8} {STATE_LABELS[status.state]}"
            if status.state in (DestinationState.IDLE, DestinationState.ERROR):
                line += f" {status.format_codes()}"
            lines.append(line)
        if len(lines) == 1:
            lines.append("all disabled")
        return lines


class LastCyclePage(ScreenPage):
    def __init__(self, state: TransmitterState):
        self._state = state

    def get_lines(self) -> list[str | None]:
        snapshot = self._state.get_last_snapshot()
        if snapshot is None:
            return ["Last cycle", "---", "No data yet", None]

        lines: list[str | None] = [
            f"{snapshot.cpm} cpm",
            f"{snapshot.dose_rate:.3f} uSv/h",
        ]
        env = snapshot.environment
        if env is not None:
            lines.append(f"{env.temperature:.1f}C {env.humidity:.0f}%")
            lines.append(f"{env.pressure:.0f} hPa")
        else:
            lines.append(None)
        lines.append("WiFi" if snapshot.wifi_connected else "no WiFi")
        return lines


class DeviceInfoPage(ScreenPage):
    def __init__(self, state: TransmitterState):
        self._state = state

    def get_lines(self) -> list[str | None]:
        uptime = _format_duration(time.time() - self._state.start_time)
        return [
            self._state.device_id,
            f"Uptime: {uptime}",
            f"Cycles: {self._state.get_cycle_count()}",
        ]
