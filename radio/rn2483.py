"""Microchip RN2483/RN2903 LoRaWAN modem over a serial port."""

import logging
import threading
import time

import serial

from .base import LoRaWanStack, TxStatus

logger = logging.getLogger(__name__)

# First response to "mac tx" when the modem refuses the uplink
_REFUSAL_STATUS = {
    "not_joined": TxStatus.NOT_JOINED,
    "busy": TxStatus.BUSY,
    "no_free_ch": TxStatus.BUSY,
    "silent": TxStatus.BUSY,
    "mac_paused": TxStatus.BUSY,
    "frame_counter_err_rejoin_needed": TxStatus.NOT_JOINED,
}


class RN2483Stack(LoRaWanStack):
    """
    LoRaWAN stack running inside an RN2483 (EU868) or RN2903 (US915) modem.

    The modem is expected to be joined already (credentials saved with
    "mac save" and joined at boot). Each uplink is a two-step exchange:

        > mac tx uncnf <port> <hex>
        < ok                      (accepted, transmitting)
        < mac_tx_ok | mac_rx ...  (done)  or  mac_err

    Wiring (RN2483 to Pi):
        VDD -> 3.3V
        GND -> GND
        TX  -> GPIO 15 (UART RXD)
        RX  -> GPIO 14 (UART TXD)
    """

    def __init__(
        self,
        port: str = "/dev/ttyS0",
        baudrate: int = 57600,
        tx_timeout: float = 15.0,
        read_timeout: float = 0.1,
    ):
        """
        Initialize modem configuration.

        Args:
            port: Serial device
            baudrate: Serial baud rate (modem default 57600)
            tx_timeout: Maximum time to wait for an uplink to complete
            read_timeout: Serial read timeout for each read call
        """
        self._port = port
        self._baudrate = baudrate
        self._tx_timeout = tx_timeout
        self._read_timeout = read_timeout

        self._serial = None
        self._rx_buffer = b""
        self._lock = threading.Lock()

    def init(self) -> None:
        """Open the serial port and query the modem version."""
        self._serial = serial.Serial(
            self._port, baudrate=self._baudrate, timeout=self._read_timeout
        )
        self._serial.reset_input_buffer()
        with self._lock:
            self._write_command("sys get ver")
            version = self._read_line(time.monotonic() + 2.0)
        logger.info(f"LoRaWAN modem on {self._port}: {version or 'no response'}")

    def send(self, port: int, data: bytes, confirmed: bool = False) -> int:
        """Send an uplink and block until the modem reports the result."""
        if self._serial is None:
            raise RuntimeError("Modem not initialized. Call init() first.")
        if not 1 <= port <= 223:
            raise ValueError(f"Invalid LoRaWAN port: {port}")

        mode = "cnf" if confirmed else "uncnf"
        with self._lock:
            self._discard_pending()
            deadline = time.monotonic() + self._tx_timeout
            self._write_command(f"mac tx {mode} {port} {data.hex().upper()}")

            accepted = self._read_line(deadline)
            if accepted is None:
                logger.error("LoRaWAN modem did not answer mac tx")
                return TxStatus.TIMEOUT
            if accepted != "ok":
                status = _REFUSAL_STATUS.get(accepted, TxStatus.REJECTED)
                logger.warning(f"LoRaWAN uplink refused: {accepted}")
                return status

            result = self._read_line(deadline)

        if result is None:
            logger.error("LoRaWAN uplink timed out")
            return TxStatus.TIMEOUT
        if result == "mac_tx_ok" or result.startswith("mac_rx"):
            # Downlinks are not handled; mac_rx still means the uplink went out
            return TxStatus.UPLINK_SUCCESS
        logger.warning(f"LoRaWAN uplink failed: {result}")
        return TxStatus.UPLINK_FAILED

    def poll(self) -> None:
        """
        Drain unsolicited modem output.

        Returns immediately while an uplink holds the modem.
        """
        if not self._lock.acquire(blocking=False):
            return
        try:
            if self._serial is None:
                return
            waiting = self._serial.in_waiting
            if waiting:
                self._rx_buffer += self._serial.read(waiting)
            while b"\r\n" in self._rx_buffer:
                line, _, self._rx_buffer = self._rx_buffer.partition(b"\r\n")
                logger.debug(f"LoRaWAN modem: {line.decode('ascii', 'replace')}")
        finally:
            self._lock.release()

    def close(self) -> None:
        """Close the serial port."""
        with self._lock:
            if self._serial:
                self._serial.close()
                self._serial = None
            self._rx_buffer = b""

    def _discard_pending(self) -> None:
        """Drop late replies (e.g. of a timed-out uplink) before a new command."""
        if self._serial.in_waiting:
            self._rx_buffer += self._serial.read(self._serial.in_waiting)
        for line in self._rx_buffer.split(b"\r\n"):
            if line:
                logger.debug(f"Discarding stale modem output: {line.decode('ascii', 'replace')}")
        self._rx_buffer = b""
        self._serial.reset_input_buffer()

    def _write_command(self, command: str) -> None:
        self._serial.write(command.encode("ascii") + b"\r\n")

    def _read_line(self, deadline: float) -> str | None:
        """Read one CRLF-terminated response line, or None at the deadline."""
        while b"\r\n" not in self._rx_buffer:
            if time.monotonic() >= deadline:
                return None
            self._rx_buffer += self._serial.read(max(1, self._serial.in_waiting))
        line, _, self._rx_buffer = self._rx_buffer.partition(b"\r\n")
        return line.decode("ascii", "replace").strip()
