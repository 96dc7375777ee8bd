#!/usr/bin/env python3
"""
Geiger counter transmitter - delivers each measurement cycle to the
configured telemetry backends (custom server, Madavi, sensor.community,
TTN via LoRaWAN, InfluxDB).

The acquisition process drives the cadence: it writes one JSON snapshot per
line to our stdin and every line is one transmission cycle:

{"tube_type": "Radiation SBM-20", "tube_index": 2, "interval_ms": 150000,
 "hv_pulses": 17, "counts": 62, "cpm": 24, "dose_rate": 0.136,
 "environment": {"temperature": 21.4, "humidity": 48.5, "pressure": 1003.2},
 "wifi_connected": true}

Configuration is loaded from config/transmitter_config.json (see
transmission/config.py for the format).

Usage:
    counter | python3 -m transmission.server [config_file]
"""

import argparse
import json
import logging
import sys
import threading
import time
from typing import Iterable, Iterator, TextIO

from gpiozero import Button

from display import (
    DeviceInfoPage,
    LastCyclePage,
    OffPage,
    ScreenManager,
    SSD1306Display,
    TransmissionStatusPage,
)
from radio import LoRaWanStack, RN2483Stack
from transmission.config import TransmissionConfig, load_config
from transmission.dispatcher import Dispatcher, build_dispatcher
from utils.destination_state import StatusBoard
from utils.measurement import MeasurementSnapshot
from utils.transmitter_state import TransmitterState

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)
server_send_logger = logging.getLogger("server_send")


# =============================================================================
# Radio Poller Thread
# =============================================================================


class RadioPoller(threading.Thread):
    """
    Calls Dispatcher.poll() at a fixed, short interval.

    The LoRaWAN stack needs to be polled far more often than measurement
    cycles happen, whether or not an uplink is in flight.
    """

    def __init__(self, dispatcher: Dispatcher, interval_sec: float = 0.01):
        super().__init__(daemon=True, name="RadioPoller")
        self._dispatcher = dispatcher
        self._interval_sec = interval_sec
        self._running = False

    def run(self) -> None:
        self._running = True
        logger.info(f"Radio poller started ({self._interval_sec * 1000:.0f}ms interval)")
        while self._running:
            try:
                self._dispatcher.poll()
            except Exception as e:
                logger.error(f"Radio poll error: {e}")
                time.sleep(0.5)  # Back off on error
            time.sleep(self._interval_sec)

    def stop(self) -> None:
        self._running = False


# =============================================================================
# Snapshot Input
# =============================================================================


def read_snapshots(stream: TextIO) -> Iterator[MeasurementSnapshot]:
    """Yield one snapshot per JSON line; invalid lines are logged and skipped."""
    for line_no, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            yield MeasurementSnapshot.from_dict(json.loads(line))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring invalid snapshot on line {line_no}: {e}")


# =============================================================================
# Setup Helpers
# =============================================================================


def open_lora_stack(config: TransmissionConfig) -> LoRaWanStack | None:
    """Open the LoRaWAN modem if enabled; None if disabled or unavailable."""
    if not config.lora.enabled:
        return None
    try:
        stack = RN2483Stack(
            port=config.lora.port,
            baudrate=config.lora.baudrate,
            tx_timeout=config.lora.tx_timeout_sec,
        )
        stack.init()
        return stack
    except Exception as e:
        logger.error(f"Failed to initialize LoRaWAN modem: {e}")
        logger.info("Continuing without LoRaWAN")
        return None


def start_display(
    config: TransmissionConfig,
    status_board: StatusBoard,
    state: TransmitterState,
) -> tuple[ScreenManager | None, Button | None]:
    """Start the OLED status display if configured."""
    display_config = config.display
    if not display_config.enabled:
        return None, None

    try:
        display = SSD1306Display(
            i2c_port=display_config.i2c_port,
            i2c_address=display_config.i2c_address,
        )
        pages = [
            TransmissionStatusPage(status_board),
            LastCyclePage(state),
            DeviceInfoPage(state),
            OffPage(),
        ]
        screen_manager = ScreenManager(
            display=display,
            pages=pages,
            refresh_interval=display_config.refresh_interval,
        )
        status_board.add_listener(screen_manager.refresh)
        screen_manager.start()
    except Exception as e:
        logger.warning(f"Failed to initialize display: {e}")
        return None, None

    advance_button = None
    if advance_pin := display_config.advance_switch_pin:
        advance_button = Button(advance_pin, bounce_time=0.02)
        advance_button.when_pressed = screen_manager.advance_page
        logger.info(f"Display advance button on GPIO {advance_pin}")

    logger.info("OLED display initialized")
    return screen_manager, advance_button


# =============================================================================
# Main Loop
# =============================================================================


def run_transmitter(
    config: TransmissionConfig,
    snapshots: Iterable[MeasurementSnapshot],
    lora_stack: LoRaWanStack | None = None,
) -> TransmitterState:
    """
    Transmit every snapshot until the input ends.

    Args:
        config: Transmitter configuration
        snapshots: One snapshot per cycle, produced by the acquisition side
        lora_stack: Already initialized LoRaWAN stack, if any
    """
    status_board = StatusBoard()
    state = TransmitterState(device_id=config.sensor_id)
    screen_manager, advance_button = start_display(config, status_board, state)

    dispatcher = build_dispatcher(config, status_board, lora_stack)

    poller = None
    if lora_stack is not None:
        poller = RadioPoller(dispatcher, config.lora.poll_interval_sec)
        poller.start()

    try:
        for snapshot in snapshots:
            state.record_cycle(snapshot)
            dispatcher.transmit(snapshot)
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("Shutting down...")
        if poller:
            poller.stop()
            poller.join(timeout=2.0)
        if screen_manager:
            screen_manager.stop()
        if advance_button:
            advance_button.close()
        if lora_stack:
            lora_stack.close()

    return state


def main():
    parser = argparse.ArgumentParser(
        description="Geiger counter transmitter - sends measurements to telemetry backends",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "config",
        nargs="?",
        default="config/transmitter_config.json",
        help="Path to config file (default: config/transmitter_config.json)",
    )
    parser.add_argument(
        "--verbose_logging",
        action="store_true",
        help="Enable debug logging for all modules",
    )
    parser.add_argument(
        "--debug-server-send",
        action="store_true",
        help="Log HTTP request and response bodies",
    )
    args = parser.parse_args()

    if args.verbose_logging:
        logging.getLogger().setLevel(logging.DEBUG)

    # Bodies only with --debug-server-send, not with --verbose_logging
    server_send_logger.setLevel(
        logging.DEBUG if args.debug_server_send else logging.INFO
    )
    server_send_logger.debug("Server send debug logging active")

    try:
        config = TransmissionConfig.from_dict(load_config(args.config))
    except FileNotFoundError as e:
        logger.error(str(e))
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logger.info(f"Transmitter '{config.sensor_id}' running {config.software_version}")
    lora_stack = open_lora_stack(config)
    run_transmitter(config, read_snapshots(sys.stdin), lora_stack)


if __name__ == "__main__":
    main()
