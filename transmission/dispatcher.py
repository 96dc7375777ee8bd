"""
Per-cycle transmission to every enabled destination.

The dispatcher walks the destinations in a fixed order (custom server,
Madavi, sensor.community, TTN, InfluxDB). Each destination is attempted
independently: its precondition, its payloads, its own success rule and its
own status record. Nothing that happens at one destination changes what
happens at the next.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from radio.base import LoRaWanStack
from transmission.clients import (
    HTTP_CREATED,
    HTTP_OK,
    DeliveryOutcome,
    InfluxClient,
    JsonHttpClient,
    LoRaWanClient,
    accept_codes,
)
from transmission.config import DestinationConfig, ProtocolFamily, TransmissionConfig
from utils.destination_state import DestinationState, DestinationStatus, StatusBoard
from utils.measurement import MeasurementSnapshot
from utils.protocol import (
    JsonVariant,
    PayloadKind,
    build_environment_frame,
    build_environment_json,
    build_geiger_frame,
    build_geiger_json,
    build_influx_line,
)

logger = logging.getLogger(__name__)

# sensor.community X-PIN values identifying the sensor type
XPIN_BME280 = 11
XPIN_RADIATION = 19

CUSTOM_SERVER = "Custom"
MADAVI = "Madavi"
SENSOR_COMMUNITY = "sensor.community"
TTN = "TTN"
INFLUX = "Influx-DB"

DESTINATION_ORDER = (CUSTOM_SERVER, MADAVI, SENSOR_COMMUNITY, TTN, INFLUX)


@dataclass(frozen=True)
class AttemptResult:
    """What happened at one destination during a cycle."""

    name: str
    ok: bool
    codes: tuple[int | None, int | None]


# =============================================================================
# Destinations
# =============================================================================


class Destination(ABC):
    """One telemetry sink: precondition, payloads and success rule."""

    def __init__(self, name: str, pause_after: float = 0.0):
        self.name = name
        self.pause_after = pause_after

    @abstractmethod
    def precondition(self, snapshot: MeasurementSnapshot) -> bool:
        """Return False to skip this destination for the cycle."""
        pass

    @abstractmethod
    def deliver(
        self, snapshot: MeasurementSnapshot
    ) -> tuple[DeliveryOutcome, DeliveryOutcome | None]:
        """
        Deliver the geiger payload, then the environment payload if any.

        Returns:
            (primary outcome, secondary outcome or None if not sent)
        """
        pass


class JsonHttpDestination(Destination):
    """HTTP JSON backend; needs Wi-Fi."""

    def __init__(
        self,
        name: str,
        client: JsonHttpClient,
        software_version: str,
        variant: JsonVariant = JsonVariant.GENERIC,
        geiger_headers: dict[str, str] | None = None,
        environment_headers: dict[str, str] | None = None,
        pause_after: float = 0.0,
    ):
        super().__init__(name, pause_after)
        self._client = client
        self._software_version = software_version
        self._variant = variant
        self._geiger_headers = geiger_headers
        self._environment_headers = environment_headers

    def precondition(self, snapshot: MeasurementSnapshot) -> bool:
        return snapshot.wifi_connected

    def deliver(
        self, snapshot: MeasurementSnapshot
    ) -> tuple[DeliveryOutcome, DeliveryOutcome | None]:
        geiger = self._client.deliver(
            build_geiger_json(snapshot, self._software_version, self._variant),
            self._geiger_headers,
        )
        environment = None
        if snapshot.environment is not None:
            environment = self._client.deliver(
                build_environment_json(
                    snapshot.environment, self._software_version, self._variant
                ),
                self._environment_headers,
            )
        return geiger, environment


class LoRaWanDestination(Destination):
    """TTN via LoRaWAN; needs network credentials, not Wi-Fi."""

    def __init__(self, client: LoRaWanClient, lora_version: int, has_credentials: bool):
        super().__init__(TTN)
        self._client = client
        self._lora_version = lora_version
        self._has_credentials = has_credentials

    def precondition(self, snapshot: MeasurementSnapshot) -> bool:
        return self._has_credentials

    def deliver(
        self, snapshot: MeasurementSnapshot
    ) -> tuple[DeliveryOutcome, DeliveryOutcome | None]:
        geiger = self._client.deliver(
            build_geiger_frame(snapshot, self._lora_version), PayloadKind.GEIGER
        )
        environment = None
        if snapshot.environment is not None:
            environment = self._client.deliver(
                build_environment_frame(snapshot.environment), PayloadKind.ENVIRONMENT
            )
        return geiger, environment


class InfluxDestination(Destination):
    """InfluxDB; one combined line per cycle, needs Wi-Fi."""

    def __init__(self, client: InfluxClient, measurement: str):
        super().__init__(INFLUX)
        self._client = client
        self._measurement = measurement

    def precondition(self, snapshot: MeasurementSnapshot) -> bool:
        return snapshot.wifi_connected

    def deliver(
        self, snapshot: MeasurementSnapshot
    ) -> tuple[DeliveryOutcome, DeliveryOutcome | None]:
        logger.debug(
            f"Measured data: cpm={snapshot.cpm}, HV={snapshot.hv_pulses}, "
            f"DoseRate={snapshot.dose_rate:f}, gm_count={snapshot.counts}, "
            f"timediff={snapshot.interval_ms}"
        )
        line = build_influx_line(snapshot, self._measurement)
        logger.debug(f"Influx-Body: {line.rstrip()}")
        return self._client.deliver(line), None


# =============================================================================
# Dispatcher
# =============================================================================


class Dispatcher:
    """
    Runs one transmission cycle across all enabled destinations.

    Deliveries are strictly sequential on the caller's thread. poll() is the
    only method meant to be called from another thread.
    """

    def __init__(
        self,
        destinations: list[Destination],
        status_board: StatusBoard,
        lora_client: LoRaWanClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the dispatcher.

        Args:
            destinations: Enabled destinations, in transmission order
            status_board: Board holding the destination statuses; missing
                entries are registered as INIT
            lora_client: LoRaWAN client to poll, if LoRa is enabled
            sleep: Sleep function for the post-delivery pause
        """
        self._destinations = list(destinations)
        self._status_board = status_board
        self._lora_client = lora_client
        self._sleep = sleep
        for destination in self._destinations:
            if destination.name not in status_board:
                status_board.register(destination.name, enabled=True)

    @property
    def destinations(self) -> list[Destination]:
        return list(self._destinations)

    def transmit(self, snapshot: MeasurementSnapshot) -> list[AttemptResult]:
        """
        Deliver one snapshot to every enabled destination.

        Returns:
            One AttemptResult per destination actually attempted
        """
        results = []
        for destination in self._destinations:
            result = self._attempt(destination, snapshot)
            if result is not None:
                results.append(result)
        return results

    def poll(self) -> None:
        """Give the LoRaWAN stack a chance to run. Never blocks."""
        if self._lora_client is not None:
            self._lora_client.poll()

    def _attempt(
        self, destination: Destination, snapshot: MeasurementSnapshot
    ) -> AttemptResult | None:
        name = destination.name
        if not destination.precondition(snapshot):
            logger.debug(f"Skipping {name}: precondition not met")
            return None

        logger.info(f"Sending to {name} ...")
        self._status_board.transition(name, DestinationState.SENDING)

        try:
            primary, secondary = destination.deliver(snapshot)
            ok = primary.ok and (secondary is None or secondary.ok)
            codes = (primary.code, secondary.code if secondary else None)
        except Exception as e:
            logger.error(f"Error sending to {name}: {e}")
            ok, codes = False, (None, None)

        if destination.pause_after > 0:
            self._sleep(destination.pause_after)

        status = DestinationStatus(
            DestinationState.IDLE if ok else DestinationState.ERROR, codes
        )
        logger.info(
            f"Sent to {name}, status: {'ok' if ok else 'error'}, "
            f"http: {status.format_codes()}"
        )
        self._status_board.transition(name, status.state, codes)
        return AttemptResult(name=name, ok=ok, codes=codes)


# =============================================================================
# Construction from Config
# =============================================================================


def _json_destination(
    name: str,
    dest_config: DestinationConfig,
    config: TransmissionConfig,
    success_code: int,
    pause_after: float = 0.0,
    xpins: tuple[int, int] | None = None,
) -> JsonHttpDestination:
    client = JsonHttpClient(
        dest_config.url,
        config.sensor_id,
        success=accept_codes(success_code),
        ca_file=config.ca_file,
    )
    variant = JsonVariant.GENERIC
    if dest_config.family is ProtocolFamily.JSON_HTTP_NAMED:
        variant = JsonVariant.NAMED_BY_TUBE

    geiger_headers = environment_headers = None
    if xpins is not None:
        geiger_headers = {"X-PIN": str(xpins[0])}
        environment_headers = {"X-PIN": str(xpins[1])}

    return JsonHttpDestination(
        name,
        client,
        config.software_version,
        variant=variant,
        geiger_headers=geiger_headers,
        environment_headers=environment_headers,
        pause_after=pause_after,
    )


def build_dispatcher(
    config: TransmissionConfig,
    status_board: StatusBoard,
    lora_stack: LoRaWanStack | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Dispatcher:
    """
    Create clients and destinations for everything enabled in config.

    Disabled destinations get no client and are registered as OFF. LoRa
    counts as disabled when no stack is available.
    """
    destinations: list[Destination] = []
    lora_client = None

    if config.custom_server.enabled:
        # Assumed rule: 200 on both calls. To be confirmed with the custom
        # server's author.
        destinations.append(
            _json_destination(CUSTOM_SERVER, config.custom_server, config, HTTP_OK)
        )

    if config.madavi.enabled:
        destinations.append(
            _json_destination(
                MADAVI,
                config.madavi,
                config,
                HTTP_OK,
                pause_after=config.post_delivery_pause_sec,
            )
        )

    if config.sensor_community.enabled:
        destinations.append(
            _json_destination(
                SENSOR_COMMUNITY,
                config.sensor_community,
                config,
                HTTP_CREATED,
                pause_after=config.post_delivery_pause_sec,
                xpins=(XPIN_RADIATION, XPIN_BME280),
            )
        )

    if config.lora.enabled and lora_stack is not None:
        lora_client = LoRaWanClient(lora_stack)
        destinations.append(
            LoRaWanDestination(
                lora_client, config.lora_version, config.lora.has_credentials
            )
        )
    elif config.lora.enabled:
        logger.warning("LoRa enabled but no LoRaWAN stack available")

    if config.influx.enabled:
        client = InfluxClient(
            config.influx.url,
            config.sensor_id,
            config.influx.measurement,
            user=config.influx.user,
            password=config.influx.password,
            ca_file=config.ca_file,
        )
        destinations.append(InfluxDestination(client, config.influx.measurement))

    enabled = {d.name for d in destinations}
    for name in DESTINATION_ORDER:
        status_board.register(name, enabled=name in enabled)
    dispatcher = Dispatcher(destinations, status_board, lora_client, sleep=sleep)

    logger.info(
        f"Transmission enabled for: {', '.join(d.name for d in destinations) or 'none'}"
    )
    return dispatcher
