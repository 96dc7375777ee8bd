"""
Channel clients: one per destination family.

Each client owns its transport handle for the process lifetime and exposes
a single blocking deliver() that returns a DeliveryOutcome. Clients never
retry and never raise for transport problems; failures come back as result
codes so the dispatcher can record them.

Classes:
    DeliveryOutcome: Result code plus success classification
    JsonHttpClient: POSTs JSON bodies (custom server, Madavi, sensor.community)
    InfluxClient: POSTs line-protocol bodies to InfluxDB
    LoRaWanClient: Sends binary frames through a LoRaWanStack
"""

from __future__ import annotations

import base64
import http.client
import logging
import ssl
from dataclasses import dataclass
from typing import Callable
from urllib.parse import urlsplit

from radio.base import LoRaWanStack, TxStatus
from utils.protocol import PayloadKind

logger = logging.getLogger(__name__)

# Request/response bodies, logged at DEBUG (enabled by --debug-server-send)
server_send_logger = logging.getLogger("server_send")

# Result code for failures below HTTP (refused, TLS, DNS, timeout)
TRANSPORT_ERROR = -1

HTTP_OK = 200
HTTP_CREATED = 201
HTTP_ALREADY_REPORTED = 208


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one channel call."""

    code: int
    ok: bool


def accept_codes(*codes: int) -> Callable[[int], bool]:
    """Success rule: code is one of the given values."""
    accepted = frozenset(codes)
    return lambda code: code in accepted


def accept_range(low: int, high: int) -> Callable[[int], bool]:
    """Success rule: low <= code <= high."""
    return lambda code: low <= code <= high


# =============================================================================
# HTTP Transport
# =============================================================================


class HttpChannel:
    """
    A reusable HTTP(S) connection handle for one destination.

    The connection is opened per request and always closed before
    deliver() returns, whatever the outcome.
    """

    def __init__(
        self,
        url: str,
        sensor_id: str,
        success: Callable[[int], bool],
        ca_file: str | None = None,
        timeout: float = 10.0,
    ):
        """
        Initialize the channel.

        Args:
            url: Destination URL; the scheme selects plain HTTP or TLS
            sensor_id: Device identity sent in X-Sensor
            success: Rule classifying a status code as success
            ca_file: CA bundle for TLS (system default store if None)
            timeout: Socket timeout in seconds
        """
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError(f"Unsupported destination URL: {url}")

        self._url = url
        self._sensor_id = sensor_id
        self._success = success
        self._target = parts.path or "/"
        if parts.query:
            self._target += f"?{parts.query}"

        if parts.scheme == "https":
            context = ssl.create_default_context(cafile=ca_file)
            self._conn = http.client.HTTPSConnection(
                parts.hostname, parts.port, timeout=timeout, context=context
            )
        else:
            self._conn = http.client.HTTPConnection(
                parts.hostname, parts.port, timeout=timeout
            )

    def _post(self, body: str, headers: dict[str, str]) -> DeliveryOutcome:
        server_send_logger.debug(f"http request body: {body}")
        headers = {"X-Sensor": self._sensor_id, **headers}
        try:
            self._conn.request("POST", self._target, body.encode("utf-8"), headers)
            response = self._conn.getresponse()
            code = response.status
            if server_send_logger.isEnabledFor(logging.DEBUG):
                text = response.read().decode("utf-8", "replace")
                server_send_logger.debug(f"http code: {code}")
                server_send_logger.debug(f"http response: {text}")
            else:
                response.read()
        except (OSError, http.client.HTTPException) as e:
            logger.error(f"Error on sending POST to {self._url}: {e}")
            return DeliveryOutcome(TRANSPORT_ERROR, False)
        finally:
            self._conn.close()

        return DeliveryOutcome(code, self._success(code))


class JsonHttpClient(HttpChannel):
    """Client for JSON destinations (sensordatavalues schema)."""

    def deliver(
        self, body: str, extra_headers: dict[str, str] | None = None
    ) -> DeliveryOutcome:
        """
        POST a JSON body.

        Args:
            body: Encoded JSON payload
            extra_headers: Per-payload headers (e.g. X-PIN)
        """
        headers = {
            "Content-Type": "application/json; charset=UTF-8",
            "Connection": "keep-alive",
        }
        if extra_headers:
            headers.update(extra_headers)
        return self._post(body, headers)


class InfluxClient(HttpChannel):
    """Client for the InfluxDB /write endpoint (line protocol)."""

    MEASUREMENT_HEADER = "X-Influx-Measurement"

    def __init__(
        self,
        url: str,
        sensor_id: str,
        measurement: str,
        user: str = "",
        password: str = "",
        ca_file: str | None = None,
        timeout: float = 10.0,
    ):
        super().__init__(
            url,
            sensor_id,
            success=accept_range(HTTP_OK, HTTP_ALREADY_REPORTED),
            ca_file=ca_file,
            timeout=timeout,
        )
        self._measurement = measurement
        self._auth = None
        if user or password:
            token = base64.b64encode(f"{user}:{password}".encode("utf-8"))
            self._auth = f"Basic {token.decode('ascii')}"

    def deliver(
        self, body: str, extra_headers: dict[str, str] | None = None
    ) -> DeliveryOutcome:
        """POST one line-protocol record."""
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            self.MEASUREMENT_HEADER: self._measurement,
        }
        if self._auth:
            headers["Authorization"] = self._auth
        if extra_headers:
            headers.update(extra_headers)

        outcome = self._post(body, headers)
        if outcome.ok:
            logger.debug(f"Sent to influx-db, status: ok, http: {outcome.code}")
        elif outcome.code != TRANSPORT_ERROR:
            logger.debug(f"Sent to influx-db, status: error, http: {outcome.code}")
        return outcome


# =============================================================================
# LoRaWAN
# =============================================================================


class LoRaWanClient:
    """Sends binary frames as unconfirmed uplinks, port = frame type tag."""

    def __init__(self, stack: LoRaWanStack):
        self._stack = stack

    def deliver(self, frame: bytes, kind: PayloadKind) -> DeliveryOutcome:
        try:
            code = int(self._stack.send(int(kind), frame, confirmed=False))
        except OSError as e:
            logger.error(f"LoRaWAN send error: {e}")
            code = int(TxStatus.UPLINK_FAILED)
        return DeliveryOutcome(code, code == TxStatus.UPLINK_SUCCESS)

    def poll(self) -> None:
        self._stack.poll()
