"""
Transmitter configuration.

Loaded once at startup from config/transmitter_config.json and frozen; the
dispatcher and channel clients receive it explicitly.

{
    "device_id": "ESP32-51564452",
    "software_version": "V1.16.0",
    "post_delivery_pause_sec": 0.3,
    "ca_file": null,
    "custom_server": {"enabled": false, "url": "https://example.org/post"},
    "madavi": {"enabled": true},
    "sensor_community": {"enabled": true},
    "lora": {
        "enabled": false,
        "port": "/dev/ttyS0",
        "baudrate": 57600,
        "appeui": "70B3D57ED0000000",
        "poll_interval_sec": 0.01
    },
    "influx": {
        "enabled": false,
        "server": "influx.local",
        "port": 8086,
        "path": "/write?db=geiger",
        "measurement": "geiger",
        "user": "",
        "password": ""
    },
    "display": {"enabled": false, "i2c_port": 1, "i2c_address": 60}
}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from utils.protocol import parse_lora_version

MADAVI_URL = "http://api-rrd.madavi.de/data.php"
SENSOR_COMMUNITY_URL = "http://api.sensor.community/v1/push-sensor-data/"

DEFAULT_POST_DELIVERY_PAUSE_SEC = 0.3


class ProtocolFamily(Enum):
    JSON_HTTP = "json_http"
    JSON_HTTP_NAMED = "json_http_named"


@dataclass(frozen=True)
class DestinationConfig:
    """An HTTP JSON destination."""

    enabled: bool
    url: str
    family: ProtocolFamily = ProtocolFamily.JSON_HTTP


@dataclass(frozen=True)
class LoRaConfig:
    enabled: bool = False
    port: str = "/dev/ttyS0"
    baudrate: int = 57600
    appeui: str = ""
    poll_interval_sec: float = 0.01
    tx_timeout_sec: float = 15.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.appeui)


@dataclass(frozen=True)
class InfluxConfig:
    enabled: bool = False
    server: str = ""
    port: int = 8086
    path: str = "/write?db=geiger"
    measurement: str = "geiger"
    user: str = ""
    password: str = ""

    @property
    def url(self) -> str:
        """
        Server may carry its own scheme and port; bare host names use http
        and the configured port.
        """
        base = self.server.rstrip("/")
        if not base.startswith(("http://", "https://")):
            base = f"http://{base}"
        if urlsplit(base).port is None:
            base = f"{base}:{self.port}"
        path = self.path if self.path.startswith("/") else f"/{self.path}"
        return f"{base}{path}"


@dataclass(frozen=True)
class DisplayConfig:
    enabled: bool = False
    i2c_port: int = 1
    i2c_address: int = 0x3C
    refresh_interval: float = 0.5
    advance_switch_pin: int | None = None


@dataclass(frozen=True)
class TransmissionConfig:
    """Immutable configuration for one transmitter process."""

    device_id: str
    software_version: str
    custom_server: DestinationConfig
    madavi: DestinationConfig
    sensor_community: DestinationConfig
    lora: LoRaConfig = field(default_factory=LoRaConfig)
    influx: InfluxConfig = field(default_factory=InfluxConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    post_delivery_pause_sec: float = DEFAULT_POST_DELIVERY_PAUSE_SEC
    ca_file: str | None = None

    @property
    def sensor_id(self) -> str:
        """Device id as sent in X-Sensor (sensor.community wants "esp32-...")."""
        return self.device_id.replace("ESP32", "esp32")

    @property
    def lora_version(self) -> int:
        return parse_lora_version(self.software_version)

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> "TransmissionConfig":
        """Build from the parsed JSON config file. Missing sections are disabled."""
        device_id = config.get("device_id")
        if not device_id:
            raise ValueError("device_id not configured")

        custom = config.get("custom_server", {})
        if custom.get("enabled", False) and not custom.get("url"):
            raise ValueError("custom_server enabled but no url configured")

        madavi = config.get("madavi", {})
        scomm = config.get("sensor_community", {})
        lora = config.get("lora", {})
        influx = config.get("influx", {})
        if influx.get("enabled", False) and not influx.get("server"):
            raise ValueError("influx enabled but no server configured")
        display = config.get("display", {})

        transmission_config = cls(
            device_id=device_id,
            software_version=config.get("software_version", "V0.0.0"),
            custom_server=DestinationConfig(
                enabled=custom.get("enabled", False),
                url=custom.get("url", ""),
            ),
            madavi=DestinationConfig(
                enabled=madavi.get("enabled", False),
                url=madavi.get("url", MADAVI_URL),
                family=ProtocolFamily.JSON_HTTP_NAMED,
            ),
            sensor_community=DestinationConfig(
                enabled=scomm.get("enabled", False),
                url=scomm.get("url", SENSOR_COMMUNITY_URL),
            ),
            lora=LoRaConfig(
                enabled=lora.get("enabled", False),
                port=lora.get("port", "/dev/ttyS0"),
                baudrate=lora.get("baudrate", 57600),
                appeui=lora.get("appeui", ""),
                poll_interval_sec=lora.get("poll_interval_sec", 0.01),
                tx_timeout_sec=lora.get("tx_timeout_sec", 15.0),
            ),
            influx=InfluxConfig(
                enabled=influx.get("enabled", False),
                server=influx.get("server", ""),
                port=influx.get("port", 8086),
                path=influx.get("path", "/write?db=geiger"),
                measurement=influx.get("measurement", "geiger"),
                user=influx.get("user", ""),
                password=influx.get("password", ""),
            ),
            display=DisplayConfig(
                enabled=display.get("enabled", False),
                i2c_port=display.get("i2c_port", 1),
                i2c_address=display.get("i2c_address", 0x3C),
                refresh_interval=display.get("refresh_interval", 0.5),
                advance_switch_pin=display.get("advance_switch_pin"),
            ),
            post_delivery_pause_sec=config.get(
                "post_delivery_pause_sec", DEFAULT_POST_DELIVERY_PAUSE_SEC
            ),
            ca_file=config.get("ca_file"),
        )

        if transmission_config.influx.enabled:
            try:
                urlsplit(transmission_config.influx.url).port
            except ValueError as e:
                raise ValueError(
                    f"influx server '{transmission_config.influx.server}' is not a valid "
                    f"host[:port]: {e}"
                ) from e
        return transmission_config


def load_config(config_path: str) -> dict:
    """Load transmitter configuration from JSON file."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        return json.load(f)
