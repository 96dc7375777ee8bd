"""
Transmission package - delivers measurement cycles to telemetry backends.

This package contains:
- config: Immutable transmitter configuration
- clients: HTTP JSON, InfluxDB and LoRaWAN channel clients
- dispatcher: Per-cycle delivery across all enabled destinations
- server: Runner reading snapshots and polling the radio
"""

from transmission.clients import (
    DeliveryOutcome,
    InfluxClient,
    JsonHttpClient,
    LoRaWanClient,
)
from transmission.config import TransmissionConfig, load_config
from transmission.dispatcher import Dispatcher, build_dispatcher

__all__ = [
    "DeliveryOutcome",
    "Dispatcher",
    "InfluxClient",
    "JsonHttpClient",
    "LoRaWanClient",
    "TransmissionConfig",
    "build_dispatcher",
    "load_config",
]
