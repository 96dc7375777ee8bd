"""Test helpers: snapshots, a recording HTTP handler and a fake LoRaWAN stack."""

from dataclasses import dataclass
from email.message import Message
from http.server import BaseHTTPRequestHandler

from radio.base import LoRaWanStack, TxStatus
from utils.measurement import EnvironmentReading, MeasurementSnapshot


def make_snapshot(
    with_environment: bool = False, wifi_connected: bool = True, **overrides
) -> MeasurementSnapshot:
    """Helper to create a typical SBM-20 snapshot."""
    values = dict(
        tube_type="Radiation SBM-20",
        tube_index=2,
        interval_ms=150000,
        hv_pulses=17,
        counts=62,
        cpm=24,
        dose_rate=0.136,
        environment=None,
        wifi_connected=wifi_connected,
    )
    if with_environment:
        values["environment"] = EnvironmentReading(
            temperature=21.4, humidity=48.5, pressure=1003.2
        )
    values.update(overrides)
    return MeasurementSnapshot(**values)


@dataclass
class RecordedRequest:
    path: str
    headers: Message
    body: str


class RecordingHandler(BaseHTTPRequestHandler):
    """Records every POST and answers with the status configured for its path."""

    def do_POST(self) -> None:
        length = int(self.headers.get("Content-Length", 0))
        body = self.rfile.read(length).decode("utf-8")
        self.server.requests.append(RecordedRequest(self.path, self.headers, body))

        code = self.server.responses.get(self.path, 200)
        payload = b"" if code == 204 else b'{"result": "recorded"}'
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args) -> None:
        pass


class FakeStack(LoRaWanStack):
    """LoRaWanStack returning scripted TxStatus codes."""

    def __init__(self, codes=None):
        self.codes = list(codes) if codes else []
        self.default = TxStatus.UPLINK_SUCCESS
        self.sent: list[tuple[int, bytes, bool]] = []
        self.poll_count = 0
        self.closed = False

    def init(self) -> None:
        pass

    def send(self, port: int, data: bytes, confirmed: bool = False) -> int:
        self.sent.append((port, data, confirmed))
        return self.codes.pop(0) if self.codes else self.default

    def poll(self) -> None:
        self.poll_count += 1

    def close(self) -> None:
        self.closed = True
