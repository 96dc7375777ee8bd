"""Tests for per-cycle dispatch across destinations."""

import itertools
import json
import logging

import pytest

from helpers import make_snapshot
from radio.base import TxStatus
from transmission.clients import DeliveryOutcome
from transmission.config import TransmissionConfig
from transmission.dispatcher import (
    CUSTOM_SERVER,
    DESTINATION_ORDER,
    INFLUX,
    MADAVI,
    SENSOR_COMMUNITY,
    TTN,
    Destination,
    Dispatcher,
    build_dispatcher,
)
from utils.destination_state import DestinationState, StatusBoard


def make_config(
    server, wifi_paths=True, lora=True, influx=True, appeui="70B3D57ED0000000", **overrides
):
    """All destinations pointing at the local test server."""
    port = server.server_address[1]
    config = {
        "device_id": "ESP32-51564452",
        "software_version": "V1.16.0",
        "custom_server": {"enabled": wifi_paths, "url": f"{server.base_url}/custom"},
        "madavi": {"enabled": wifi_paths, "url": f"{server.base_url}/madavi"},
        "sensor_community": {"enabled": wifi_paths, "url": f"{server.base_url}/scomm"},
        "lora": {"enabled": lora, "appeui": appeui},
        "influx": {
            "enabled": influx,
            "server": "http://127.0.0.1",
            "port": port,
            "path": "/write?db=geiger",
        },
    }
    config.update(overrides)
    return TransmissionConfig.from_dict(config)


class Sleeper:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def backend(http_server):
    """Local server answering every destination with its success code."""
    http_server.responses["/scomm"] = 201
    return http_server


@pytest.fixture
def sleeper():
    return Sleeper()


def requests_to(server, path):
    return [r for r in server.requests if r.path == path]


def states(board):
    return {name: status.state for name, status in board.snapshot().items()}


class TestScenarios:
    def test_all_succeed_without_environment(self, backend, fake_stack, sleeper):
        board = StatusBoard()
        dispatcher = build_dispatcher(make_config(backend), board, fake_stack, sleep=sleeper)

        results = dispatcher.transmit(make_snapshot())

        assert [r.name for r in results] == list(DESTINATION_ORDER)
        assert all(r.ok for r in results)
        assert set(states(board).values()) == {DestinationState.IDLE}
        for result in results:
            assert result.codes[1] is None
        for path in ("/custom", "/madavi", "/scomm", "/write?db=geiger"):
            assert len(requests_to(backend, path)) == 1
        assert [port for port, _, _ in fake_stack.sent] == [1]

    def test_community_wrong_success_code(self, http_server, fake_stack, sleeper):
        board = StatusBoard()
        dispatcher = build_dispatcher(
            make_config(http_server), board, fake_stack, sleep=sleeper
        )

        dispatcher.transmit(make_snapshot())

        assert board.get(SENSOR_COMMUNITY).state is DestinationState.ERROR
        assert board.get(SENSOR_COMMUNITY).codes == (200, None)
        for name in (CUSTOM_SERVER, MADAVI, TTN, INFLUX):
            assert board.get(name).state is DestinationState.IDLE

    def test_no_wifi_skips_http_but_not_lora(self, backend, fake_stack, sleeper):
        board = StatusBoard()
        dispatcher = build_dispatcher(make_config(backend), board, fake_stack, sleep=sleeper)

        results = dispatcher.transmit(make_snapshot(wifi_connected=False))

        assert [r.name for r in results] == [TTN]
        assert backend.requests == []
        assert board.get(TTN).state is DestinationState.IDLE
        for name in (CUSTOM_SERVER, MADAVI, SENSOR_COMMUNITY, INFLUX):
            assert board.get(name).state is DestinationState.INIT
        assert sleeper.calls == []

    def test_no_wifi_leaves_previous_status(self, backend, fake_stack, sleeper):
        board = StatusBoard()
        dispatcher = build_dispatcher(make_config(backend), board, fake_stack, sleep=sleeper)
        dispatcher.transmit(make_snapshot())
        before = board.snapshot()

        dispatcher.transmit(make_snapshot(wifi_connected=False))

        for name in (CUSTOM_SERVER, MADAVI, SENSOR_COMMUNITY, INFLUX):
            assert board.get(name) == before[name]

    def test_influx_single_line_with_environment(self, backend, sleeper):
        backend.responses["/write?db=geiger"] = 204
        board = StatusBoard()
        config = make_config(backend, wifi_paths=False, lora=False)
        dispatcher = build_dispatcher(config, board, sleep=sleeper)

        dispatcher.transmit(make_snapshot(with_environment=True))

        writes = requests_to(backend, "/write?db=geiger")
        assert len(writes) == 1
        assert "temperature=21.400000" in writes[0].body
        assert board.get(INFLUX).state is DestinationState.IDLE
        assert board.get(INFLUX).codes == (204, None)


class TestEnvironmentPayloads:
    def test_second_call_per_json_destination(self, backend, fake_stack, sleeper):
        board = StatusBoard()
        dispatcher = build_dispatcher(make_config(backend), board, fake_stack, sleep=sleeper)

        results = dispatcher.transmit(make_snapshot(with_environment=True))

        for path in ("/custom", "/madavi", "/scomm"):
            assert len(requests_to(backend, path)) == 2
        assert {r.name: r.codes for r in results}[SENSOR_COMMUNITY] == (201, 201)
        assert [port for port, _, _ in fake_stack.sent] == [1, 2]

    def test_sensor_community_xpins(self, backend, sleeper):
        config = make_config(backend, lora=False, influx=False)
        dispatcher = build_dispatcher(config, StatusBoard(), sleep=sleeper)

        dispatcher.transmit(make_snapshot(with_environment=True))

        pins = [r.headers["X-PIN"] for r in requests_to(backend, "/scomm")]
        assert pins == ["19", "11"]
        assert requests_to(backend, "/madavi")[0].headers["X-PIN"] is None

    def test_madavi_names_values_by_tube(self, backend, sleeper):
        config = make_config(backend, lora=False, influx=False)
        dispatcher = build_dispatcher(config, StatusBoard(), sleep=sleeper)

        dispatcher.transmit(make_snapshot(with_environment=True))

        geiger, environment = requests_to(backend, "/madavi")
        geiger_names = [v["value_type"] for v in json.loads(geiger.body)["sensordatavalues"]]
        env_names = [v["value_type"] for v in json.loads(environment.body)["sensordatavalues"]]
        assert geiger_names[0] == "SBM-20_counts_per_minute"
        assert env_names[0] == "BME280_temperature"

    def test_sensor_id_header(self, backend, sleeper):
        config = make_config(backend, lora=False, influx=False)
        build_dispatcher(config, StatusBoard(), sleep=sleeper).transmit(make_snapshot())
        assert {r.headers["X-Sensor"] for r in backend.requests} == {"esp32-51564452"}

    def test_secondary_failure_marks_error(self, backend, fake_stack, sleeper):
        fake_stack.codes = [TxStatus.UPLINK_SUCCESS, TxStatus.BUSY]
        board = StatusBoard()
        dispatcher = build_dispatcher(
            make_config(backend, wifi_paths=False, influx=False),
            board,
            fake_stack,
            sleep=sleeper,
        )

        dispatcher.transmit(make_snapshot(with_environment=True))

        assert board.get(TTN).state is DestinationState.ERROR
        assert board.get(TTN).codes == (TxStatus.UPLINK_SUCCESS, TxStatus.BUSY)


class TestBuildDispatcher:
    def test_disabled_destinations_off(self, backend, sleeper):
        board = StatusBoard()
        config = make_config(backend, wifi_paths=False, lora=False)
        dispatcher = build_dispatcher(config, board, sleep=sleeper)

        assert [d.name for d in dispatcher.destinations] == [INFLUX]
        assert list(board.snapshot()) == list(DESTINATION_ORDER)
        for name in (CUSTOM_SERVER, MADAVI, SENSOR_COMMUNITY, TTN):
            assert board.get(name).state is DestinationState.OFF
        assert board.get(INFLUX).state is DestinationState.INIT

    def test_lora_without_stack_is_off(self, backend, sleeper):
        board = StatusBoard()
        build_dispatcher(make_config(backend), board, None, sleep=sleeper)
        assert board.get(TTN).state is DestinationState.OFF

    def test_lora_without_credentials_skipped(self, backend, fake_stack, sleeper):
        board = StatusBoard()
        config = make_config(backend, wifi_paths=False, influx=False, appeui="")
        dispatcher = build_dispatcher(config, board, fake_stack, sleep=sleeper)

        assert dispatcher.transmit(make_snapshot()) == []
        assert fake_stack.sent == []
        assert board.get(TTN).state is DestinationState.INIT

    def test_pause_after_madavi_and_community(self, backend, sleeper):
        config = make_config(backend, lora=False, influx=False)
        build_dispatcher(config, StatusBoard(), sleep=sleeper).transmit(make_snapshot())
        assert sleeper.calls == [0.3, 0.3]

    def test_pause_applied_after_failure(self, http_server, sleeper):
        http_server.responses["/madavi"] = 500
        config = make_config(http_server, lora=False, influx=False)
        build_dispatcher(config, StatusBoard(), sleep=sleeper).transmit(make_snapshot())
        assert sleeper.calls == [0.3, 0.3]

    def test_zero_pause_never_sleeps(self, backend, sleeper):
        config = make_config(backend, lora=False, influx=False, post_delivery_pause_sec=0)
        build_dispatcher(config, StatusBoard(), sleep=sleeper).transmit(make_snapshot())
        assert sleeper.calls == []

    def test_log_lines(self, backend, sleeper, caplog):
        config = make_config(backend, lora=False, influx=False)
        dispatcher = build_dispatcher(config, StatusBoard(), sleep=sleeper)
        with caplog.at_level(logging.INFO, logger="transmission.dispatcher"):
            dispatcher.transmit(make_snapshot())
        assert "Sending to Madavi ..." in caplog.messages
        assert "Sent to Madavi, status: ok, http: 200, -" in caplog.messages

    def test_influx_server_carrying_port(self, backend, sleeper):
        board = StatusBoard()
        config = TransmissionConfig.from_dict(
            {
                "device_id": "ESP32-1",
                "influx": {
                    "enabled": True,
                    "server": f"127.0.0.1:{backend.server_address[1]}",
                    "path": "/write?db=geiger",
                },
            }
        )
        dispatcher = build_dispatcher(config, board, sleep=sleeper)

        dispatcher.transmit(make_snapshot())

        assert len(requests_to(backend, "/write?db=geiger")) == 1
        assert board.get(INFLUX).state is DestinationState.IDLE


# =============================================================================
# Independence between destinations
# =============================================================================


OK, FAIL, RAISE, SKIP = "ok", "fail", "raise", "skip"


class ScriptedDestination(Destination):
    """Destination whose behavior is fixed by a single outcome keyword."""

    def __init__(self, name, outcome, pause_after=0.0):
        super().__init__(name, pause_after)
        self.outcome = outcome
        self.calls = 0

    def precondition(self, snapshot):
        return self.outcome != SKIP

    def deliver(self, snapshot):
        self.calls += 1
        if self.outcome == RAISE:
            raise RuntimeError("channel exploded")
        if self.outcome == OK:
            return DeliveryOutcome(200, True), None
        return DeliveryOutcome(500, False), None


EXPECTED_STATE = {
    OK: DestinationState.IDLE,
    FAIL: DestinationState.ERROR,
    RAISE: DestinationState.ERROR,
    SKIP: DestinationState.INIT,
}


class TestIndependence:
    @pytest.mark.parametrize(
        "outcomes", list(itertools.product([OK, FAIL, RAISE, SKIP], repeat=3))
    )
    def test_status_depends_only_on_own_outcome(self, outcomes):
        board = StatusBoard()
        destinations = [
            ScriptedDestination(name, outcome)
            for name, outcome in zip(("A", "B", "C"), outcomes)
        ]
        dispatcher = Dispatcher(destinations, board, sleep=lambda s: None)

        results = dispatcher.transmit(make_snapshot())

        for destination in destinations:
            assert board.get(destination.name).state is EXPECTED_STATE[destination.outcome]
            assert destination.calls == (0 if destination.outcome == SKIP else 1)
        assert [r.name for r in results] == [
            d.name for d in destinations if d.outcome != SKIP
        ]

    def test_exception_recorded_without_codes(self):
        board = StatusBoard()
        dispatcher = Dispatcher([ScriptedDestination("A", RAISE)], board)
        (result,) = dispatcher.transmit(make_snapshot())
        assert not result.ok
        assert board.get("A").codes == (None, None)

    def test_repeated_cycles_recover(self):
        board = StatusBoard()
        destination = ScriptedDestination("A", FAIL)
        dispatcher = Dispatcher([destination], board)

        dispatcher.transmit(make_snapshot())
        assert board.get("A").state is DestinationState.ERROR
        destination.outcome = OK
        dispatcher.transmit(make_snapshot())
        assert board.get("A").state is DestinationState.IDLE


class StateRecordingDestination(Destination):
    """Reads its own status from the board while delivering."""

    def __init__(self, name, board, with_secondary=False):
        super().__init__(name)
        self.board = board
        self.with_secondary = with_secondary
        self.seen = []

    def precondition(self, snapshot):
        return True

    def deliver(self, snapshot):
        self.seen.append(self.board.get(self.name).state)
        secondary = None
        if self.with_secondary:
            self.seen.append(self.board.get(self.name).state)
            secondary = DeliveryOutcome(200, True)
        return DeliveryOutcome(200, True), secondary


class TestStatusDuringDelivery:
    def test_sending_while_delivering(self):
        board = StatusBoard()
        destination = StateRecordingDestination("A", board, with_secondary=True)
        Dispatcher([destination], board).transmit(make_snapshot())

        assert destination.seen == [DestinationState.SENDING, DestinationState.SENDING]
        assert board.get("A").state is DestinationState.IDLE

    def test_sending_again_after_error(self):
        board = StatusBoard()
        failing = ScriptedDestination("A", FAIL)
        Dispatcher([failing], board).transmit(make_snapshot())
        assert board.get("A").state is DestinationState.ERROR

        recording = StateRecordingDestination("A", board)
        Dispatcher([recording], board).transmit(make_snapshot())
        assert recording.seen == [DestinationState.SENDING]


class TestPoll:
    def test_poll_without_lora_is_noop(self):
        Dispatcher([], StatusBoard()).poll()

    def test_idle_poll_changes_nothing(self, backend, fake_stack, sleeper):
        board = StatusBoard()
        dispatcher = build_dispatcher(make_config(backend), board, fake_stack, sleep=sleeper)
        before = board.snapshot()

        for _ in range(5):
            dispatcher.poll()

        assert fake_stack.poll_count == 5
        assert fake_stack.sent == []
        assert backend.requests == []
        assert board.snapshot() == before
