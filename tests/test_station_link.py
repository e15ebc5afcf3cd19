from __future__ import annotations

import time

import orjson
import pytest

from marathon.models.envelope import Countdown, GameState, MachineData, StartGame
from marathon.services.dispatch import EnvelopeHandler, dispatch
from marathon.services.mqtt_manager import InboundMessage
from marathon.services.station_link import StationLink


class Recorder(EnvelopeHandler):
    def __init__(self):
        self.calls = []

    def on_start_game(self, msg, route):
        self.calls.append(("start", msg.player_name, route.station_id))

    def on_machine_data(self, msg, route):
        self.calls.append(("machine", msg.speed))

    def on_game_config(self, msg, route):
        self.calls.append(("config", sorted(msg.modes)))

    def on_unrecognized(self, msg, route):
        self.calls.append(("unknown", msg.kind))

    def on_raw(self, topic, payload):
        self.calls.append(("raw", topic, payload))


def _msg(topic, payload):
    raw = payload if isinstance(payload, bytes) else orjson.dumps(payload)
    return InboundMessage(topic, raw, time.time())


@pytest.fixture
def handler():
    return Recorder()


@pytest.fixture
def game_link(connected, handler):
    link = StationLink(connected, handler, role="game", station_id=1, raw_topics=["rower/raw"])
    link.attach()
    return link


def test_role_topics(connected, handler):
    game = StationLink(connected, handler, role="game", station_id=1, raw_topics=["rower/raw", ""])
    tablet = StationLink(connected, handler, role="tablet", station_id=1)
    machine = StationLink(connected, handler, role="machine")

    assert game.topics == [
        "marathon/station1/tablet/command",
        "marathon/station1/machine/data",
        "marathon/config/broadcast",
        "marathon/station1/config",
        "rower/raw",
    ]
    assert tablet.topics == [
        "marathon/station1/game/data",
        "marathon/station1/game/state",
        "marathon/config/broadcast",
        "marathon/station1/config",
    ]
    assert machine.topics == ["marathon/config/broadcast"]


def test_unknown_role(connected, handler):
    with pytest.raises(ValueError):
        StationLink(connected, handler, role="referee")


def test_attach_subscribes(game_link, connected):
    assert "marathon/station1/tablet/command" in connected.subscriptions
    game_link.detach()
    assert connected.subscriptions == set()


def test_envelopes_are_dispatched_by_kind(game_link, handler):
    game_link.handle(_msg("marathon/station1/tablet/command", {"messageType": "START_GAME", "playerName": "ali"}))
    game_link.handle(_msg("marathon/station1/machine/data", {"messageType": "MACHINE_DATA", "speed": 3.5}))
    game_link.handle(_msg("marathon/config/broadcast", {"messageType": "GAME_CONFIG", "gameModes": {
        "rowing": {"routeDistance": 1600, "timeLimit": 300},
    }}))
    game_link.handle(_msg("marathon/station1/tablet/command", {"messageType": "HIGH_FIVE"}))

    assert handler.calls == [
        ("start", "ali", 1),
        ("machine", 3.5),
        ("config", ["rowing"]),
        ("unknown", "HIGH_FIVE"),
    ]


def test_other_stations_are_ignored(game_link, handler):
    game_link.handle(_msg("marathon/station2/tablet/command", {"messageType": "START_GAME", "playerName": "bob"}))
    assert handler.calls == []


def test_raw_machine_topic(game_link, handler):
    game_link.handle(_msg("rower/raw", b"42.0,18"))
    assert handler.calls == [("raw", "rower/raw", b"42.0,18")]


def test_malformed_envelope_is_dropped(game_link, handler):
    assert game_link.handle(_msg("marathon/station1/tablet/command", b"??")) is None
    assert game_link.handle(_msg("marathon/station1/tablet/command", {"playerName": "x"})) is None
    assert handler.calls == []


def test_send_picks_topic_from_kind(connected, broker, handler):
    game = StationLink(connected, handler, role="game", station_id=4)
    assert game.send(Countdown(value=2))
    assert game.send(GameState(state="playing"))

    tablet = StationLink(connected, handler, role="tablet", station_id=4)
    tablet.send(StartGame(player_name="ali", game_mode="running"))

    machine = StationLink(connected, handler, role="machine")
    machine.send(MachineData(speed=2.0))

    assert broker.client.topics() == [
        "marathon/station4/game/data",
        "marathon/station4/game/state",
        "marathon/station4/tablet/command",
        "marathon/machine/data",
    ]
    assert broker.client.messages("marathon/station4/game/data")[0]["countdownValue"] == 2


def test_set_station_moves_subscriptions(game_link, connected):
    game_link.set_station(2)
    subs = connected.subscriptions
    assert "marathon/station2/tablet/command" in subs
    assert "marathon/station1/tablet/command" not in subs


def test_default_handler_ignores_everything():
    assert dispatch(StartGame(player_name="x"), EnvelopeHandler()) is None
