from __future__ import annotations

import time

import orjson
import pytest

from marathon.services.kiosk_service import KioskService, distance_score
from marathon.services.leaderboard_store import kiosk_store
from marathon.services.mqtt_manager import InboundMessage

WRITE = "MarathonFM/leaderboard/write"
CHECK_LEFT = "MarathonFM/leaderboard/left/checkname"
CHECK_RIGHT = "MarathonFM/leaderboard/right/checkname"


@pytest.fixture
def store(tmp_path):
    s = kiosk_store(tmp_path)
    s.load()
    return s


@pytest.fixture
def kiosk(connected, store):
    return KioskService(connected, store)


def _send(kiosk, topic, payload):
    raw = payload if isinstance(payload, bytes) else orjson.dumps(payload)
    return kiosk.handle(kiosk.router.resolve(topic), InboundMessage(topic, raw, time.time()))


@pytest.mark.parametrize("distance, score", [(0, 0), (12.4, 12), (12.5, 13), (99.99, 100), (-3, 0)])
def test_score_is_rounded_distance(distance, score):
    assert distance_score(distance) == score


def test_write_creates_then_only_raises(kiosk, store, broker):
    _send(kiosk, WRITE, {"username": "ali", "distance": 250.6, "time": 60})
    _send(kiosk, WRITE, {"username": "ALI", "distance": 100, "time": 30})
    assert store.find("ali").score == 251
    assert store.find("ali").time == 60

    _send(kiosk, WRITE, {"username": "ali", "distance": 400.2, "time": 90})
    assert store.find("ali").score == 400
    assert store.find("ali").distance == pytest.approx(400.2)

    # writes are fire-and-forget
    assert broker.client.published == []


@pytest.mark.parametrize("payload", [
    {"distance": 10},
    {"username": "", "distance": 10},
    {"username": "xxbitchxx", "distance": 10},
    {"username": "ali", "distance": "far"},
])
def test_rejected_writes_leave_store_untouched(kiosk, store, payload):
    _send(kiosk, WRITE, payload)
    assert len(store) == 0


def test_write_notifies_on_change(connected, store):
    changes = []
    kiosk = KioskService(connected, store, on_change=lambda: changes.append(1))
    _send(kiosk, WRITE, {"username": "ali", "distance": 10})
    _send(kiosk, WRITE, {"username": "ali", "distance": 5})
    assert changes == [1]


def test_checkname_answers_on_its_side(kiosk, broker):
    _send(kiosk, WRITE, {"username": "ali", "distance": 10})
    left = _send(kiosk, CHECK_LEFT, {"username": "Ali"})
    right = _send(kiosk, CHECK_RIGHT, {"username": "omar"})

    assert left == {"success": True, "username": "Ali", "isUnique": False, "exists": True}
    assert right == {"success": True, "username": "omar", "isUnique": True, "exists": False}
    assert broker.client.messages(CHECK_LEFT + "/response") == [left]
    assert broker.client.messages(CHECK_RIGHT + "/response") == [right]


def test_checkname_blocked_name_looks_taken(kiosk):
    response = _send(kiosk, CHECK_RIGHT, {"username": "Sh17head"})
    assert response == {"success": True, "username": "Sh17head", "isUnique": False, "exists": True}


def test_checkname_missing_username(kiosk):
    assert _send(kiosk, CHECK_LEFT, {}) == {"success": False, "error": "Missing username"}


def test_top10_broadcast(kiosk, broker):
    for name, distance in [("a", 100), ("b", 300), ("c", 200)]:
        _send(kiosk, WRITE, {"username": name, "distance": distance})
    kiosk.broadcast_top10()

    [message] = broker.client.messages("MarathonFM/leaderboard/top10")
    assert message["messageType"] == "LEADERBOARD_UPDATE"
    assert [e["username"] for e in message["leaderboard"]] == ["b", "c", "a"]
    assert message["totalDistances"] == 600


def test_kiosk_is_independent_from_main_leaderboards(kiosk, tmp_path):
    _send(kiosk, WRITE, {"username": "ali", "distance": 10})
    assert not (tmp_path / "leaderboard_rowing.json").exists()
