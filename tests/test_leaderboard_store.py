from __future__ import annotations

import orjson
import pytest

from marathon.services.leaderboard_store import (
    KIOSK_FILENAME,
    LEGACY_FILENAME,
    LeaderboardRegistry,
    LeaderboardStore,
    kiosk_store,
    mode_filename,
)

MODES = ["rowing", "running", "cycling"]


@pytest.fixture
def store(tmp_path):
    s = LeaderboardStore(tmp_path / mode_filename("rowing"), "rowing")
    s.load()
    return s


@pytest.fixture
def registry(tmp_path):
    r = LeaderboardRegistry(tmp_path, MODES, legacy_mode="rowing")
    r.load()
    return r


def _read(path):
    return orjson.loads(path.read_bytes())


def test_missing_file_creates_empty_store(tmp_path):
    path = tmp_path / "leaderboard_rowing.json"
    s = LeaderboardStore(path, "rowing")
    s.load()

    assert len(s) == 0
    assert _read(path) == {"mode": "rowing", "entries": []}


def test_corrupt_file_is_replaced_with_empty_store(tmp_path):
    path = tmp_path / "leaderboard_rowing.json"
    path.write_bytes(b"{not json")
    s = LeaderboardStore(path, "rowing")
    s.load()

    assert len(s) == 0
    assert _read(path)["entries"] == []


def test_invalid_entries_are_skipped(tmp_path):
    path = tmp_path / "leaderboard_rowing.json"
    path.write_bytes(orjson.dumps({"entries": [
        {"username": "ali", "score": 10},
        {"username": "bob", "score": -4},
        {"username": "ALI", "score": 99},
        "garbage",
    ]}))
    s = LeaderboardStore(path, "rowing")
    s.load()

    assert [e.username for e in s.entries] == ["ali"]


def test_upsert_create_update_and_ignore_lower(store):
    created = store.upsert_if_higher("ali", 500, 500.0, 60.0, 1)
    assert created.created and not created.applied

    lower = store.upsert_if_higher("ALI", 300, 300.0, 50.0, 2)
    assert not lower.changed
    assert lower.previous_score == 500
    assert store.find("ali").station_id == 1

    higher = store.upsert_if_higher("Ali", 800, 800.0, 70.0, 2)
    assert higher.applied and not higher.created
    assert higher.previous_score == 500

    entry = store.find("ali")
    assert entry.username == "ali"
    assert (entry.score, entry.distance, entry.time, entry.station_id) == (800, 800.0, 70.0, 2)
    assert len(store) == 1


def test_equal_score_is_a_no_op(store):
    store.upsert_if_higher("ali", 500)
    before = store.find("ali").model_copy()

    for _ in range(3):
        result = store.upsert_if_higher("ali", 500, 1.0, 1.0)
        assert not result.changed

    assert store.find("ali") == before


def test_score_never_decreases_over_any_sequence(store):
    best = 0
    for score in [10, 3, 50, 49, 50, 7, 120, 0]:
        store.upsert_if_higher("ali", score)
        best = max(best, score)
        assert store.find("ali").score == best


def test_top_sorts_descending_with_stable_ties(store):
    store.upsert_if_higher("first", 100)
    store.upsert_if_higher("second", 300)
    store.upsert_if_higher("third", 100)
    store.upsert_if_higher("fourth", 200)

    top = store.top(10)
    assert [e["username"] for e in top] == ["second", "fourth", "first", "third"]
    assert [e["rank"] for e in top] == [1, 2, 3, 4]
    assert set(top[0]) == {"rank", "username", "score", "distance", "time"}


def test_top_limits_result(store):
    for i in range(15):
        store.upsert_if_higher(f"player{i}", i)
    top = store.top(10)
    assert len(top) == 10
    assert top[0]["score"] == 14


def test_every_mutation_is_persisted(store):
    store.upsert_if_higher("ali", 10, 10.0, 5.0, 3)
    on_disk = _read(store.path)["entries"]
    assert on_disk[0]["username"] == "ali"
    assert on_disk[0]["stationId"] == 3
    assert "createdAt" in on_disk[0] and "updatedAt" in on_disk[0]

    assert store.delete("ALI") is True
    assert _read(store.path)["entries"] == []
    assert store.delete("ali") is False


def test_reload_preserves_order_and_entries(store):
    store.upsert_if_higher("a", 5)
    store.upsert_if_higher("b", 5)
    reloaded = LeaderboardStore(store.path, "rowing")
    reloaded.load()
    assert [e["username"] for e in reloaded.top()] == ["a", "b"]


def test_write_failure_keeps_memory_state(store, monkeypatch):
    def boom(path, data):
        raise OSError("disk full")

    monkeypatch.setattr("marathon.services.leaderboard_store.write_json", boom)
    result = store.upsert_if_higher("ali", 42)

    assert result.created
    assert store.find("ali").score == 42
    assert store.save() is False


def test_registry_modes_are_independent(registry):
    registry.upsert_if_higher("rowing", "ali", 100)
    registry.upsert_if_higher("cycling", "ali", 5)

    assert registry.find_by_username("rowing", "ALI").score == 100
    assert registry.find_by_username("running", "ali") is None
    assert registry.exists_across_modes("Ali") == {"rowing", "cycling"}
    assert registry.counts() == {"rowing": 1, "running": 0, "cycling": 1}


def test_registry_unknown_mode(registry):
    assert not registry.has_mode("swimming")
    assert not registry.has_mode(None)
    with pytest.raises(KeyError):
        registry.top("swimming")


def test_registry_clear(registry):
    registry.upsert_if_higher("running", "a", 1)
    registry.upsert_if_higher("running", "b", 2)
    assert registry.clear("running") == 2
    assert registry.top("running") == []


def test_legacy_file_migrates_into_default_mode(tmp_path):
    (tmp_path / LEGACY_FILENAME).write_bytes(orjson.dumps([
        {"username": "old", "score": 900, "distance": 900, "time": 120},
    ]))
    r = LeaderboardRegistry(tmp_path, MODES, legacy_mode="rowing")
    r.load()

    assert r.find_by_username("rowing", "old").score == 900
    assert _read(tmp_path / mode_filename("rowing"))["entries"][0]["username"] == "old"
    assert r.find_by_username("running", "old") is None


def test_legacy_file_ignored_once_mode_file_exists(tmp_path):
    (tmp_path / mode_filename("rowing")).write_bytes(orjson.dumps({"entries": []}))
    (tmp_path / LEGACY_FILENAME).write_bytes(orjson.dumps([{"username": "old", "score": 1}]))
    r = LeaderboardRegistry(tmp_path, MODES, legacy_mode="rowing")
    r.load()

    assert r.find_by_username("rowing", "old") is None


def test_kiosk_store_is_a_flat_list(tmp_path):
    s = kiosk_store(tmp_path)
    s.load()
    s.upsert_if_higher("ali", 12, 12.4, 30.0)

    raw = _read(tmp_path / KIOSK_FILENAME)
    assert isinstance(raw, list)
    assert raw[0]["username"] == "ali"
    assert s.total_distance() == pytest.approx(12.4)
