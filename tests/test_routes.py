import orjson
import pytest

pytest.importorskip("httpx", reason="httpx requis pour les tests client FastAPI")

from fastapi.testclient import TestClient

from marathon.config.settings import Settings
from marathon.main import create_app
from marathon.services.runtime import ServiceRuntime

TOKEN = "test-admin-token"


def _auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
def data_dir(tmp_path):
    (tmp_path / "leaderboard_rowing.json").write_bytes(orjson.dumps({"mode": "rowing", "entries": [
        {"username": "ali", "score": 800, "distance": 800, "time": 70},
        {"username": "bob", "score": 300, "distance": 300, "time": 90},
    ]}))
    (tmp_path / "fm-leaderboard.json").write_bytes(orjson.dumps([
        {"username": "kim", "score": 120, "distance": 120.4, "time": 40},
    ]))
    return tmp_path


@pytest.fixture
def client(manager, game_config, data_dir):
    runtime = ServiceRuntime(manager, game_config, data_dir, config_path=data_dir / "config.json")
    app_settings = Settings(ADMIN_TOKEN=TOKEN, DATA_DIR=str(data_dir), _env_file=None)
    app = create_app(runtime, app_settings=app_settings, connect=False)
    with TestClient(app) as c:
        yield c


def test_root(client):
    assert client.get("/").json() == {"ok": True, "service": "marathon-backend"}


def test_health(client):
    body = client.get("/health").json()
    assert body["ok"] is True
    assert body["mqtt"]["state"] == "disconnected"
    assert body["stores"] == {"rowing": 2, "running": 0, "cycling": 0, "kiosk": 1}


def test_mode_leaderboard(client):
    body = client.get("/leaderboard/rowing").json()
    assert body["gameMode"] == "rowing"
    assert [e["username"] for e in body["entries"]] == ["ali", "bob"]
    assert body["entries"][0]["rank"] == 1

    assert len(client.get("/leaderboard/rowing?limit=1").json()["entries"]) == 1
    assert client.get("/leaderboard/rowing?limit=0").status_code == 422


def test_unknown_mode_is_404(client):
    assert client.get("/leaderboard/golf").status_code == 404


def test_all_leaderboards(client):
    body = client.get("/leaderboard").json()
    assert set(body["leaderboards"]) == {"rowing", "running", "cycling"}


def test_kiosk_leaderboard(client):
    body = client.get("/kiosk/leaderboard").json()
    assert body["leaderboard"][0]["username"] == "kim"
    assert body["totalDistances"] == pytest.approx(120.4)


def test_stream_sends_current_state_first(client):
    response = client.get("/leaderboard/stream?max_events=1")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")

    head, data = response.text.strip().split("\n", 1)
    assert head == "event: leaderboard"
    payload = orjson.loads(data[len("data: "):])
    assert payload["leaderboards"]["rowing"][0]["username"] == "ali"


@pytest.mark.parametrize("headers, status", [
    ({}, 401),
    ({"Authorization": "Bearer nope"}, 403),
])
def test_admin_requires_token(client, headers, status):
    assert client.post("/admin/leaderboard/rowing/clear", headers=headers).status_code == status
    assert client.get("/leaderboard/rowing").json()["entries"]


def test_admin_delete_entry(client, data_dir):
    response = client.delete("/admin/leaderboard/rowing/ALI", headers=_auth_headers())
    assert response.status_code == 200
    assert [e["username"] for e in client.get("/leaderboard/rowing").json()["entries"]] == ["bob"]

    on_disk = orjson.loads((data_dir / "leaderboard_rowing.json").read_bytes())
    assert [e["username"] for e in on_disk["entries"]] == ["bob"]

    assert client.delete("/admin/leaderboard/rowing/ali", headers=_auth_headers()).status_code == 404
    assert client.delete("/admin/leaderboard/golf/ali", headers=_auth_headers()).status_code == 404


def test_admin_clear(client):
    response = client.post("/admin/leaderboard/rowing/clear", headers=_auth_headers())
    assert response.json() == {"ok": True, "gameMode": "rowing", "removed": 2}
    assert client.get("/leaderboard/rowing").json()["entries"] == []


def test_admin_kiosk(client):
    assert client.delete("/admin/kiosk/KIM", headers=_auth_headers()).status_code == 200
    assert client.delete("/admin/kiosk/kim", headers=_auth_headers()).status_code == 404
    assert client.post("/admin/kiosk/clear", headers=_auth_headers()).json()["removed"] == 0


def test_admin_reload_config(client, data_dir):
    (data_dir / "config.json").write_bytes(orjson.dumps({"gameModes": {
        "rowing": {"routeDistance": 500, "timeLimit": 60},
    }}))
    body = client.post("/admin/config/reload", headers=_auth_headers()).json()

    assert list(body["gameModes"]) == ["rowing"]
    assert body["gameModes"]["rowing"]["routeDistance"] == 500
    assert client.get("/leaderboard/running").status_code == 404
    assert client.get("/leaderboard/rowing").json()["entries"][0]["username"] == "ali"
