from __future__ import annotations

from types import SimpleNamespace
from typing import Any, List

import orjson
import pytest

from marathon.config.game_config import default_game_config
from marathon.services.mqtt_manager import MQTTManager


class FakeClient:
    """Stand-in for paho's Client: records calls, lets the test fire callbacks by hand."""

    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None
        self.on_connect_fail = None
        self.credentials = None
        self.tls = False
        self.connected_to = None
        self.loop_running = False
        self.disconnected = False
        self.subscribed: List[Any] = []
        self.unsubscribed: List[str] = []
        self.published: List[tuple] = []
        self.publish_rc = 0

    # paho API
    def username_pw_set(self, username, password=None):
        self.credentials = (username, password)

    def tls_set(self):
        self.tls = True

    def reconnect_delay_set(self, min_delay=1, max_delay=120):
        self.reconnect_delay = (min_delay, max_delay)

    def connect_async(self, host, port, keepalive):
        self.connected_to = (host, port, keepalive)

    def loop_start(self):
        self.loop_running = True

    def loop_stop(self):
        self.loop_running = False

    def disconnect(self):
        self.disconnected = True

    def subscribe(self, topic, qos=0):
        self.subscribed.append(topic)

    def unsubscribe(self, topic):
        self.unsubscribed.append(topic)

    def publish(self, topic, payload, qos=0, retain=False):
        self.published.append((topic, payload, qos))
        return SimpleNamespace(rc=self.publish_rc)

    # simulated network events
    def fire_connect(self, failure: bool = False):
        self.on_connect(self, None, None, SimpleNamespace(is_failure=failure), None)

    def fire_disconnect(self):
        self.on_disconnect(self, None, None, SimpleNamespace(is_failure=True), None)

    def deliver(self, topic: str, payload: Any):
        if not isinstance(payload, (bytes, bytearray)):
            payload = orjson.dumps(payload)
        self.on_message(self, None, SimpleNamespace(topic=topic, payload=payload))

    # helpers
    def messages(self, topic: str) -> List[Any]:
        return [orjson.loads(p) for t, p, _ in self.published if t == topic]

    def topics(self) -> List[str]:
        return [t for t, _, _ in self.published]


class FakeBroker:
    def __init__(self) -> None:
        self.clients: List[FakeClient] = []

    def __call__(self, client_id: str) -> FakeClient:
        client = FakeClient(client_id)
        self.clients.append(client)
        return client

    @property
    def client(self) -> FakeClient:
        return self.clients[-1]


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def manager(broker):
    return MQTTManager("mqtt://localhost:1883", client_id="test-server", client_factory=broker)


@pytest.fixture
def connected(manager, broker):
    """Manager whose session is up (connected event already drained)."""
    manager.connect()
    broker.client.fire_connect()
    manager.drain(lambda message: None)
    return manager


@pytest.fixture
def game_config():
    return default_game_config()
