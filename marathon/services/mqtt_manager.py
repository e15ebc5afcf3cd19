# marathon/services/mqtt_manager.py
"""
Service: mqtt_manager.py
- Propriétaire de la session broker (paho-mqtt) : connexion, reconnexion, abonnements, publication.
- Frontière entre le thread réseau de paho et le thread de traitement :
  les callbacks réseau ne font QUE déposer dans une file FIFO (`_inbox`) ;
  `drain()` la vide une fois par tick, côté consommateur, dans l'ordre d'arrivée.
- Les événements de connexion passent par la même file : `on_connected`,
  `on_disconnected`, `on_connection_failed` s'exécutent toujours sur le thread de traitement.
- Abonnements idempotents, rejoués à chaque (re)connexion.
- Publication QoS 1 "best effort" : refusée (et journalisée) hors connexion, jamais mise en attente.
"""
from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Set, Union
from urllib.parse import urlsplit
from uuid import uuid4

import paho.mqtt.client as mqtt

from marathon.services.errors import TransportError

logger = logging.getLogger(__name__)

QOS_AT_LEAST_ONCE = 1
DEFAULT_PORT = 1883
DEFAULT_TLS_PORT = 8883


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class InboundMessage:
    topic: str
    payload: bytes
    received_at: float


@dataclass(frozen=True)
class ConnectionEvent:
    kind: str  # "connected" | "disconnected" | "failed"
    reason: str = ""


@dataclass(frozen=True)
class BrokerAddress:
    host: str
    port: int
    tls: bool = False

    @classmethod
    def parse(cls, url: str) -> "BrokerAddress":
        """`mqtt://host:port`, `mqtts://host` ou simplement `host[:port]`."""
        if "://" not in url:
            url = "mqtt://" + url
        parts = urlsplit(url)
        tls = parts.scheme in ("mqtts", "ssl", "tls")
        if not parts.hostname:
            raise ValueError(f"Invalid broker url {url!r}")
        port = parts.port or (DEFAULT_TLS_PORT if tls else DEFAULT_PORT)
        return cls(host=parts.hostname, port=port, tls=tls)

    def __str__(self) -> str:
        scheme = "mqtts" if self.tls else "mqtt"
        return f"{scheme}://{self.host}:{self.port}"


def generate_client_id(prefix: str = "leaderboard-server") -> str:
    return f"{prefix}-{uuid4().hex[:8]}"


ClientFactory = Callable[[str], Any]


class MQTTManager:
    """Une instance par processus, créée au démarrage et passée aux composants qui publient."""

    def __init__(
        self,
        broker_url: str,
        *,
        client_id: str = "",
        client_id_prefix: str = "leaderboard-server",
        username: str = "",
        password: str = "",
        keepalive: int = 60,
        reconnect_seconds: float = 5.0,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.address = BrokerAddress.parse(broker_url)
        self.client_id = client_id
        self.client_id_prefix = client_id_prefix
        self.username = username
        self.password = password
        self.keepalive = keepalive
        self.reconnect_seconds = reconnect_seconds
        self._client_factory = client_factory

        self.on_connected: Optional[Callable[[], None]] = None
        self.on_disconnected: Optional[Callable[[], None]] = None
        self.on_connection_failed: Optional[Callable[[str], None]] = None

        self._client: Any = None
        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._inbox: "queue.SimpleQueue[Union[InboundMessage, ConnectionEvent]]" = queue.SimpleQueue()
        # Touché uniquement par le thread de traitement
        self._subscriptions: Set[str] = set()

    # ---------- état ----------
    @property
    def state(self) -> ConnectionState:
        with self._state_lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState) -> None:
        with self._state_lock:
            previous, self._state = self._state, state
        if previous != state:
            logger.info("MQTT state %s -> %s", previous.value, state.value, extra={"broker": str(self.address)})

    @property
    def subscriptions(self) -> Set[str]:
        return set(self._subscriptions)

    def pending(self) -> int:
        return self._inbox.qsize()

    # ---------- connexion ----------
    def _build_client(self, client_id: str) -> Any:
        if self._client_factory is not None:
            return self._client_factory(client_id)
        return mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=True,
        )

    def connect(self) -> bool:
        """
        (Re)connexion explicite : une session existante est toujours fermée puis reconstruite.
        Retourne False si la tentative n'a pas pu être lancée (l'échec est aussi notifié
        via `on_connection_failed`).
        """
        if self._client is not None:
            logger.info("Already connected. Disconnecting to reconnect...")
            self.disconnect()

        client_id = self.client_id or generate_client_id(self.client_id_prefix)
        client = self._build_client(client_id)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_connect_fail = self._on_connect_fail
        if self.username:
            client.username_pw_set(self.username, self.password or None)
        if self.address.tls:
            client.tls_set()
        delay = max(1, int(round(self.reconnect_seconds)))
        client.reconnect_delay_set(min_delay=delay, max_delay=delay)

        self._client = client
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Connecting to %s as %s", self.address, client_id)
        try:
            client.connect_async(self.address.host, self.address.port, self.keepalive)
            client.loop_start()
        except (OSError, ValueError) as exc:
            error = TransportError(f"Cannot start MQTT session: {exc}")
            logger.error(str(error), extra={"broker": str(self.address)})
            self._client = None
            self._set_state(ConnectionState.DISCONNECTED)
            self._inbox.put(ConnectionEvent("failed", str(exc)))
            return False
        return True

    def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.disconnect()
        finally:
            client.loop_stop()
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Disconnected from MQTT broker")

    # ---------- callbacks paho (thread réseau : file uniquement) ----------
    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if client is not self._client:
            return
        if reason_code.is_failure:
            self._set_state(ConnectionState.DISCONNECTED)
            self._inbox.put(ConnectionEvent("failed", str(reason_code)))
            return
        self._set_state(ConnectionState.CONNECTED)
        self._inbox.put(ConnectionEvent("connected"))

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        if client is not self._client:
            return
        self._set_state(ConnectionState.DISCONNECTED)
        self._inbox.put(ConnectionEvent("disconnected", str(reason_code)))

    def _on_connect_fail(self, client, userdata) -> None:
        if client is not self._client:
            return
        self._set_state(ConnectionState.DISCONNECTED)
        self._inbox.put(ConnectionEvent("failed", f"broker {self.address} unreachable"))

    def _on_message(self, client, userdata, message) -> None:
        if client is not self._client:
            return
        self._inbox.put(InboundMessage(message.topic, bytes(message.payload), time.time()))

    # ---------- thread de traitement ----------
    def drain(self, handler: Callable[[InboundMessage], None]) -> int:
        """
        Traite ce qui est en file au début de l'appel (FIFO) ; ce qui arrive pendant le drain
        attend le tick suivant. Une exception de handler est journalisée, jamais propagée.
        """
        processed = 0
        for _ in range(self._inbox.qsize()):
            try:
                item = self._inbox.get_nowait()
            except queue.Empty:
                break
            if isinstance(item, ConnectionEvent):
                self._handle_event(item)
                continue
            try:
                handler(item)
            except Exception:
                logger.exception("Error processing message", extra={"topic": item.topic})
            processed += 1
        return processed

    def _handle_event(self, event: ConnectionEvent) -> None:
        if event.kind == "connected":
            logger.info("Connected to broker %s", self.address)
            self._resubscribe()
            callback = self.on_connected
            args: tuple = ()
        elif event.kind == "disconnected":
            logger.info("Connection closed (%s)", event.reason or "no reason")
            callback = self.on_disconnected
            args = ()
        else:
            logger.warning("Connection failed: %s", event.reason)
            callback = self.on_connection_failed
            args = (event.reason,)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Connection callback failed", extra={"event": event.kind})

    def _resubscribe(self) -> None:
        if not self._subscriptions or self._client is None:
            return
        topics = sorted(self._subscriptions)
        self._client.subscribe([(topic, QOS_AT_LEAST_ONCE) for topic in topics])
        logger.info("Subscribed to: %s", ", ".join(topics))

    # ---------- abonnements / publication ----------
    def subscribe(self, topic: str) -> bool:
        """Idempotent : retourne False si le topic était déjà suivi."""
        if topic in self._subscriptions:
            return False
        self._subscriptions.add(topic)
        if self.is_connected and self._client is not None:
            self._client.subscribe(topic, qos=QOS_AT_LEAST_ONCE)
            logger.debug("Subscribed to topic: %s", topic)
        return True

    def unsubscribe(self, topic: str) -> bool:
        if topic not in self._subscriptions:
            return False
        self._subscriptions.discard(topic)
        if self.is_connected and self._client is not None:
            self._client.unsubscribe(topic)
            logger.debug("Unsubscribed from topic: %s", topic)
        return True

    def publish(self, topic: str, payload: bytes) -> bool:
        """QoS 1, sans confirmation ; False si non connecté ou refus local de paho."""
        client = self._client
        if client is None or not self.is_connected:
            logger.warning("Cannot publish - not connected", extra={"topic": topic})
            return False
        info = client.publish(topic, payload, qos=QOS_AT_LEAST_ONCE, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.warning("Publish rejected (rc=%s)", info.rc, extra={"topic": topic})
            return False
        logger.debug("Published to %s", topic)
        return True

    def stats(self) -> dict:
        return {
            "state": self.state.value,
            "broker": str(self.address),
            "subscriptions": len(self._subscriptions),
            "pending": self.pending(),
        }
