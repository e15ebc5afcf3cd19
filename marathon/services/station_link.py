"""
Service: station_link.py
Rôle :
- Côté station (jeu, tablette, machine) : s'abonner aux canaux entrants du rôle, décoder
  les enveloppes et les passer à un `EnvelopeHandler` ; publier sur le canal que le
  routeur associe au type d'enveloppe.
- Une station n'écoute que ses propres topics `{base}/station{id}/...` (ou les topics legacy
  si aucun id n'est configuré) + la config globale et sa config dédiée.

Rôles :
- game    : commandes tablette + données machine (+ topic machine brut du mode).
- tablet  : données et état du jeu.
- machine : config uniquement (elle ne fait que publier).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from marathon.models.envelope import Envelope
from marathon.services import codec
from marathon.services.dispatch import EnvelopeHandler, dispatch
from marathon.services.errors import DecodeError
from marathon.services.mqtt_manager import InboundMessage, MQTTManager
from marathon.services.topics import Channel, TopicRouter

logger = logging.getLogger(__name__)

ROLE_CHANNELS: Dict[str, Tuple[Channel, ...]] = {
    "game": (Channel.TABLET_COMMAND, Channel.MACHINE_DATA),
    "tablet": (Channel.GAME_DATA, Channel.GAME_STATE),
    "machine": (),
}


class StationLink:
    def __init__(
        self,
        connection: MQTTManager,
        handler: EnvelopeHandler,
        *,
        role: str,
        station_id: Optional[int] = None,
        router: Optional[TopicRouter] = None,
        raw_topics: Iterable[str] = (),
    ) -> None:
        if role not in ROLE_CHANNELS:
            raise ValueError(f"Unknown station role {role!r}")
        self.connection = connection
        self.handler = handler
        self.role = role
        self.station_id = station_id
        self.router = router or TopicRouter()
        self.raw_topics = {t for t in raw_topics if t}
        self.attached = False

    @property
    def topics(self) -> List[str]:
        topics = [self.router.station_topic(ch, self.station_id) for ch in ROLE_CHANNELS[self.role]]
        topics.append(self.router.config_broadcast)
        if self.station_id is not None:
            topics.append(self.router.station_config(self.station_id))
        if self.role == "game":
            topics.extend(sorted(self.raw_topics))
        return topics

    def attach(self) -> None:
        for topic in self.topics:
            self.connection.subscribe(topic)
        self.attached = True
        logger.info("Station link attached", extra={"role": self.role, "stationId": self.station_id})

    def detach(self) -> None:
        for topic in self.topics:
            self.connection.unsubscribe(topic)
        self.attached = False

    def set_station(self, station_id: Optional[int]) -> None:
        """Change d'identité : désabonnement des anciens topics, abonnement aux nouveaux."""
        if station_id == self.station_id:
            return
        was_attached = self.attached
        if was_attached:
            self.detach()
        self.station_id = station_id
        if was_attached:
            self.attach()

    def handle(self, message: InboundMessage) -> Any:
        if message.topic in self.raw_topics:
            return self.handler.on_raw(message.topic, message.payload)

        route = self.router.resolve(message.topic)
        if route is None:
            return None
        if route.station_id is not None and route.station_id != self.station_id:
            # jamais la station d'un autre
            return None
        try:
            envelope = codec.decode(message.payload)
        except DecodeError as exc:
            logger.warning("Dropping malformed envelope: %s", exc, extra={"topic": message.topic})
            return None
        return dispatch(envelope, self.handler, route)

    def send(self, envelope: Envelope) -> bool:
        topic = self.router.topic_for(envelope.kind, self.station_id)
        return self.connection.publish(topic, codec.encode(envelope))
