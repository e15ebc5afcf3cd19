"""
Service: kiosk_service.py
Flux kiosque "MarathonFM" : un classement plat, sans mode de jeu ni station.

- write     : upsert-if-higher, score = distance arrondie (demi-unité vers le haut) ;
              aucune réponse n'est publiée.
- checkname : une borne par côté (left/right), réponse sur `.../checkname/response`.
- top10     : diffusé périodiquement avec la somme des distances.

Indépendant des classements principaux : un pseudo peut exister ici et pas là-bas.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, Optional

import pydantic

from marathon.models.envelope import next_timestamp
from marathon.models.leaderboard import KioskCheckRequest, KioskWriteRequest
from marathon.services import codec, profanity
from marathon.services.errors import DecodeError
from marathon.services.leaderboard_store import DEFAULT_TOP, LeaderboardStore, UpsertResult
from marathon.services.mqtt_manager import InboundMessage, MQTTManager
from marathon.services.topics import Channel, Route, TopicRouter

logger = logging.getLogger(__name__)


def distance_score(distance: float) -> int:
    return int(math.floor(max(distance, 0.0) + 0.5))


class KioskService:
    def __init__(
        self,
        connection: MQTTManager,
        store: LeaderboardStore,
        *,
        router: Optional[TopicRouter] = None,
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.connection = connection
        self.store = store
        self.router = router or TopicRouter()
        self.on_change = on_change

    def handle(self, route: Route, message: InboundMessage) -> Optional[Dict[str, Any]]:
        if route.channel not in (Channel.KIOSK_WRITE, Channel.KIOSK_CHECKNAME):
            return None
        try:
            payload = codec.decode_payload(message.payload)
        except DecodeError as exc:
            logger.warning("Dropping malformed kiosk request: %s", exc, extra={"topic": message.topic})
            return None
        if route.channel == Channel.KIOSK_WRITE:
            result = self.write(payload)
            return {"changed": bool(result and result.changed)}
        return self.check_name(payload, route.side or "left")

    def write(self, payload: Dict[str, Any]) -> Optional[UpsertResult]:
        try:
            req = KioskWriteRequest.model_validate(payload)
        except pydantic.ValidationError as exc:
            logger.error("Write rejected - invalid fields (%d error(s))", exc.error_count())
            return None
        username = (req.username or "").strip()
        if not username:
            logger.error("Write rejected - missing username")
            return None
        if profanity.is_blocked(username):
            logger.info("Write rejected - username %r blocked by profanity filter", username)
            return None

        distance = max(req.distance or 0.0, 0.0)
        time_ = max(req.time, 0.0) if req.time is not None else None
        score = distance_score(distance)
        result = self.store.upsert_if_higher(username, score, distance, time_)
        if result.created:
            logger.info("New kiosk entry: %s, score=%s", username, score)
        elif result.applied:
            logger.info("Updated kiosk entry %s: score=%s", username, score)
        else:
            logger.info("Score not updated for %s (%s <= %s)", username, score, result.previous_score)
        if result.changed and self.on_change is not None:
            self.on_change()
        return result

    def check_name(self, payload: Dict[str, Any], side: str) -> Dict[str, Any]:
        topic = self.router.kiosk_checkname_response(side)
        try:
            username = (KioskCheckRequest.model_validate(payload).username or "").strip()
        except pydantic.ValidationError:
            username = ""
        if not username:
            body: Dict[str, Any] = {"success": False, "error": "Missing username"}
        elif profanity.is_blocked(username):
            logger.info("Username %r blocked by profanity filter", username)
            body = {"success": True, "username": username, "isUnique": False, "exists": True}
        else:
            exists = self.store.find(username) is not None
            body = {"success": True, "username": username, "isUnique": not exists, "exists": exists}
        self.connection.publish(topic, codec.encode_payload(body))
        return body

    def top10_message(self) -> Dict[str, Any]:
        return {
            "messageType": "LEADERBOARD_UPDATE",
            "timestamp": next_timestamp(),
            "leaderboard": self.store.top(DEFAULT_TOP),
            "totalDistances": self.store.total_distance(),
        }

    def broadcast_top10(self) -> Dict[str, Any]:
        message = self.top10_message()
        self.connection.publish(self.router.kiosk_top10, codec.encode_payload(message))
        return message
