"""
Service: leaderboard_service.py
Rôle :
- Handlers des requêtes leaderboard reçues sur le bus (soumission, vérification de pseudo,
  top 10, config) et diffusions périodiques (config + classements).
- S'exécute uniquement sur le thread de traitement : aucun verrou autour des classements.

Réponses :
- Toujours sur le topic de réponse suffixé `/{stationId}` quand la requête porte un stationId,
  sinon sur le topic de réponse de base.
- Un pseudo bloqué par le filtre est rapporté exactement comme un pseudo déjà pris.
- Payload illisible -> journalisé, aucune réponse (demandeur inconnu).
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import pydantic

from marathon.models.envelope import GameConfigMessage, next_timestamp
from marathon.models.game import GameConfig
from marathon.models.leaderboard import (
    CheckUsernameRequest,
    ConfigRequest,
    SubmitScoreRequest,
    Top10Request,
)
from marathon.services import codec, profanity
from marathon.services.errors import DecodeError, ValidationError
from marathon.services.leaderboard_store import DEFAULT_TOP, LeaderboardRegistry
from marathon.services.mqtt_manager import InboundMessage, MQTTManager
from marathon.services.topics import Channel, Route, TopicRouter

logger = logging.getLogger(__name__)

MSG_CREATED = "New entry created"
MSG_UPDATED = "Score updated (new high score)"
MSG_NOT_HIGHER = "Score not updated (not higher than current)"
ERR_MISSING_SUBMIT = "Missing required fields: username and score"
ERR_MISSING_USERNAME = "Missing username"
ERR_NOT_AVAILABLE = "Username not available"


def _station_id(payload: Dict[str, Any]) -> Optional[int]:
    """stationId explicite de la requête (jamais déduit d'un autre champ)."""
    value = payload.get("stationId")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _invalid_fields(exc: pydantic.ValidationError) -> str:
    names = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
    return "Invalid field(s): " + ", ".join(names) if names else "Invalid request"


class LeaderboardService:
    def __init__(
        self,
        connection: MQTTManager,
        registry: LeaderboardRegistry,
        config: GameConfig,
        *,
        router: Optional[TopicRouter] = None,
        default_mode: str = "rowing",
        on_change: Optional[Callable[[], None]] = None,
    ) -> None:
        self.connection = connection
        self.registry = registry
        self.config = config
        self.router = router or TopicRouter()
        self.default_mode = default_mode
        self.on_change = on_change
        self._handlers: Dict[Channel, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            Channel.SUBMIT: self.submit_score,
            Channel.CHECK_USERNAME: self.check_username,
            Channel.TOP10: self.top10,
            Channel.CONFIG_REQUEST: self.config_request,
        }

    @property
    def channels(self) -> List[Channel]:
        return list(self._handlers.keys())

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def handle(self, route: Route, message: InboundMessage) -> Optional[Dict[str, Any]]:
        handler = self._handlers.get(route.channel)
        if handler is None:
            return None
        try:
            payload = codec.decode_payload(message.payload)
        except DecodeError as exc:
            logger.warning("Dropping malformed request: %s", exc, extra={"topic": message.topic})
            return None
        logger.info("Received %s request", route.channel.value, extra={"stationId": _station_id(payload)})
        return handler(payload)

    def _respond(self, base_topic: str, station_id: Optional[int], body: Dict[str, Any]) -> Dict[str, Any]:
        topic = self.router.response_topic(base_topic, station_id)
        self.connection.publish(topic, codec.encode_payload(body))
        return body

    def _fail(self, base_topic: str, station_id: Optional[int], reason: str) -> Dict[str, Any]:
        logger.info("Request rejected: %s", reason, extra={"stationId": station_id})
        return self._respond(base_topic, station_id, {"success": False, "error": reason, "stationId": station_id})

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()

    # ------------------------------------------------------------------
    # Submit score
    # ------------------------------------------------------------------
    def _submit_mode(self, req: SubmitScoreRequest) -> str:
        if not (req.username or "").strip() or req.score is None:
            raise ValidationError(ERR_MISSING_SUBMIT)
        if req.score < 0:
            raise ValidationError("Invalid score: must be >= 0")
        mode = req.game_mode or self.default_mode
        if not self.registry.has_mode(mode):
            raise ValidationError(f"Invalid game mode: {mode}")
        if profanity.is_blocked(req.username):
            raise ValidationError(ERR_NOT_AVAILABLE)
        return mode

    def submit_score(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        base = TopicRouter.SUBMIT_RESPONSE
        station_id = _station_id(payload)
        try:
            req = SubmitScoreRequest.model_validate(payload)
        except pydantic.ValidationError as exc:
            return self._fail(base, station_id, _invalid_fields(exc))
        try:
            mode = self._submit_mode(req)
        except ValidationError as exc:
            return self._fail(base, station_id, exc.reason)

        username = req.username.strip()
        distance = max(req.distance, 0.0) if req.distance is not None else None
        time_ = max(req.time, 0.0) if req.time is not None else None
        result = self.registry.upsert_if_higher(mode, username, req.score, distance, time_, req.station_id)

        body: Dict[str, Any] = {
            "success": True,
            "username": username,
            "score": req.score,
            "gameMode": mode,
            "stationId": station_id,
        }
        if result.created:
            body["message"] = MSG_CREATED
            logger.info("New entry created for %s: %s", username, req.score, extra={"mode": mode})
        elif result.applied:
            body["message"] = MSG_UPDATED
            logger.info("Updated score for %s: %s", username, req.score, extra={"mode": mode})
        else:
            body["message"] = MSG_NOT_HIGHER
            body["currentScore"] = result.previous_score
            body["submittedScore"] = req.score
            logger.info("Score not updated for %s (not a high score)", username, extra={"mode": mode})

        response = self._respond(base, station_id, body)
        if result.changed:
            self._changed()
        return response

    # ------------------------------------------------------------------
    # Check username
    # ------------------------------------------------------------------
    def check_username(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        base = TopicRouter.CHECK_USERNAME_RESPONSE
        station_id = _station_id(payload)
        try:
            req = CheckUsernameRequest.model_validate(payload)
        except pydantic.ValidationError as exc:
            return self._fail(base, station_id, _invalid_fields(exc))

        username = (req.username or "").strip()
        if not username:
            return self._fail(base, station_id, ERR_MISSING_USERNAME)
        mode = req.game_mode
        if mode is not None and not self.registry.has_mode(mode):
            return self._fail(base, station_id, f"Invalid game mode: {mode}")

        if profanity.is_blocked(username):
            # même signal qu'un pseudo déjà pris
            logger.info("Username %r blocked by profanity filter", username)
            exists_in = {mode} if mode else set(self.registry.modes)
        elif mode:
            exists_in = {mode} if self.registry.find_by_username(mode, username) else set()
        else:
            exists_in = self.registry.exists_across_modes(username)

        exists = bool(exists_in)
        body: Dict[str, Any] = {
            "success": True,
            "username": username,
            "isUnique": not exists,
            "exists": exists,
            "existsIn": [m for m in self.registry.modes if m in exists_in],
            "stationId": station_id,
        }
        if mode:
            body["gameMode"] = mode
        return self._respond(base, station_id, body)

    # ------------------------------------------------------------------
    # Top 10
    # ------------------------------------------------------------------
    def top10(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        base = TopicRouter.TOP10_RESPONSE
        station_id = _station_id(payload)
        try:
            req = Top10Request.model_validate(payload)
        except pydantic.ValidationError as exc:
            return self._fail(base, station_id, _invalid_fields(exc))

        if req.game_mode is None:
            body = {"success": True, "leaderboards": self.registry.top_all(DEFAULT_TOP), "stationId": station_id}
            return self._respond(base, station_id, body)

        if not self.registry.has_mode(req.game_mode):
            return self._fail(base, station_id, f"Invalid game mode: {req.game_mode}")
        body = {
            "success": True,
            "gameMode": req.game_mode,
            "entries": self.registry.top(req.game_mode, DEFAULT_TOP),
            "stationId": station_id,
        }
        return self._respond(base, station_id, body)

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------
    def config_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            station_id = ConfigRequest.model_validate(payload).station_id
        except pydantic.ValidationError:
            station_id = _station_id(payload)
        logger.info("Config requested by station %s", station_id if station_id is not None else "unknown")
        return self.broadcast_config(station_id)

    def config_message(self) -> GameConfigMessage:
        return GameConfigMessage(modes=self.config.game_modes)

    def broadcast_config(self, station_id: Optional[int] = None) -> Dict[str, Any]:
        """Config vers une station précise (`{base}/station{id}/config`) ou vers toutes."""
        message = self.config_message()
        topic = self.router.station_config(station_id)
        self.connection.publish(topic, codec.encode(message))
        logger.debug("Broadcasted game config to %s", f"station {station_id}" if station_id is not None else "all stations")
        return message.model_dump(mode="json", by_alias=True)

    # ------------------------------------------------------------------
    # Classements
    # ------------------------------------------------------------------
    def leaderboard_snapshot(self) -> Dict[str, Any]:
        return {
            "messageType": "LEADERBOARD_UPDATE",
            "timestamp": next_timestamp(),
            "leaderboards": self.registry.top_all(DEFAULT_TOP),
        }

    def broadcast_leaderboards(self) -> Dict[str, Any]:
        """Un payload combiné (tous modes) + un payload par mode sur `.../broadcast/{mode}`."""
        snapshot = self.leaderboard_snapshot()
        self.connection.publish(self.router.leaderboard_broadcast(), codec.encode_payload(snapshot))
        for mode, entries in snapshot["leaderboards"].items():
            per_mode = {
                "messageType": "LEADERBOARD_UPDATE",
                "timestamp": snapshot["timestamp"],
                "gameMode": mode,
                "entries": entries,
            }
            self.connection.publish(self.router.leaderboard_broadcast(mode), codec.encode_payload(per_mode))
        return snapshot
