"""
Service: topics.py
Rôle :
- Dériver les topics concrets à partir de (canal logique, station, mode de jeu).
- Résoudre un topic entrant en route logique (`resolve`) : c'est le seul endroit du code
  qui connaît la forme des topics ; les consommateurs ne manipulent que des routes.

Familles :
- Canaux station : `{base}/station{id}/tablet/command`, `.../game/data`, `.../game/state`,
  `.../machine/data`, `{base}/station{id}/config`. Sans station -> topics legacy non préfixés.
- Requêtes leaderboard : un topic de requête partagé ; réponse suffixée `/{stationId}` si
  la requête porte un stationId, sinon topic de réponse de base (diffusé à tous).
- Broadcasts globaux : statut système, découverte, config, classements (+ `/{mode}`).
- Kiosque "MarathonFM" : écriture, vérification de nom par côté (left/right), top 10.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from marathon.models.envelope import MessageKind

DEFAULT_BASE = "marathon"
KIOSK_BASE = "MarathonFM"
KIOSK_SIDES = ("left", "right")


class Channel(str, Enum):
    TABLET_COMMAND = "tablet/command"
    GAME_DATA = "game/data"
    GAME_STATE = "game/state"
    MACHINE_DATA = "machine/data"
    STATION_CONFIG = "config"

    SUBMIT = "submit"
    CHECK_USERNAME = "check-username"
    TOP10 = "top10"
    CONFIG_REQUEST = "config-request"

    SYSTEM_STATUS = "system-status"
    DISCOVERY = "discovery"
    CONFIG_BROADCAST = "config-broadcast"
    LEADERBOARD_BROADCAST = "leaderboard-broadcast"

    KIOSK_WRITE = "kiosk-write"
    KIOSK_CHECKNAME = "kiosk-checkname"
    KIOSK_TOP10 = "kiosk-top10"


STATION_CHANNELS = (
    Channel.TABLET_COMMAND,
    Channel.GAME_DATA,
    Channel.GAME_STATE,
    Channel.MACHINE_DATA,
)

# Canal sortant de chaque type d'enveloppe
KIND_CHANNELS = {
    MessageKind.START_GAME: Channel.TABLET_COMMAND,
    MessageKind.PAUSE_GAME: Channel.TABLET_COMMAND,
    MessageKind.RESUME_GAME: Channel.TABLET_COMMAND,
    MessageKind.RESET_GAME: Channel.TABLET_COMMAND,
    MessageKind.GAME_MODE: Channel.TABLET_COMMAND,
    MessageKind.COUNTDOWN: Channel.GAME_DATA,
    MessageKind.GAME_DATA: Channel.GAME_DATA,
    MessageKind.GAME_OVER: Channel.GAME_DATA,
    MessageKind.GAME_STATE: Channel.GAME_STATE,
    MessageKind.MACHINE_DATA: Channel.MACHINE_DATA,
    MessageKind.GAME_CONFIG: Channel.STATION_CONFIG,
}


@dataclass(frozen=True)
class Route:
    """Route logique d'un topic entrant."""
    channel: Channel
    station_id: Optional[int] = None
    side: Optional[str] = None
    mode: Optional[str] = None


class TopicRouter:
    # Requêtes leaderboard (le serveur s'abonne)
    SUBMIT = "leaderboard/submit"
    CHECK_USERNAME = "leaderboard/check-username"
    TOP10_REQUEST = "leaderboard/top10/request"

    # Réponses (suffixées par stationId si connu)
    SUBMIT_RESPONSE = "leaderboard/submit/response"
    CHECK_USERNAME_RESPONSE = "leaderboard/check-username/response"
    TOP10_RESPONSE = "leaderboard/top10/response"

    LEADERBOARD_BROADCAST = "leaderboard/broadcast"

    def __init__(self, base: str = DEFAULT_BASE, kiosk_base: str = KIOSK_BASE) -> None:
        self.base = base
        self.kiosk_base = kiosk_base
        self._station_re = re.compile(
            rf"^{re.escape(base)}/station(\d+)/(tablet/command|game/data|game/state|machine/data|config)$"
        )
        self._legacy_re = re.compile(
            rf"^{re.escape(base)}/(tablet/command|game/data|game/state|machine/data)$"
        )
        self._kiosk_check_re = re.compile(
            rf"^{re.escape(kiosk_base)}/leaderboard/(left|right)/checkname$"
        )

    # ------------------------------------------------------------------
    # Canaux station
    # ------------------------------------------------------------------
    def station_topic(self, channel: Channel, station_id: Optional[int] = None) -> str:
        if channel == Channel.STATION_CONFIG:
            if station_id is None:
                return self.config_broadcast
            return f"{self.base}/station{int(station_id)}/config"
        if channel not in STATION_CHANNELS:
            raise ValueError(f"{channel.value} is not a station channel")
        if station_id is None:
            return f"{self.base}/{channel.value}"
        return f"{self.base}/station{int(station_id)}/{channel.value}"

    def tablet_command(self, station_id: Optional[int] = None) -> str:
        return self.station_topic(Channel.TABLET_COMMAND, station_id)

    def game_data(self, station_id: Optional[int] = None) -> str:
        return self.station_topic(Channel.GAME_DATA, station_id)

    def game_state(self, station_id: Optional[int] = None) -> str:
        return self.station_topic(Channel.GAME_STATE, station_id)

    def machine_data(self, station_id: Optional[int] = None) -> str:
        return self.station_topic(Channel.MACHINE_DATA, station_id)

    def station_config(self, station_id: Optional[int] = None) -> str:
        return self.station_topic(Channel.STATION_CONFIG, station_id)

    def topic_for(self, kind: str, station_id: Optional[int] = None) -> str:
        """Topic sortant d'une enveloppe selon son type."""
        channel = KIND_CHANNELS.get(kind)
        if channel is None:
            raise ValueError(f"No channel for message kind {kind!r}")
        return self.station_topic(channel, station_id)

    # ------------------------------------------------------------------
    # Requêtes / réponses
    # ------------------------------------------------------------------
    @staticmethod
    def response_topic(base_topic: str, station_id: Optional[int] = None) -> str:
        if station_id is not None:
            return f"{base_topic}/{station_id}"
        return base_topic

    @property
    def config_request(self) -> str:
        return f"{self.base}/config/request"

    @property
    def config_broadcast(self) -> str:
        return f"{self.base}/config/broadcast"

    @property
    def system_status(self) -> str:
        return f"{self.base}/system/status"

    @property
    def discovery(self) -> str:
        return f"{self.base}/discovery"

    def leaderboard_broadcast(self, mode: Optional[str] = None) -> str:
        if mode:
            return f"{self.LEADERBOARD_BROADCAST}/{mode}"
        return self.LEADERBOARD_BROADCAST

    def server_subscriptions(self) -> list[str]:
        """Topics de requête écoutés par le backend principal."""
        return [self.SUBMIT, self.TOP10_REQUEST, self.CHECK_USERNAME, self.config_request]

    # ------------------------------------------------------------------
    # Kiosque
    # ------------------------------------------------------------------
    @property
    def kiosk_write(self) -> str:
        return f"{self.kiosk_base}/leaderboard/write"

    @property
    def kiosk_top10(self) -> str:
        return f"{self.kiosk_base}/leaderboard/top10"

    def kiosk_checkname(self, side: str) -> str:
        if side not in KIOSK_SIDES:
            raise ValueError(f"Unknown kiosk side {side!r}")
        return f"{self.kiosk_base}/leaderboard/{side}/checkname"

    def kiosk_checkname_response(self, side: str) -> str:
        return self.kiosk_checkname(side) + "/response"

    def kiosk_subscriptions(self) -> list[str]:
        return [self.kiosk_write] + [self.kiosk_checkname(side) for side in KIOSK_SIDES]

    # ------------------------------------------------------------------
    # Résolution topic -> route
    # ------------------------------------------------------------------
    def resolve(self, topic: str) -> Optional[Route]:
        fixed = {
            self.SUBMIT: Channel.SUBMIT,
            self.CHECK_USERNAME: Channel.CHECK_USERNAME,
            self.TOP10_REQUEST: Channel.TOP10,
            self.config_request: Channel.CONFIG_REQUEST,
            self.config_broadcast: Channel.CONFIG_BROADCAST,
            self.system_status: Channel.SYSTEM_STATUS,
            self.discovery: Channel.DISCOVERY,
            self.LEADERBOARD_BROADCAST: Channel.LEADERBOARD_BROADCAST,
            self.kiosk_write: Channel.KIOSK_WRITE,
            self.kiosk_top10: Channel.KIOSK_TOP10,
        }
        if topic in fixed:
            return Route(fixed[topic])

        prefix = self.LEADERBOARD_BROADCAST + "/"
        if topic.startswith(prefix) and "/" not in topic[len(prefix):]:
            return Route(Channel.LEADERBOARD_BROADCAST, mode=topic[len(prefix):])

        match = self._station_re.match(topic)
        if match:
            return Route(Channel(match.group(2)), station_id=int(match.group(1)))

        match = self._legacy_re.match(topic)
        if match:
            return Route(Channel(match.group(1)))

        match = self._kiosk_check_re.match(topic)
        if match:
            return Route(Channel.KIOSK_CHECKNAME, side=match.group(1))

        return None
