"""
Models / envelope.py
Rôle:
- Famille d'enveloppes typées échangées sur le bus entre tablette, écran de jeu et machine.
- Chaque variante porte un discriminant (`messageType` sur le fil, `kind` côté Python)
  et un `timestamp` en millisecondes (horloge du producteur, non décroissante).

Compatibilité:
- Les producteurs plus anciens omettent certains champs (`gameMode`, ...) : tous les champs
  ont donc une valeur par défaut.
- Le discriminant est aussi accepté sous la clé `kind`.
"""
from __future__ import annotations

import threading
import time
from enum import Enum
from typing import Any, Dict, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from marathon.models.game import ModeConfig


class MessageKind:
    START_GAME = "START_GAME"
    PAUSE_GAME = "PAUSE_GAME"
    RESUME_GAME = "RESUME_GAME"
    RESET_GAME = "RESET_GAME"
    GAME_MODE = "GAME_MODE"
    COUNTDOWN = "COUNTDOWN"
    GAME_DATA = "GAME_DATA"
    GAME_OVER = "GAME_OVER"
    GAME_STATE = "GAME_STATE"
    MACHINE_DATA = "MACHINE_DATA"
    GAME_CONFIG = "GAME_CONFIG"


class GamePhase(str, Enum):
    IDLE = "IDLE"
    COUNTDOWN = "COUNTDOWN"
    PLAYING = "PLAYING"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"


_clock_lock = threading.Lock()
_last_timestamp = 0


def next_timestamp() -> int:
    """Horodatage ms de ce producteur ; jamais inférieur au précédent (recul d'horloge)."""
    global _last_timestamp
    with _clock_lock:
        now = int(time.time() * 1000)
        if now < _last_timestamp:
            now = _last_timestamp
        _last_timestamp = now
        return now


class Envelope(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    kind: str = Field(alias="messageType")
    timestamp: int = Field(default_factory=next_timestamp, ge=0)


# ========== TABLET -> GAME ==========

class StartGame(Envelope):
    kind: Literal["START_GAME"] = Field(MessageKind.START_GAME, alias="messageType")
    player_name: str = ""
    game_mode: Optional[str] = None


class PauseGame(Envelope):
    kind: Literal["PAUSE_GAME"] = Field(MessageKind.PAUSE_GAME, alias="messageType")


class ResumeGame(Envelope):
    kind: Literal["RESUME_GAME"] = Field(MessageKind.RESUME_GAME, alias="messageType")


class ResetGame(Envelope):
    kind: Literal["RESET_GAME"] = Field(MessageKind.RESET_GAME, alias="messageType")


class GameMode(Envelope):
    kind: Literal["GAME_MODE"] = Field(MessageKind.GAME_MODE, alias="messageType")
    mode: Optional[str] = Field(None, alias="gameMode")


# ========== GAME -> TABLET ==========

class Countdown(Envelope):
    kind: Literal["COUNTDOWN"] = Field(MessageKind.COUNTDOWN, alias="messageType")
    # 3, 2, 1, 0 (0 = départ) ; borne haute = countdownSeconds du mode
    value: int = Field(0, ge=0, alias="countdownValue")


class GameData(Envelope):
    kind: Literal["GAME_DATA"] = Field(MessageKind.GAME_DATA, alias="messageType")
    current_distance: float = Field(0.0, ge=0)
    total_distance: float = Field(0.0, ge=0)
    current_speed: float = Field(0.0, ge=0)
    current_time: float = Field(0.0, ge=0)
    progress_percent: float = Field(0.0, ge=0, le=100)


class GameOver(Envelope):
    kind: Literal["GAME_OVER"] = Field(MessageKind.GAME_OVER, alias="messageType")
    final_distance: float = Field(0.0, ge=0)
    final_time: float = Field(0.0, ge=0)
    completed_course: bool = False


class GameState(Envelope):
    kind: Literal["GAME_STATE"] = Field(MessageKind.GAME_STATE, alias="messageType")
    state: GamePhase = GamePhase.IDLE

    @field_validator("state", mode="before")
    @classmethod
    def _upper_state(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


# ========== MACHINE -> GAME ==========

class MachineData(Envelope):
    kind: Literal["MACHINE_DATA"] = Field(MessageKind.MACHINE_DATA, alias="messageType")
    speed: float = 0.0  # m/s
    stroke_rate: float = 0.0  # coups / pas par minute
    total_distance: float = 0.0
    power: float = 0.0


# ========== SERVER -> ALL ==========

class GameConfigMessage(Envelope):
    kind: Literal["GAME_CONFIG"] = Field(MessageKind.GAME_CONFIG, alias="messageType")
    modes: Dict[str, ModeConfig] = Field(default_factory=dict, alias="gameModes")


class UnrecognizedEnvelope(BaseModel):
    """Enveloppe au discriminant inconnu : conservée brute, jamais rejetée."""
    kind: str
    timestamp: int = 0
    payload: Dict[str, Any] = Field(default_factory=dict)


ENVELOPE_TYPES: Dict[str, Type[Envelope]] = {
    cls.model_fields["kind"].default: cls
    for cls in (
        StartGame, PauseGame, ResumeGame, ResetGame, GameMode,
        Countdown, GameData, GameOver, GameState,
        MachineData, GameConfigMessage,
    )
}
