"""
Service: dispatch.py
Aiguillage d'une enveloppe décodée vers UN handler selon son type (visiteur).

- `EnvelopeHandler` : une méthode `on_<type>` par variante, no-op par défaut ;
  une station n'implémente que ce qui la concerne.
- Enveloppe inconnue -> `on_unrecognized` (jamais d'erreur).
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Union

from marathon.models.envelope import (
    Countdown,
    Envelope,
    GameConfigMessage,
    GameData,
    GameMode,
    GameOver,
    GameState,
    MachineData,
    MessageKind,
    PauseGame,
    ResetGame,
    ResumeGame,
    StartGame,
    UnrecognizedEnvelope,
)
from marathon.services.topics import Route


class EnvelopeHandler:
    # tablette -> jeu
    def on_start_game(self, msg: StartGame, route: Optional[Route]) -> Any: ...
    def on_pause_game(self, msg: PauseGame, route: Optional[Route]) -> Any: ...
    def on_resume_game(self, msg: ResumeGame, route: Optional[Route]) -> Any: ...
    def on_reset_game(self, msg: ResetGame, route: Optional[Route]) -> Any: ...
    def on_game_mode(self, msg: GameMode, route: Optional[Route]) -> Any: ...

    # jeu -> tablette
    def on_countdown(self, msg: Countdown, route: Optional[Route]) -> Any: ...
    def on_game_data(self, msg: GameData, route: Optional[Route]) -> Any: ...
    def on_game_over(self, msg: GameOver, route: Optional[Route]) -> Any: ...
    def on_game_state(self, msg: GameState, route: Optional[Route]) -> Any: ...

    # machine -> jeu
    def on_machine_data(self, msg: MachineData, route: Optional[Route]) -> Any: ...

    # serveur -> tous
    def on_game_config(self, msg: GameConfigMessage, route: Optional[Route]) -> Any: ...

    def on_unrecognized(self, msg: UnrecognizedEnvelope, route: Optional[Route]) -> Any: ...

    def on_raw(self, topic: str, payload: bytes) -> Any:
        """Payload brut (hors enveloppe), ex. topic machine configuré par mode."""


HANDLER_METHODS: Dict[str, str] = {
    MessageKind.START_GAME: "on_start_game",
    MessageKind.PAUSE_GAME: "on_pause_game",
    MessageKind.RESUME_GAME: "on_resume_game",
    MessageKind.RESET_GAME: "on_reset_game",
    MessageKind.GAME_MODE: "on_game_mode",
    MessageKind.COUNTDOWN: "on_countdown",
    MessageKind.GAME_DATA: "on_game_data",
    MessageKind.GAME_OVER: "on_game_over",
    MessageKind.GAME_STATE: "on_game_state",
    MessageKind.MACHINE_DATA: "on_machine_data",
    MessageKind.GAME_CONFIG: "on_game_config",
}


def dispatch(
    envelope: Union[Envelope, UnrecognizedEnvelope],
    handler: EnvelopeHandler,
    route: Optional[Route] = None,
) -> Any:
    """Appelle exactement une méthode du handler et retourne son résultat."""
    if isinstance(envelope, UnrecognizedEnvelope):
        return handler.on_unrecognized(envelope, route)
    method = HANDLER_METHODS.get(envelope.kind)
    if method is None:
        unknown = UnrecognizedEnvelope(
            kind=envelope.kind,
            timestamp=envelope.timestamp,
            payload=envelope.model_dump(mode="json", by_alias=True),
        )
        return handler.on_unrecognized(unknown, route)
    return getattr(handler, method)(envelope, route)
