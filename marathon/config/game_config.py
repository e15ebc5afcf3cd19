"""
Chargement de la configuration de jeu (config.json)
===================================================

Rôle
----
- Lire une seule fois au démarrage `config.json` (modes de jeu + cadence des broadcasts).
- Retomber sur une configuration par défaut si le fichier est absent, illisible ou invalide.

Format
------
{
  "gameModes": {
    "rowing":  {"routeDistance": 1600, "timeLimit": 300, "countdownSeconds": 3,
                "resultsDisplaySeconds": 8, "idleTimeoutSeconds": 10, "machineTopic": ""},
    ...
  },
  "broadcast": {"onConnect": true, "configIntervalSeconds": 5,
                "leaderboardIntervalSeconds": 6, "settleSeconds": 1}
}
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import pydantic

from marathon.models.game import GameConfig
from marathon.services.io_utils import read_json

logger = logging.getLogger(__name__)

DEFAULT_GAME_CONFIG: Dict[str, Any] = {
    "gameModes": {
        "rowing": {"routeDistance": 1600, "timeLimit": 300, "countdownSeconds": 3,
                   "resultsDisplaySeconds": 8, "idleTimeoutSeconds": 10},
        "running": {"routeDistance": 1600, "timeLimit": 300, "countdownSeconds": 3,
                    "resultsDisplaySeconds": 8, "idleTimeoutSeconds": 10},
        "cycling": {"routeDistance": 2000, "timeLimit": 240, "countdownSeconds": 3,
                    "resultsDisplaySeconds": 8, "idleTimeoutSeconds": 10},
    },
    "broadcast": {"onConnect": True, "configIntervalSeconds": 5,
                  "leaderboardIntervalSeconds": 6, "settleSeconds": 1},
}


def default_game_config() -> GameConfig:
    return GameConfig.model_validate(DEFAULT_GAME_CONFIG)


def load_game_config(path: str | Path) -> GameConfig:
    """
    Charge `path` ; en cas d'échec (absent, JSON corrompu, valeurs invalides) renvoie la
    configuration par défaut. Ne lève jamais : le serveur doit démarrer quoi qu'il arrive.
    """
    target = Path(path)
    try:
        raw = read_json(target)
    except (OSError, ValueError) as exc:
        logger.error("Unreadable game config, using defaults", extra={"path": str(target), "error": str(exc)})
        return default_game_config()

    if raw is None:
        logger.info("No game config file, using defaults", extra={"path": str(target)})
        return default_game_config()

    try:
        config = GameConfig.model_validate(raw)
    except pydantic.ValidationError as exc:
        logger.error("Invalid game config, using defaults", extra={"path": str(target), "error": str(exc)})
        return default_game_config()

    if not config.game_modes:
        logger.error("Game config declares no game mode, using defaults", extra={"path": str(target)})
        return default_game_config()

    logger.info("Loaded game configuration: %s", ", ".join(config.modes))
    return config
