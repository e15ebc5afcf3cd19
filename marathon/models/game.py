"""
Models / game.py
Rôle:
- Définir la configuration de jeu partagée par le backend et les stations (Pydantic).
- `ModeConfig` décrit un mode (rowing / running / cycling) ; `GameConfig` regroupe les
  modes et la politique de broadcast.

Champs (noms camelCase sur le fil, snake_case côté Python):
- routeDistance: longueur du parcours en mètres (> 0).
- timeLimit: durée maximale d'une partie en secondes (> 0).
- countdownSeconds: longueur du compte à rebours (entier ≥ 0).
- resultsDisplaySeconds / idleTimeoutSeconds: temporisations d'écran (≥ 0).
- machineTopic: topic brut de la machine (vide = pas de flux brut).

Les modèles sont figés (`frozen=True`) : une config chargée n'est jamais modifiée en place,
un rechargement remplace l'objet entier.
"""
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ModeConfig(BaseModel):
    """Paramètres d'un mode de jeu."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    route_distance: float = Field(gt=0)
    time_limit: float = Field(gt=0)
    countdown_seconds: int = Field(default=3, ge=0)
    results_display_seconds: float = Field(default=8.0, ge=0)
    idle_timeout_seconds: float = Field(default=10.0, ge=0)
    machine_topic: str = ""


class BroadcastPolicy(BaseModel):
    """Cadence des diffusions périodiques (config + classements)."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    on_connect: bool = True
    config_interval_seconds: float = Field(default=5.0, ge=0)  # 0 = désactivé
    leaderboard_interval_seconds: float = Field(default=6.0, ge=0)
    settle_seconds: float = Field(default=1.0, ge=0)  # délai après connexion


class GameConfig(BaseModel):
    """Configuration complète lue au démarrage depuis config.json."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    game_modes: Dict[str, ModeConfig]
    broadcast: BroadcastPolicy = Field(default_factory=BroadcastPolicy)

    @property
    def modes(self) -> List[str]:
        return list(self.game_modes.keys())

    def modes_payload(self) -> Dict[str, dict]:
        """Vue sérialisable des modes, telle que diffusée aux stations."""
        return {
            name: mode.model_dump(by_alias=True)
            for name, mode in self.game_modes.items()
        }
