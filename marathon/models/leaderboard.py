"""
Models / leaderboard.py
Rôle:
- Entrée de classement persistée (une par pseudo et par mode).
- Payloads de requêtes reçus sur le bus (soumission de score, vérification de pseudo,
  top 10, config, écriture kiosque).

Notes:
- Noms camelCase sur le fil / dans les fichiers JSON (`stationId`, `createdAt`, ...).
- Les champs de requête sont tous optionnels : la validation métier (champ manquant,
  mode inconnu) produit un message d'erreur lisible plutôt qu'une exception Pydantic.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class LeaderboardEntry(BaseModel):
    """Meilleur résultat d'un pseudo dans un classement."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    username: str = Field(min_length=1)
    score: int = Field(ge=0)
    distance: float = Field(default=0.0, ge=0)
    time: float = Field(default=0.0, ge=0)
    station_id: Optional[int] = None
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    @property
    def key(self) -> str:
        return self.username.casefold()

    def ranked(self, rank: int) -> Dict[str, Any]:
        """Vue publique annotée du rang (sans horodatages)."""
        return {
            "rank": rank,
            "username": self.username,
            "score": self.score,
            "distance": self.distance,
            "time": self.time,
        }


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    station_id: Optional[int] = None


class SubmitScoreRequest(_Request):
    username: Optional[str] = None
    score: Optional[int] = None
    distance: Optional[float] = None
    time: Optional[float] = None
    game_mode: Optional[str] = None


class CheckUsernameRequest(_Request):
    username: Optional[str] = None
    game_mode: Optional[str] = None


class Top10Request(_Request):
    game_mode: Optional[str] = None


class ConfigRequest(_Request):
    pass


class KioskWriteRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: Optional[str] = None
    distance: Optional[float] = None
    time: Optional[float] = None


class KioskCheckRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: Optional[str] = None
