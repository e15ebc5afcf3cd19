"""
Service: leaderboard_store.py
Rôle :
- Stocker les classements (un par mode de jeu) et les persister en JSON.
- Règle d'écriture "upsert-if-higher" : un pseudo (insensible à la casse) n'a qu'une entrée
  par classement et son score ne fait que croître.

Stockage :
- `leaderboard_<mode>.json` : {"mode": "<mode>", "entries": [...]} par mode de jeu.
- `fm-leaderboard.json` : liste plate (kiosque, pas de partition par mode).
- Chaque mutation réécrit le fichier entier (volumes faibles, un seul processus écrivain).

Compatibilité :
- Au premier chargement, si le fichier du mode par défaut n'existe pas encore, l'ancien
  fichier global `leaderboard.json` (mono-mode) est importé puis migré.

Pannes :
- Fichier absent ou corrompu -> classement vide, fichier recréé.
- Échec d'écriture -> journalisé ; l'état mémoire reste la référence jusqu'à la prochaine
  écriture réussie (pas de rollback).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

import pydantic

from marathon.models.leaderboard import LeaderboardEntry, utc_now_iso
from marathon.services.errors import PersistenceError
from marathon.services.io_utils import read_json, write_json

logger = logging.getLogger(__name__)

LEGACY_FILENAME = "leaderboard.json"
KIOSK_FILENAME = "fm-leaderboard.json"
DEFAULT_TOP = 10


def mode_filename(mode: str) -> str:
    return f"leaderboard_{mode}.json"


@dataclass(frozen=True)
class UpsertResult:
    created: bool
    applied: bool
    previous_score: Optional[int] = None
    entry: Optional[LeaderboardEntry] = None

    @property
    def changed(self) -> bool:
        return self.created or self.applied


def _parse_entries(raw: Any, name: str) -> List[LeaderboardEntry]:
    """Accepte {"entries": [...]} ou une liste plate ; ignore les entrées invalides/doublons."""
    items = raw.get("entries") if isinstance(raw, dict) else raw
    if not isinstance(items, list):
        raise ValueError("entries must be a list")

    entries: List[LeaderboardEntry] = []
    seen: Set[str] = set()
    for item in items:
        try:
            entry = LeaderboardEntry.model_validate(item)
        except pydantic.ValidationError:
            logger.warning("Skipping invalid leaderboard entry", extra={"store": name})
            continue
        if entry.key in seen:
            continue
        seen.add(entry.key)
        entries.append(entry)
    return entries


class LeaderboardStore:
    """Classement unique, ordonné par ordre d'inscription (pour départager les ex-aequo)."""

    def __init__(self, path: Path, name: str, *, flat: bool = False) -> None:
        self.path = Path(path)
        self.name = name
        self.flat = flat
        self.entries: List[LeaderboardEntry] = []

    # -----------------------------
    # Chargement / Sauvegarde
    # -----------------------------
    def load(self) -> None:
        """Charge le fichier ; absent ou corrompu -> classement vide recréé sur disque."""
        try:
            raw = read_json(self.path)
        except (OSError, ValueError) as exc:
            logger.error("Error loading leaderboard, starting empty", extra={"store": self.name, "error": str(exc)})
            self.entries = []
            self.save()
            return

        if raw is None:
            self.entries = []
            self.save()
            logger.info("Created new leaderboard file", extra={"store": self.name, "path": str(self.path)})
            return

        try:
            self.entries = _parse_entries(raw, self.name)
        except ValueError as exc:
            logger.error("Corrupt leaderboard file, starting empty", extra={"store": self.name, "error": str(exc)})
            self.entries = []
            self.save()
            return
        logger.info("Loaded %d entries", len(self.entries), extra={"store": self.name})

    def _serialize(self) -> Any:
        items = [entry.model_dump(by_alias=True) for entry in self.entries]
        if self.flat:
            return items
        return {"mode": self.name, "entries": items}

    def save(self) -> bool:
        """Réécrit le fichier entier. Ne lève pas : un échec est journalisé."""
        try:
            write_json(self.path, self._serialize())
        except (OSError, TypeError) as exc:
            error = PersistenceError(f"Cannot write {self.path}: {exc}")
            logger.error(str(error), extra={"store": self.name})
            return False
        return True

    # -----------------------------
    # Lectures
    # -----------------------------
    def __len__(self) -> int:
        return len(self.entries)

    def find(self, username: str) -> Optional[LeaderboardEntry]:
        key = (username or "").casefold()
        for entry in self.entries:
            if entry.key == key:
                return entry
        return None

    def top(self, n: int = DEFAULT_TOP) -> List[Dict[str, Any]]:
        """Score décroissant ; à score égal, l'entrée la plus ancienne d'abord (tri stable)."""
        ordered = sorted(self.entries, key=lambda e: e.score, reverse=True)
        return [entry.ranked(rank) for rank, entry in enumerate(ordered[: max(n, 0)], start=1)]

    def total_distance(self) -> float:
        return sum(entry.distance for entry in self.entries)

    # -----------------------------
    # Mutations
    # -----------------------------
    def upsert_if_higher(
        self,
        username: str,
        score: int,
        distance: Optional[float] = None,
        time: Optional[float] = None,
        station_id: Optional[int] = None,
    ) -> UpsertResult:
        if not username:
            raise ValueError("username is required")
        if score < 0:
            raise ValueError("score must be >= 0")

        existing = self.find(username)
        if existing is None:
            entry = LeaderboardEntry(
                username=username,
                score=score,
                distance=distance or 0.0,
                time=time or 0.0,
                station_id=station_id,
            )
            self.entries.append(entry)
            self.save()
            return UpsertResult(created=True, applied=False, entry=entry)

        if score <= existing.score:
            return UpsertResult(created=False, applied=False, previous_score=existing.score, entry=existing)

        previous = existing.score
        existing.score = score
        if distance is not None:
            existing.distance = distance
        if time is not None:
            existing.time = time
        if station_id is not None:
            existing.station_id = station_id
        existing.updated_at = utc_now_iso()
        self.save()
        return UpsertResult(created=False, applied=True, previous_score=previous, entry=existing)

    def delete(self, username: str) -> bool:
        entry = self.find(username)
        if entry is None:
            return False
        self.entries.remove(entry)
        self.save()
        return True

    def clear(self) -> int:
        count = len(self.entries)
        self.entries = []
        self.save()
        return count


class LeaderboardRegistry:
    """Un `LeaderboardStore` par mode de jeu, chargé au démarrage."""

    def __init__(self, data_dir: Path, modes: Iterable[str], *, legacy_mode: Optional[str] = None) -> None:
        self.data_dir = Path(data_dir)
        self.stores: Dict[str, LeaderboardStore] = {
            mode: LeaderboardStore(self.data_dir / mode_filename(mode), mode) for mode in modes
        }
        self.legacy_mode = legacy_mode if legacy_mode in self.stores else None

    @property
    def modes(self) -> List[str]:
        return list(self.stores.keys())

    def load(self) -> None:
        migrate = self._should_migrate_legacy()
        for store in self.stores.values():
            store.load()
        if migrate:
            self._migrate_legacy()

    def _should_migrate_legacy(self) -> bool:
        if not self.legacy_mode:
            return False
        legacy = self.data_dir / LEGACY_FILENAME
        return legacy.exists() and not self.stores[self.legacy_mode].path.exists()

    def _migrate_legacy(self) -> None:
        legacy = self.data_dir / LEGACY_FILENAME
        try:
            entries = _parse_entries(read_json(legacy), LEGACY_FILENAME)
        except (OSError, ValueError) as exc:
            logger.error("Cannot migrate legacy leaderboard", extra={"error": str(exc)})
            return
        store = self.stores[self.legacy_mode]
        store.entries = entries
        store.save()
        logger.info("Migrated %d legacy entries", len(entries), extra={"store": store.name})

    def store(self, mode: str) -> LeaderboardStore:
        try:
            return self.stores[mode]
        except KeyError:
            raise KeyError(f"Unknown game mode {mode!r}") from None

    def has_mode(self, mode: Optional[str]) -> bool:
        return bool(mode) and mode in self.stores

    def find_by_username(self, mode: str, username: str) -> Optional[LeaderboardEntry]:
        return self.store(mode).find(username)

    def upsert_if_higher(
        self,
        mode: str,
        username: str,
        score: int,
        distance: Optional[float] = None,
        time: Optional[float] = None,
        station_id: Optional[int] = None,
    ) -> UpsertResult:
        return self.store(mode).upsert_if_higher(username, score, distance, time, station_id)

    def top(self, mode: str, n: int = DEFAULT_TOP) -> List[Dict[str, Any]]:
        return self.store(mode).top(n)

    def top_all(self, n: int = DEFAULT_TOP) -> Dict[str, List[Dict[str, Any]]]:
        return {mode: store.top(n) for mode, store in self.stores.items()}

    def exists_across_modes(self, username: str) -> Set[str]:
        return {mode for mode, store in self.stores.items() if store.find(username) is not None}

    def delete(self, mode: str, username: str) -> bool:
        return self.store(mode).delete(username)

    def clear(self, mode: str) -> int:
        return self.store(mode).clear()

    def counts(self) -> Dict[str, int]:
        return {mode: len(store) for mode, store in self.stores.items()}

    def flush_all(self) -> None:
        for store in self.stores.values():
            store.save()


def kiosk_store(data_dir: Path) -> LeaderboardStore:
    return LeaderboardStore(Path(data_dir) / KIOSK_FILENAME, "kiosk", flat=True)
