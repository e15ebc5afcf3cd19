"""
Service: errors.py
Taxonomie des erreurs du backend.

- DecodeError      : payload illisible (pas du JSON objet, discriminant absent). Message ignoré.
- ValidationError  : payload lisible mais champ invalide. Réponse d'échec explicite (`reason`).
- TransportError   : broker injoignable / connexion refusée. Retenté automatiquement.
- PersistenceError : écriture disque impossible. L'état mémoire reste la référence.
"""
from __future__ import annotations


class MarathonError(RuntimeError):
    """Racine commune des erreurs du backend."""


class DecodeError(MarathonError):
    """Payload malformé : impossible d'identifier le message ou le demandeur."""


class ValidationError(MarathonError):
    """Payload bien formé mais refusé ; `reason` est renvoyé tel quel au client."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class TransportError(MarathonError):
    """Échec côté broker (connexion, abonnement)."""


class PersistenceError(MarathonError):
    """Échec d'écriture d'un fichier de leaderboard."""
