"""
Dépendance d'authentification admin
===================================

Objectif
--------
Fournir une *dependency* FastAPI `admin_required` qui protège les routes de maintenance
(suppression d'entrée, purge d'un classement, rechargement de config.json) via un
**Bearer token** (`settings.ADMIN_TOKEN`).

Comportement & codes retour
---------------------------
- 401 si aucun Bearer n'est fourni.
- 403 si le Bearer ne correspond pas à `ADMIN_TOKEN`.
- True sinon.

Notes
-----
- `HTTPBearer(auto_error=False)` pour renvoyer nos propres 401/403.
- Comparaison à temps constant (`secrets.compare_digest`).
- Le token est lu à chaque requête : `app.state.settings` prime sur le module `settings`
  (pratique en test).
"""
from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from marathon.config.settings import settings

# Schéma Bearer (désactive l'erreur auto pour qu'on rende nos 401/403)
bearer = HTTPBearer(auto_error=False)


def _expected_token(request: Request) -> str:
    current = getattr(request.app.state, "settings", None) or settings
    return current.ADMIN_TOKEN


def admin_required(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
):
    """Autorise si `Authorization: Bearer <ADMIN_TOKEN>`."""
    if credentials is None or (credentials.scheme or "").lower() != "bearer":
        raise HTTPException(status_code=401, detail="Admin authentication required")
    if not secrets.compare_digest(credentials.credentials, _expected_token(request)):
        raise HTTPException(status_code=403, detail="Invalid token")
    return True
