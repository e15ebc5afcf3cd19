"""
Module routes/health.py
Rôle:
- Endpoint de santé : service OK + état de la session broker + taille des classements.
"""
from fastapi import APIRouter, Depends, Request

from marathon.config.settings import settings
from marathon.deps.runtime import get_runtime
from marathon.services.runtime import ServiceRuntime

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health(request: Request, runtime: ServiceRuntime = Depends(get_runtime)):
    """`ok` reste vrai broker déconnecté : le HTTP et les classements restent servis."""
    current = getattr(request.app.state, "settings", None) or settings
    return {"ok": True, "service": current.APP_NAME, **runtime.stats()}
