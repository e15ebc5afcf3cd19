"""
Routes d'administration (Bearer ADMIN_TOKEN).

Maintenance des classements depuis le tableau de bord : suppression d'une entrée, purge d'un
classement (par mode ou kiosque) et rechargement de config.json. Les handlers sont `async`
afin de s'exécuter sur la boucle asyncio, comme la boucle de traitement MQTT : une opération
admin n'est jamais concurrente d'un handler de requête.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from marathon.deps.auth import admin_required
from marathon.deps.runtime import get_runtime
from marathon.services.runtime import ServiceRuntime

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(admin_required)],
)


def _known_mode(runtime: ServiceRuntime, mode: str) -> str:
    if not runtime.registry.has_mode(mode):
        raise HTTPException(status_code=404, detail=f"Unknown game mode: {mode}")
    return mode


def _kiosk(runtime: ServiceRuntime) -> ServiceRuntime:
    if runtime.kiosk_store is None:
        raise HTTPException(status_code=404, detail="Kiosk flow disabled")
    return runtime


@router.post("/leaderboard/{mode}/clear")
async def clear_leaderboard(mode: str, runtime: ServiceRuntime = Depends(get_runtime)):
    removed = runtime.clear_mode(_known_mode(runtime, mode))
    return {"ok": True, "gameMode": mode, "removed": removed}


@router.delete("/leaderboard/{mode}/{username}")
async def delete_entry(mode: str, username: str, runtime: ServiceRuntime = Depends(get_runtime)):
    if not runtime.delete_entry(_known_mode(runtime, mode), username):
        raise HTTPException(status_code=404, detail=f"Unknown entry: {username}")
    return {"ok": True, "gameMode": mode, "username": username}


@router.post("/kiosk/clear")
async def clear_kiosk(runtime: ServiceRuntime = Depends(get_runtime)):
    removed = _kiosk(runtime).clear_kiosk()
    return {"ok": True, "removed": removed}


@router.delete("/kiosk/{username}")
async def delete_kiosk_entry(username: str, runtime: ServiceRuntime = Depends(get_runtime)):
    if not _kiosk(runtime).delete_kiosk_entry(username):
        raise HTTPException(status_code=404, detail=f"Unknown entry: {username}")
    return {"ok": True, "username": username}


@router.post("/config/reload")
async def reload_config(runtime: ServiceRuntime = Depends(get_runtime)):
    """Relit config.json ; fichier invalide -> configuration par défaut (journalisé)."""
    config = runtime.reload_config()
    return {"ok": True, "gameModes": config.modes_payload(), "broadcast": config.broadcast.model_dump(by_alias=True)}
