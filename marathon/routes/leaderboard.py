"""
Module routes/leaderboard.py
Rôle:
- Lecture des classements (par mode, tous modes, kiosque).
- Flux SSE `/leaderboard/stream` consommé par le tableau de bord en lecture seule.

Notes:
- `/leaderboard/stream` est déclaré AVANT `/leaderboard/{mode}` (sinon "stream" serait pris
  pour un mode).
- Mode inconnu -> 404.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from marathon.deps.runtime import get_runtime
from marathon.services.leaderboard_store import DEFAULT_TOP
from marathon.services.runtime import ServiceRuntime

router = APIRouter(tags=["leaderboard"])

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


@router.get("/leaderboard")
async def all_leaderboards(
    limit: int = Query(DEFAULT_TOP, ge=1, le=100),
    runtime: ServiceRuntime = Depends(get_runtime),
):
    """Top `limit` de chaque mode, indexé par mode."""
    return {"leaderboards": runtime.registry.top_all(limit)}


@router.get("/leaderboard/stream")
async def leaderboard_stream(
    max_events: Optional[int] = Query(None, ge=1),
    runtime: ServiceRuntime = Depends(get_runtime),
):
    """
    Server-Sent Events : un événement `leaderboard` immédiat (état courant), puis un par
    diffusion périodique et après chaque modification.
    """
    queue = runtime.hub.subscribe()
    initial = ("leaderboard", runtime.leaderboards.leaderboard_snapshot())
    return StreamingResponse(
        runtime.hub.stream(queue, max_events=max_events, initial=initial),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/leaderboard/{mode}")
async def mode_leaderboard(
    mode: str,
    limit: int = Query(DEFAULT_TOP, ge=1, le=100),
    runtime: ServiceRuntime = Depends(get_runtime),
):
    if not runtime.registry.has_mode(mode):
        raise HTTPException(status_code=404, detail=f"Unknown game mode: {mode}")
    return {"gameMode": mode, "entries": runtime.registry.top(mode, limit)}


@router.get("/kiosk/leaderboard")
async def kiosk_leaderboard(runtime: ServiceRuntime = Depends(get_runtime)):
    if runtime.kiosk is None:
        raise HTTPException(status_code=404, detail="Kiosk flow disabled")
    message = runtime.kiosk.top10_message()
    return {"leaderboard": message["leaderboard"], "totalDistances": message["totalDistances"]}
