"""
Application FastAPI : point d'entrée
====================================

Rôle
----
- Instancie l'app FastAPI, configure le CORS pour le tableau de bord,
- Monte les routeurs (santé, classements + SSE, admin),
- Démarre / arrête le `ServiceRuntime` (broker MQTT + boucle de traitement) dans le lifespan.

Notes
-----
- Le runtime est créé une seule fois et rangé dans `app.state.runtime` ; les routes y
  accèdent via `Depends(get_runtime)`.
- La boucle de traitement tourne comme tâche asyncio sur la boucle d'uvicorn : routes admin
  et handlers MQTT partagent donc le même thread.
- ⚠️ Le middleware CORS doit être ajouté AVANT les include_router.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marathon.config.settings import Settings, settings
from marathon.routes.admin import router as admin_router
from marathon.routes.health import router as health_router
from marathon.routes.leaderboard import router as leaderboard_router
from marathon.services.runtime import ServiceRuntime

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

# Tableau de bord servi en local (dev) ; restreindre en prod.
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def create_app(
    runtime: Optional[ServiceRuntime] = None,
    *,
    app_settings: Optional[Settings] = None,
    connect: Optional[bool] = None,
) -> FastAPI:
    """
    - `runtime` : injecté en test ; sinon construit depuis les settings au démarrage.
    - `connect` : ouvrir la session broker au démarrage (défaut : `MQTT_ENABLED`).
    """
    current = app_settings or settings
    configure_logging(current.LOG_LEVEL)
    should_connect = current.MQTT_ENABLED if connect is None else connect

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        rt = runtime or ServiceRuntime.from_settings(current)
        app.state.runtime = rt
        rt.start(connect=should_connect)
        loop_task = asyncio.create_task(rt.run())
        logger.info("%s ready", current.APP_NAME)
        try:
            yield
        finally:
            rt.stop()
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task
            logger.info("%s stopped", current.APP_NAME)

    app = FastAPI(title=current.APP_NAME, lifespan=lifespan)
    app.state.settings = current

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Protection admin au niveau du router /admin
    app.include_router(health_router)
    app.include_router(leaderboard_router)
    app.include_router(admin_router)

    @app.get("/")
    async def root():
        """Ping basique : l'app tourne (indépendamment du broker)."""
        return {"ok": True, "service": "marathon-backend"}

    return app


app = create_app()


def run() -> None:
    """Entrée console `marathon-backend`."""
    uvicorn.run("marathon.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
