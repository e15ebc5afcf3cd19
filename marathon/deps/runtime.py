"""Accès au `ServiceRuntime` unique, porté par `app.state` (jamais de global)."""
from fastapi import HTTPException, Request

from marathon.services.runtime import ServiceRuntime


def get_runtime(request: Request) -> ServiceRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Runtime not started")
    return runtime
