"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Service health, wiring and system info."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        return {"status": "starting"}

    return {
        "status": "healthy",
        "job_store": type(services.store).__name__,
        "object_storage": type(services.storage).__name__,
        "dispatcher": type(services.dispatcher).__name__,
        "models": len(services.registry.list_models()),
        "python_version": sys.version,
        "platform": platform.platform(),
    }
