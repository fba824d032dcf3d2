"""Aggregate all v1 API routers."""

from fastapi import APIRouter

from genstudio.api.v1.admin import router as admin_router
from genstudio.api.v1.generate import router as generate_router
from genstudio.api.v1.generations import router as generations_router
from genstudio.api.v1.health import router as health_router
from genstudio.api.v1.models_api import router as models_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(models_router, tags=["models"])
v1_router.include_router(generate_router, tags=["generate"])
v1_router.include_router(generations_router, tags=["generations"])
v1_router.include_router(admin_router, tags=["admin"])
