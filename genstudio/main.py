"""GenStudio generation backend - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from genstudio.api.v1.files import router as files_router
from genstudio.api.v1.health import router as health_root_router
from genstudio.api.v1.router import v1_router
from genstudio.config import Settings, settings as default_settings
from genstudio.logging_config import configure_logging
from genstudio.services import Services, build_services

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """Build the application. Passing ``services`` skips building them from settings."""
    settings = settings or (services.settings if services else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        configure_logging(settings.log_level)
        logger.info(f"Starting GenStudio generation backend on port {settings.port}")
        logger.info(f"Dispatch mode: {settings.dispatch_mode}")
        logger.info(f"Job store: {settings.job_store_backend}, storage: {settings.storage_backend}")

        app.state.services = services or build_services(settings)
        await app.state.services.start()
        logger.info("Job dispatcher and reconciler started")

        yield

        logger.info("Shutting down GenStudio generation backend")
        await app.state.services.stop()

    app = FastAPI(
        title="GenStudio Generation Service",
        description="Asynchronous image and video generation across multiple providers",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_root_router, tags=["health"])  # GET /health at root
    app.include_router(files_router, tags=["files"])  # GET /files/{bucket}/{path}
    app.include_router(v1_router)  # All /api/v1/* endpoints
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=default_settings.port)
