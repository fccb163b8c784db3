"""
Rollcall - School Management API

FastAPI application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from rollcall import __version__
from rollcall.app.dependencies import (
    build_application,
    get_application,
    get_settings,
    shutdown_application,
)
from rollcall.app.http import router as dispatch_router
from rollcall.config.schemas import AppSettings
from rollcall.storage import DocumentStore

logger = logging.getLogger(__name__)


def configure_logging(settings: AppSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    settings: AppSettings | None = None,
    store: DocumentStore | None = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings override; defaults to get_settings()
        store: Storage override; defaults to the configured backend
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Builds the route table on startup; a configuration error aborts it.
        """
        logger.info("Starting Rollcall services...")
        try:
            app.state.rollcall = await build_application(settings, store=store)
            logger.info("Rollcall services initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize services: {e}", exc_info=True)
            raise

        yield

        logger.info("Shutting down Rollcall services...")
        try:
            await shutdown_application(app.state.rollcall)
            logger.info("Rollcall services shut down successfully")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}", exc_info=True)

    app = FastAPI(
        title="Rollcall",
        description="School management API: schools, classrooms, students and users",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials="*" not in settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(dispatch_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, str]:
        """Root endpoint with service info."""
        return {
            "service": settings.service_name,
            "version": __version__,
            "status": "running",
        }

    @app.get("/health", tags=["health"])
    async def health_check(request: Request) -> dict[str, Any]:
        """
        Health check endpoint.

        Returns route counts, middleware units and dispatch statistics. The
        full route listing is included only where the environment allows it.
        """
        application = get_application(request)
        body: dict[str, Any] = {
            "status": "healthy",
            "environment": settings.environment,
            "storage": settings.storage_backend,
            "routes": len(application.routes.routes()),
            "middleware": application.registry.list_names(),
            "stats": application.metrics.get_stats(),
        }
        if settings.profile.expose_route_listing:
            body["route_listing"] = application.routes.describe()
        return body

    return app


settings = get_settings()
configure_logging(settings)
app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rollcall.app.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
    )
