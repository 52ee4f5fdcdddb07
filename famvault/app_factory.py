"""
FastAPI application factory for famvault.

Creates the HTTP surface over FamilyAccessService: error handlers, routers
and the background expiry sweep.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from famvault import __version__
from famvault.background_jobs import BackgroundJobManager, register_expiry_jobs
from famvault.config import FamVaultSettings, get_settings
from famvault.errors.handler import register_error_handlers
from famvault.services.access import FamilyAccessService
from famvault.utils.structured_logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Starts the expiry sweep on startup and stops it on shutdown.
    """
    # ===== STARTUP =====
    settings: FamVaultSettings = app.state.settings
    configure_logging(settings.log_level, settings.log_json)
    logger.info(f"Starting famvault {__version__} ({settings.environment})")

    job_manager: BackgroundJobManager = app.state.job_manager
    await job_manager.start()

    yield

    # ===== SHUTDOWN =====
    await job_manager.stop()
    app.state.access_service.db.close()
    logger.info("famvault stopped")


def create_app(
    settings: Optional[FamVaultSettings] = None,
    service: Optional[FamilyAccessService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Runtime settings. Defaults to get_settings().
        service: Pre-built access service (tests pass one sharing their database).

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or get_settings()
    service = service or FamilyAccessService.from_settings(settings)

    app = FastAPI(
        title="famvault API",
        description="Family shared-storage permissions, delegation requests and audit trail",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    job_manager = BackgroundJobManager()
    register_expiry_jobs(job_manager, service, interval_seconds=settings.sweep_interval_seconds)

    app.state.settings = settings
    app.state.access_service = service
    app.state.job_manager = job_manager

    register_error_handlers(app)

    from famvault.routes import delegations, family, permissions
    app.include_router(delegations.router, prefix="/api/v1")
    app.include_router(permissions.router, prefix="/api/v1")
    app.include_router(family.router, prefix="/api/v1")

    @app.get("/health", tags=["system"])
    async def health():
        return {"status": "ok", "version": __version__, "jobs": job_manager.get_status()}

    return app
