"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers,
lifespan) so tests can build isolated instances.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import client_router, health_router, jobs_router, retention_router
from app.core.config import settings
from app.core.container import get_container, reset_container
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import TAGS_METADATA, apply_openapi_customizations

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create storage schema, start the scheduler, and tear both down on exit."""

    container = get_container()
    await container.startup(start_scheduler=settings.app.scheduler_enabled)
    logger.info(
        "app.started",
        extra={
            "app_env": settings.app_env,
            "scheduler_enabled": settings.app.scheduler_enabled,
            "cache_backend": settings.cache.backend,
        },
    )
    try:
        yield
    finally:
        await container.shutdown()
        reset_container()
        logger.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Quota Guard API",
        description=(
            "Per-tenant rate limiting and monthly quota enforcement, plus the "
            "scheduled maintenance jobs behind them: monthly usage reset, audit "
            "log retention cleanup and job outcome notifications."
        ),
        version="0.1.0",
        openapi_tags=TAGS_METADATA,
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(jobs_router, prefix="/v1")
    app.include_router(retention_router, prefix="/v1")
    app.include_router(client_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
