from __future__ import annotations

from app.api.routes.client import router as client_router
from app.api.routes.health import router as health_router
from app.api.routes.jobs import router as jobs_router
from app.api.routes.retention import router as retention_router

__all__ = ["client_router", "health_router", "jobs_router", "retention_router"]
