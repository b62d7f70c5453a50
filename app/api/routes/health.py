from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.container import ServiceContainer, get_container

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(container: Annotated[ServiceContainer, Depends(get_container)]) -> dict:
    """Liveness probe.

    The API stays "ok" while the scheduler is stopped; scheduler state is
    reported alongside for dashboards.
    """

    return {"status": "ok", "scheduler_running": container.scheduler.running}
