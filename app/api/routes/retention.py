"""Admin endpoints for the audit log retention policy."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.auth import verify_admin_key
from app.core.container import ServiceContainer, get_container
from app.schemas.jobs import RetentionConfigUpdate

router = APIRouter(
    prefix="/audit-logs/retention",
    tags=["Retention"],
    dependencies=[Depends(verify_admin_key)],
)

Container = Annotated[ServiceContainer, Depends(get_container)]


@router.get("/config")
def get_retention_config(container: Container) -> dict:
    return {
        "success": True,
        "data": container.retention.get_retention_config().model_dump(mode="json"),
    }


@router.post("/config")
async def update_retention_config(update: RetentionConfigUpdate, container: Container) -> dict:
    """Validate and apply a partial retention update.

    The cleanup job is re-registered so a new ``cleanup_hour`` or
    ``cleanup_enabled`` takes effect immediately. An out-of-range value is
    rejected with 400 and leaves the policy unchanged.
    """
    config = container.retention.update_retention_config(update)
    container.scheduler.restart_cleanup_job()
    return {"success": True, "data": config.model_dump(mode="json")}


@router.post("/cleanup")
async def run_cleanup(container: Container) -> dict:
    """Run the retention cleanup now. Returns a skipped result when disabled."""

    result = await container.retention.cleanup_old_logs()
    return {"success": True, "data": result.model_dump(mode="json")}
