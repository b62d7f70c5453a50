"""Admin endpoints for the scheduler and the monthly reset job."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends

from app.core.auth import verify_admin_key
from app.core.container import ServiceContainer, get_container
from app.core.errors import ValidationAppError
from app.schemas.jobs import MonthlyResetConfigUpdate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/jobs",
    tags=["Jobs"],
    dependencies=[Depends(verify_admin_key)],
)

Container = Annotated[ServiceContainer, Depends(get_container)]


@router.get("/status")
def get_jobs_status(container: Container) -> dict:
    """Scheduler state, every periodic job, and the aggregated health view."""

    scheduler = container.scheduler
    return {
        "success": True,
        "data": {
            "scheduler": scheduler.get_status().model_dump(mode="json"),
            "health": scheduler.health_check().model_dump(mode="json"),
        },
    }


@router.get("/monthly-reset")
def get_monthly_reset(container: Container) -> dict:
    executor = container.reset_executor
    last_execution = executor.get_last_execution()
    return {
        "success": True,
        "data": {
            "config": executor.get_config().model_dump(mode="json"),
            "last_execution": last_execution.model_dump(mode="json") if last_execution else None,
            "is_running": executor.is_running,
            "scheduled": container.scheduler.is_job_scheduled("monthly-reset"),
        },
    }


@router.post("/monthly-reset/execute")
async def execute_monthly_reset(container: Container) -> dict:
    """Run the monthly reset immediately, outside its schedule.

    Raises:
        ValidationAppError: If a run is already in flight.
    """
    executor = container.reset_executor
    if executor.is_running:
        raise ValidationAppError(
            code="monthly_reset_in_progress",
            message="A monthly reset is already running",
        )

    logger.info("jobs.monthly_reset_manual_trigger")
    result = await executor.execute_monthly_reset()
    return {"success": True, "data": result.model_dump(mode="json")}


@router.post("/monthly-reset/restart")
async def restart_monthly_reset(
    container: Container,
    update: Annotated[MonthlyResetConfigUpdate | None, Body()] = None,
) -> dict:
    """Apply an optional configuration change and reschedule the job."""

    config = container.scheduler.restart_monthly_reset_job(update)
    return {
        "success": True,
        "data": {
            "config": config.model_dump(mode="json"),
            "scheduled": container.scheduler.is_job_scheduled("monthly-reset"),
        },
    }


@router.post("/scheduler/restart")
async def restart_scheduler(container: Container) -> dict:
    container.scheduler.restart()
    return {"success": True, "data": container.scheduler.get_status().model_dump(mode="json")}


@router.post("/notifications/test")
async def send_test_notification(container: Container) -> dict:
    notification = await container.dispatcher.send_test_notification()
    return {
        "success": True,
        "data": {
            "notification": notification.model_dump(mode="json"),
            "webhook_configured": bool(container.dispatcher.config.webhook_url),
            "enabled": container.dispatcher.config.enabled,
        },
    }
