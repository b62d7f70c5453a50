"""Periodic job scheduler.

Owns the two periodic jobs (monthly reset and audit cleanup) and starts,
stops and restarts them as a unit on top of APScheduler's AsyncIOScheduler.
Each job is registered under a fixed id with ``replace_existing=True`` and
``max_instances=1``, so registering twice replaces rather than stacks, and a
slow run is never overlapped by the next firing.

``stop()`` prevents future firings; it does not cancel a run already in
flight.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Callable
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.logging import correlation_scope
from app.schemas.jobs import (
    JobCounts,
    JobStatus,
    MonthlyResetConfig,
    MonthlyResetConfigUpdate,
    SchedulerHealth,
    SchedulerStatus,
)
from app.services.monthly_reset import MonthlyResetExecutor
from app.services.retention import RetentionService

logger = logging.getLogger(__name__)

MONTHLY_RESET_JOB_ID = "monthly-reset"
AUDIT_CLEANUP_JOB_ID = "audit-cleanup"

MONTHLY_AT_MIDNIGHT = "0 0 1 * *"
_DAILY_AT_HOUR = re.compile(r"0 (\d{1,2}) \* \* \*")


def cleanup_cron_expression(cleanup_hour: int) -> str:
    return f"0 {cleanup_hour} * * *"


def calculate_next_execution(cron_expression: str, now: datetime) -> str:
    """Describe the next firing of a cron expression.

    Only the two schedules this service uses are computed: the first day of
    the month at midnight and daily at a fixed hour. Anything else is
    returned as an opaque description.

    Args:
        cron_expression: Five-field cron expression.
        now: Current time, in the timezone the schedule runs in.

    Returns:
        ISO-8601 timestamp, or ``"Next execution based on: <expr>"``.
    """
    if cron_expression == MONTHLY_AT_MIDNIGHT:
        if now.month == 12:
            nxt = now.replace(year=now.year + 1, month=1, day=1, hour=0, minute=0,
                              second=0, microsecond=0)
        else:
            nxt = now.replace(month=now.month + 1, day=1, hour=0, minute=0,
                              second=0, microsecond=0)
        return nxt.isoformat()

    match = _DAILY_AT_HOUR.fullmatch(cron_expression)
    if match and int(match.group(1)) <= 23:
        nxt = now.replace(hour=int(match.group(1)), minute=0, second=0, microsecond=0)
        if nxt <= now:
            nxt += timedelta(days=1)
        return nxt.isoformat()

    return f"Next execution based on: {cron_expression}"


class TaskScheduler:
    """Stopped/Running state machine around the periodic jobs."""

    def __init__(
        self,
        reset_executor: MonthlyResetExecutor,
        retention: RetentionService,
        *,
        timezone: str = "UTC",
        scheduler_factory: Callable[[ZoneInfo], AsyncIOScheduler] | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(dt_timezone.utc),
    ) -> None:
        self._reset_executor = reset_executor
        self._retention = retention
        self._timezone = ZoneInfo(timezone)
        self._scheduler_factory = scheduler_factory or (lambda tz: AsyncIOScheduler(timezone=tz))
        self._now = now
        self._scheduler: AsyncIOScheduler | None = None
        self._started_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        """Register every enabled job and start firing. No-op when running."""

        if self._scheduler is not None:
            logger.warning("scheduler.already_running")
            return

        logger.info("scheduler.starting")
        scheduler = self._scheduler_factory(self._timezone)
        self._scheduler = scheduler
        try:
            self._register_monthly_reset_job(scheduler)
            self._register_cleanup_job(scheduler)
            scheduler.start()
        except Exception as exc:
            logger.error("scheduler.start_failed", extra={"error": str(exc)})
            self._scheduler = None
            raise

        self._started_at = self._now()
        logger.info(
            "scheduler.started",
            extra={
                "started_at": self._started_at.isoformat(),
                "jobs": [job.id for job in scheduler.get_jobs()],
            },
        )

    def stop(self) -> None:
        """Stop every job and drop the scheduler handle. No-op when stopped."""

        if self._scheduler is None:
            logger.warning("scheduler.not_running")
            return

        logger.info("scheduler.stopping")
        scheduler = self._scheduler
        self._scheduler = None
        self._started_at = None
        scheduler.remove_all_jobs()
        scheduler.shutdown(wait=False)
        logger.info("scheduler.stopped")

    def restart(self) -> None:
        logger.info("scheduler.restarting")
        self.stop()
        self.start()

    def shutdown(self) -> None:
        """Graceful stop for application shutdown; errors are logged only."""

        if self._scheduler is None:
            return
        try:
            self.stop()
        except Exception as exc:
            logger.error("scheduler.shutdown_failed", extra={"error": str(exc)})

    def restart_monthly_reset_job(
        self, update: MonthlyResetConfigUpdate | None = None
    ) -> MonthlyResetConfig:
        """Apply a configuration change and re-register the monthly reset job.

        Raises:
            ValidationAppError: If ``update`` is invalid.
        """
        config = self._reset_executor.get_config()
        if update is not None:
            config = self._reset_executor.update_config(update)

        if self._scheduler is not None:
            self._remove_job(self._scheduler, MONTHLY_RESET_JOB_ID)
            self._register_monthly_reset_job(self._scheduler)
        return config

    def restart_cleanup_job(self) -> None:
        """Re-register the cleanup job after a retention config change."""

        if self._scheduler is None:
            return
        self._remove_job(self._scheduler, AUDIT_CLEANUP_JOB_ID)
        self._register_cleanup_job(self._scheduler)

    def is_job_scheduled(self, job_id: str) -> bool:
        return self._scheduler is not None and self._scheduler.get_job(job_id) is not None

    def get_status(self) -> SchedulerStatus:
        reset_config = self._reset_executor.get_config()
        last_reset = self._reset_executor.get_last_execution()
        retention_config = self._retention.get_retention_config()

        reset_now = self._now().astimezone(ZoneInfo(reset_config.timezone))
        cleanup_now = self._now().astimezone(self._timezone)

        jobs = [
            JobStatus(
                name=MONTHLY_RESET_JOB_ID,
                enabled=reset_config.enabled,
                running=self.is_job_scheduled(MONTHLY_RESET_JOB_ID),
                last_execution=last_reset.timestamp if last_reset else None,
                next_execution=(
                    calculate_next_execution(reset_config.cron_expression, reset_now)
                    if reset_config.enabled
                    else None
                ),
                config={
                    "cron_expression": reset_config.cron_expression,
                    "timezone": reset_config.timezone,
                    "retry_attempts": reset_config.retry_attempts,
                    "retry_delay_ms": reset_config.retry_delay_ms,
                },
            ),
            JobStatus(
                name=AUDIT_CLEANUP_JOB_ID,
                enabled=retention_config.cleanup_enabled,
                running=self.is_job_scheduled(AUDIT_CLEANUP_JOB_ID),
                last_execution=retention_config.last_cleanup,
                next_execution=(
                    calculate_next_execution(
                        cleanup_cron_expression(retention_config.cleanup_hour), cleanup_now
                    )
                    if retention_config.cleanup_enabled
                    else None
                ),
                config={
                    "retention_days": retention_config.retention_days,
                    "cleanup_hour": retention_config.cleanup_hour,
                },
            ),
        ]

        return SchedulerStatus(running=self.running, jobs=jobs, started_at=self._started_at)

    def health_check(self) -> SchedulerHealth:
        status = self.get_status()
        uptime_ms = None
        if self._started_at is not None:
            uptime_ms = int((self._now() - self._started_at).total_seconds() * 1000)

        return SchedulerHealth(
            healthy=status.running,
            uptime_ms=uptime_ms,
            job_counts=JobCounts(
                total=len(status.jobs),
                enabled=sum(1 for job in status.jobs if job.enabled),
                running=sum(1 for job in status.jobs if job.running),
            ),
        )

    def _remove_job(self, scheduler: AsyncIOScheduler, job_id: str) -> None:
        if scheduler.get_job(job_id) is not None:
            scheduler.remove_job(job_id)
            logger.info("scheduler.job_removed", extra={"job_id": job_id})

    def _register_monthly_reset_job(self, scheduler: AsyncIOScheduler) -> None:
        config = self._reset_executor.get_config()
        if not config.enabled:
            logger.info("scheduler.job_disabled", extra={"job_id": MONTHLY_RESET_JOB_ID})
            return

        scheduler.add_job(
            self._run_monthly_reset,
            CronTrigger.from_crontab(config.cron_expression, timezone=ZoneInfo(config.timezone)),
            id=MONTHLY_RESET_JOB_ID,
            name="Reset monthly tenant usage",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "scheduler.job_registered",
            extra={
                "job_id": MONTHLY_RESET_JOB_ID,
                "cron_expression": config.cron_expression,
                "timezone": config.timezone,
                "retry_attempts": config.retry_attempts,
            },
        )

    def _register_cleanup_job(self, scheduler: AsyncIOScheduler) -> None:
        config = self._retention.get_retention_config()
        if not config.cleanup_enabled:
            logger.info("scheduler.job_disabled", extra={"job_id": AUDIT_CLEANUP_JOB_ID})
            return

        cron_expression = cleanup_cron_expression(config.cleanup_hour)
        scheduler.add_job(
            self._run_cleanup,
            CronTrigger.from_crontab(cron_expression, timezone=self._timezone),
            id=AUDIT_CLEANUP_JOB_ID,
            name="Delete expired audit logs",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "scheduler.job_registered",
            extra={
                "job_id": AUDIT_CLEANUP_JOB_ID,
                "cron_expression": cron_expression,
                "retention_days": config.retention_days,
            },
        )

    async def _run_monthly_reset(self) -> None:
        with correlation_scope(f"job-{MONTHLY_RESET_JOB_ID}-{uuid.uuid4()}"):
            logger.info("scheduler.job_triggered", extra={"job_id": MONTHLY_RESET_JOB_ID})
            try:
                await self._reset_executor.execute_monthly_reset()
            except Exception as exc:
                logger.error(
                    "scheduler.job_failed",
                    extra={"job_id": MONTHLY_RESET_JOB_ID, "error": str(exc)},
                )

    async def _run_cleanup(self) -> None:
        with correlation_scope(f"job-{AUDIT_CLEANUP_JOB_ID}-{uuid.uuid4()}"):
            logger.info("scheduler.job_triggered", extra={"job_id": AUDIT_CLEANUP_JOB_ID})
            try:
                await self._retention.run_scheduled_cleanup()
            except Exception as exc:
                logger.error(
                    "scheduler.job_failed",
                    extra={"job_id": AUDIT_CLEANUP_JOB_ID, "error": str(exc)},
                )
