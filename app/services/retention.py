"""Audit log retention.

Owns the process-wide retention policy (a single in-memory instance seeded
from the environment; not persisted across restarts) and deletes audit
records older than the configured number of days.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from app.adapters.storage.base import AbstractAuditLogRepository
from app.core.config import AuditSettings
from app.core.errors import ValidationAppError
from app.schemas.jobs import (
    AuditCleanupOutcome,
    CleanupResult,
    RetentionConfig,
    RetentionConfigUpdate,
)
from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

MIN_RETENTION_DAYS = 30
MAX_RETENTION_DAYS = 730


def retention_config_from_settings(cfg: AuditSettings) -> RetentionConfig:
    return RetentionConfig(
        retention_days=cfg.log_retention_days,
        cleanup_enabled=cfg.cleanup_enabled,
        cleanup_hour=cfg.cleanup_hour,
    )


def _validate_update(update: RetentionConfigUpdate) -> None:
    if update.retention_days is not None and not (
        MIN_RETENTION_DAYS <= update.retention_days <= MAX_RETENTION_DAYS
    ):
        raise ValidationAppError(
            code="invalid_retention_days",
            message=f"Retention days must be between {MIN_RETENTION_DAYS} and {MAX_RETENTION_DAYS}",
            details={
                "field": "retention_days",
                "min_value": MIN_RETENTION_DAYS,
                "max_value": MAX_RETENTION_DAYS,
                "actual_value": update.retention_days,
            },
        )
    if update.cleanup_hour is not None and not (0 <= update.cleanup_hour <= 23):
        raise ValidationAppError(
            code="invalid_cleanup_hour",
            message="Cleanup hour must be between 0 and 23",
            details={
                "field": "cleanup_hour",
                "min_value": 0,
                "max_value": 23,
                "actual_value": update.cleanup_hour,
            },
        )


class RetentionService:
    """Retention policy owner and audit log cleaner.

    Callers that change ``cleanup_hour`` or ``cleanup_enabled`` are expected to
    restart the cleanup schedule afterwards.
    """

    def __init__(
        self,
        audit_logs: AbstractAuditLogRepository,
        dispatcher: NotificationDispatcher,
        config: RetentionConfig,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._audit_logs = audit_logs
        self._dispatcher = dispatcher
        self._config = config
        self._now = now

    def get_retention_config(self) -> RetentionConfig:
        return self._config

    def update_retention_config(self, update: RetentionConfigUpdate) -> RetentionConfig:
        """Apply the supplied fields after validating them.

        Raises:
            ValidationAppError: If a value is out of range; nothing is changed.
        """
        _validate_update(update)
        changes = update.model_dump(exclude_none=True)
        self._config = self._config.model_copy(update=changes)

        logger.info("retention.config_updated", extra={"config": self._config.model_dump()})
        return self._config

    def get_cleanup_stats(self) -> dict[str, datetime | int | None]:
        return {
            "last_cleanup": self._config.last_cleanup,
            "last_cleanup_deleted": self._config.last_cleanup_deleted,
        }

    async def cleanup_old_logs(self) -> CleanupResult:
        """Delete audit records older than the retention window.

        Returns:
            CleanupResult; ``deleted_records=0`` and no storage call when
            cleanup is disabled.

        Raises:
            StorageAppError: Propagated from the audit repository.
        """
        config = self._config
        now = self._now()

        if not config.cleanup_enabled:
            logger.info("retention.cleanup_disabled")
            return CleanupResult(
                deleted_records=0,
                cutoff_date=now,
                retention_days=config.retention_days,
                skipped=True,
            )

        cutoff = now - timedelta(days=config.retention_days)
        started = time.perf_counter()
        logger.info(
            "retention.cleanup_started",
            extra={"retention_days": config.retention_days, "cutoff_date": cutoff.isoformat()},
        )

        try:
            deleted = await self._audit_logs.delete_older_than(cutoff)
        except Exception as exc:
            logger.error("retention.cleanup_failed", extra={"error": str(exc)})
            raise

        # Only the stats fields are written; a concurrent admin update wins for the rest
        self._config = self._config.model_copy(
            update={"last_cleanup": now, "last_cleanup_deleted": deleted}
        )

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "retention.cleanup_completed",
            extra={"deleted_records": deleted, "cutoff_date": cutoff.isoformat()},
        )
        return CleanupResult(
            deleted_records=deleted,
            cutoff_date=cutoff,
            retention_days=config.retention_days,
            duration_ms=duration_ms,
        )

    async def run_scheduled_cleanup(self) -> CleanupResult:
        """Scheduler entry point: clean up and report the outcome.

        Raises:
            Exception: Re-raised after the failure notification is dispatched.
        """
        try:
            result = await self.cleanup_old_logs()
        except Exception as exc:
            await self._dispatcher.dispatch(
                AuditCleanupOutcome(
                    retention_days=self._config.retention_days,
                    error=str(exc) or type(exc).__name__,
                )
            )
            raise

        if not result.skipped:
            await self._dispatcher.dispatch(AuditCleanupOutcome(result=result))
        return result
