"""Monthly usage reset job.

Resets every active tenant's monthly counter, one tenant at a time, with a
bounded number of attempts per tenant. A tenant that keeps failing is
recorded in the result and skipped; only a failure to list tenants aborts the
run. Resetting is idempotent, so an interrupted run is simply executed again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger

from app.adapters.storage.base import AbstractTenantRepository
from app.core.config import MonthlyResetSettings
from app.core.errors import ValidationAppError
from app.schemas.jobs import (
    MonthlyResetConfig,
    MonthlyResetConfigUpdate,
    MonthlyResetOutcome,
    ResetJobResult,
    TenantResetError,
    utcnow,
)
from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)

SYSTEM_TENANT_ID = "SYSTEM"
RETRIES_EXHAUSTED = "Failed after all retry attempts"


@dataclass(frozen=True)
class TenantResetAttempt:
    """Outcome of resetting one tenant."""

    succeeded: bool
    attempts: int
    last_error: str | None = None


def monthly_reset_config_from_settings(cfg: MonthlyResetSettings) -> MonthlyResetConfig:
    return MonthlyResetConfig(
        enabled=cfg.enabled,
        cron_expression=cfg.cron,
        timezone=cfg.timezone,
        retry_attempts=cfg.retry_attempts,
        retry_delay_ms=cfg.retry_delay_ms,
        page_size=cfg.page_size,
    )


def _validate_schedule(cron_expression: str, timezone: str) -> None:
    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationAppError(
            code="invalid_timezone",
            message=f"Unknown timezone: '{timezone}'",
            details={"field": "timezone", "actual_value": timezone},
        ) from exc
    try:
        CronTrigger.from_crontab(cron_expression, timezone=tz)
    except ValueError as exc:
        raise ValidationAppError(
            code="invalid_cron_expression",
            message=f"Invalid cron expression: '{cron_expression}'",
            details={"field": "cron_expression", "actual_value": cron_expression},
        ) from exc


class MonthlyResetExecutor:
    """Run the monthly reset and keep its configuration and last result."""

    def __init__(
        self,
        tenants: AbstractTenantRepository,
        dispatcher: NotificationDispatcher,
        config: MonthlyResetConfig,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._tenants = tenants
        self._dispatcher = dispatcher
        self._config = config
        self._sleep = sleep
        self._last_execution: ResetJobResult | None = None
        self._running = False

    def get_config(self) -> MonthlyResetConfig:
        return self._config

    def get_last_execution(self) -> ResetJobResult | None:
        return self._last_execution

    @property
    def is_running(self) -> bool:
        """True while a run is in flight."""
        return self._running

    def update_config(self, update: MonthlyResetConfigUpdate) -> MonthlyResetConfig:
        """Validate and apply a partial configuration change.

        Raises:
            ValidationAppError: If any supplied value is invalid; the current
                configuration is left untouched.
        """
        changes = update.model_dump(exclude_none=True)

        if "retry_attempts" in changes and changes["retry_attempts"] < 1:
            raise ValidationAppError(
                code="invalid_retry_attempts",
                message="Retry attempts must be at least 1",
                details={"field": "retry_attempts", "min_value": 1,
                         "actual_value": changes["retry_attempts"]},
            )
        if "retry_delay_ms" in changes and changes["retry_delay_ms"] < 0:
            raise ValidationAppError(
                code="invalid_retry_delay",
                message="Retry delay must not be negative",
                details={"field": "retry_delay_ms", "min_value": 0,
                         "actual_value": changes["retry_delay_ms"]},
            )

        candidate = self._config.model_copy(update=changes)
        _validate_schedule(candidate.cron_expression, candidate.timezone)

        self._config = candidate
        logger.info("monthly_reset.config_updated", extra={"config": candidate.model_dump()})
        return candidate

    async def reset_tenant_with_retry(
        self, tenant_id: str, max_attempts: int, delay_ms: int
    ) -> TenantResetAttempt:
        """Reset one tenant, retrying up to ``max_attempts`` times.

        Sleeps ``delay_ms`` between attempts. Never raises.
        """
        last_error: str | None = None
        attempt = 0
        while attempt < max_attempts:
            attempt += 1
            try:
                await self._tenants.reset_monthly_usage(tenant_id)
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                logger.warning(
                    "monthly_reset.tenant_attempt_failed",
                    extra={
                        "tenant_id": tenant_id,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "error": last_error,
                    },
                )
                if attempt < max_attempts:
                    await self._sleep(delay_ms / 1000)
                continue

            logger.info(
                "monthly_reset.tenant_reset",
                extra={"tenant_id": tenant_id, "attempt": attempt},
            )
            return TenantResetAttempt(succeeded=True, attempts=attempt)

        logger.error(
            "monthly_reset.tenant_failed_permanently",
            extra={"tenant_id": tenant_id, "attempts": attempt, "error": last_error},
        )
        return TenantResetAttempt(succeeded=False, attempts=attempt, last_error=last_error)

    async def execute_monthly_reset(self) -> ResetJobResult:
        """Reset every active tenant and report the outcome.

        Returns:
            ResetJobResult for the run (also kept as the last execution).

        Raises:
            Exception: Whatever the tenant listing raised; a failure
                notification is dispatched first.
        """
        config = self._config
        started = time.perf_counter()
        result = ResetJobResult(timestamp=utcnow())
        self._running = True

        logger.info("monthly_reset.started", extra={"page_size": config.page_size})
        try:
            try:
                tenants = await self._tenants.list_active(limit=config.page_size)
            except Exception as exc:
                message = str(exc) or type(exc).__name__
                logger.error("monthly_reset.listing_failed", extra={"error": message})
                result.success = False
                result.errors.append(TenantResetError(tenant_id=SYSTEM_TENANT_ID, error=message))
                result.duration_ms = int((time.perf_counter() - started) * 1000)
                self._last_execution = result
                await self._dispatcher.dispatch(MonthlyResetOutcome(result=result))
                raise

            result.total_tenants = len(tenants)
            logger.info("monthly_reset.tenants_found", extra={"total_tenants": len(tenants)})

            for tenant in tenants:
                attempt = await self.reset_tenant_with_retry(
                    tenant.id, config.retry_attempts, config.retry_delay_ms
                )
                if attempt.succeeded:
                    result.success_count += 1
                    continue
                result.failure_count += 1
                error = RETRIES_EXHAUSTED
                if attempt.last_error:
                    error = f"{RETRIES_EXHAUSTED}: {attempt.last_error}"
                result.errors.append(TenantResetError(tenant_id=tenant.id, error=error))

            result.success = result.failure_count == 0
            result.duration_ms = int((time.perf_counter() - started) * 1000)
            self._last_execution = result

            logger.info(
                "monthly_reset.completed",
                extra={
                    "total_tenants": result.total_tenants,
                    "success_count": result.success_count,
                    "failure_count": result.failure_count,
                    "duration_ms": result.duration_ms,
                },
            )

            await self._dispatcher.dispatch(MonthlyResetOutcome(result=result))
            return result
        finally:
            self._running = False
