"""Per-request quota enforcement.

Two independent checks guard every tenant request:
- a per-minute window kept in the counter store (TTL-bound, 60 seconds);
- the monthly usage counter persisted on the tenant row.

The minute check fails open when the counter store is unavailable, and the
monthly counter is incremented by a detached task so the request path never
waits on storage. Under bursty load the monthly counter can lag the true
request count; that eventual consistency is accepted.
"""

from __future__ import annotations

import asyncio
import logging

from app.adapters.counter_store.base import AbstractCounterStore
from app.adapters.storage.base import AbstractTenantRepository
from app.core.errors import QuotaExceededAppError
from app.schemas.tenant import RateDecision, Tenant

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


def minute_counter_key(tenant_id: str) -> str:
    return f"ratelimit:tenant:{tenant_id}:minute"


class QuotaEnforcer:
    """Admit or reject tenant requests against their tier limits."""

    def __init__(
        self,
        counter_store: AbstractCounterStore,
        tenants: AbstractTenantRepository,
        *,
        window_seconds: int = WINDOW_SECONDS,
    ) -> None:
        self._counters = counter_store
        self._tenants = tenants
        self._window_seconds = window_seconds
        # Strong references so detached tasks are not garbage collected mid-flight
        self._pending: set[asyncio.Task[None]] = set()

    async def check_and_increment_minute_rate(
        self, tenant_id: str, limit_per_minute: int
    ) -> RateDecision:
        """Consume one call from the tenant's current minute window.

        Args:
            tenant_id: Tenant identifier.
            limit_per_minute: Calls allowed per window.

        Returns:
            RateDecision: ``admitted=False, remaining=0`` when the window is
            full (nothing is incremented); otherwise the remaining budget after
            this call.
        """
        key = minute_counter_key(tenant_id)
        try:
            current = await self._counters.get(key) or 0
            if current >= limit_per_minute:
                logger.warning(
                    "quota.minute_exceeded",
                    extra={
                        "tenant_id": tenant_id,
                        "current": current,
                        "limit": limit_per_minute,
                    },
                )
                return RateDecision(
                    admitted=False,
                    remaining=0,
                    limit=limit_per_minute,
                    reset_seconds=await self._window_reset_seconds(key),
                )

            new_count = await self._counters.incr(key, ttl_seconds=self._window_seconds)
        except Exception as exc:
            logger.error(
                "quota.counter_store_failed_open",
                extra={"tenant_id": tenant_id, "error": str(exc)},
            )
            return RateDecision(
                admitted=True,
                remaining=limit_per_minute,
                limit=limit_per_minute,
                reset_seconds=self._window_seconds,
            )

        remaining = max(0, limit_per_minute - new_count)
        logger.debug(
            "quota.minute_allowed",
            extra={"tenant_id": tenant_id, "current": new_count, "remaining": remaining},
        )
        return RateDecision(
            admitted=True,
            remaining=remaining,
            limit=limit_per_minute,
            reset_seconds=self._window_seconds,
        )

    async def _window_reset_seconds(self, key: str) -> int:
        try:
            ttl = await self._counters.ttl(key)
        except Exception as exc:
            logger.debug("quota.window_ttl_unavailable", extra={"error": str(exc)})
            return self._window_seconds
        return ttl if ttl >= 0 else self._window_seconds

    def check_monthly_quota(self, tenant: Tenant) -> RateDecision:
        """Compare the tenant's persisted monthly usage against its limit."""

        if tenant.monthly_usage >= tenant.monthly_limit:
            logger.warning(
                "quota.monthly_exceeded",
                extra={
                    "tenant_id": tenant.id,
                    "current": tenant.monthly_usage,
                    "limit": tenant.monthly_limit,
                    "tier": tenant.tier_name,
                },
            )
            return RateDecision(admitted=False, remaining=0, limit=tenant.monthly_limit)

        remaining = max(0, tenant.monthly_limit - tenant.monthly_usage - 1)
        return RateDecision(admitted=True, remaining=remaining, limit=tenant.monthly_limit)

    def track_monthly_usage_async(self, tenant_id: str) -> asyncio.Task[None]:
        """Fire a detached increment of the tenant's monthly counter.

        Failures are logged and never retried.
        """

        task = asyncio.create_task(self._increment_usage(tenant_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _increment_usage(self, tenant_id: str) -> None:
        try:
            await self._tenants.increment_monthly_usage(tenant_id)
        except Exception as exc:
            logger.error(
                "quota.monthly_usage_increment_failed",
                extra={"tenant_id": tenant_id, "error": str(exc)},
            )

    async def drain(self) -> None:
        """Wait for every in-flight usage increment (shutdown and tests)."""

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def enforce(self, tenant: Tenant) -> dict[str, str]:
        """Run both checks for one request and start usage tracking.

        Returns:
            Informational rate limit headers for the response.

        Raises:
            QuotaExceededAppError: When either the minute window or the
                monthly quota is exhausted.
        """
        minute = await self.check_and_increment_minute_rate(tenant.id, tenant.per_minute_limit)
        minute_headers = {
            "X-RateLimit-Limit": str(minute.limit),
            "X-RateLimit-Remaining": str(minute.remaining),
            "X-RateLimit-Reset": str(minute.reset_seconds or self._window_seconds),
        }
        if not minute.admitted:
            raise QuotaExceededAppError(
                code="rate_limit_exceeded",
                message=(
                    f"Rate limit exceeded. Your plan allows {minute.limit} requests "
                    "per minute. Please upgrade or wait."
                ),
                details={
                    "scope": "minute",
                    "limit": minute.limit,
                    "remaining": 0,
                    "retry_after": minute.reset_seconds or self._window_seconds,
                    "headers": minute_headers,
                },
            )

        monthly = self.check_monthly_quota(tenant)
        if not monthly.admitted:
            raise QuotaExceededAppError(
                code="monthly_quota_exceeded",
                message=(
                    f"Monthly API call limit exceeded. Your {tenant.tier_name} plan allows "
                    f"{monthly.limit} calls per month. Please upgrade your plan."
                ),
                details={
                    "scope": "month",
                    "limit": monthly.limit,
                    "remaining": 0,
                    "headers": {
                        **minute_headers,
                        "X-Monthly-Limit": str(monthly.limit),
                        "X-Monthly-Usage": str(tenant.monthly_usage),
                        "X-Monthly-Remaining": "0",
                    },
                },
            )

        self.track_monthly_usage_async(tenant.id)

        return {
            **minute_headers,
            "X-Monthly-Limit": str(monthly.limit),
            "X-Monthly-Usage": str(tenant.monthly_usage + 1),
            "X-Monthly-Remaining": str(monthly.remaining),
        }
