"""Service wiring.

Builds the process-wide service graph from settings. The instance is cached
in-module so state (rate windows, retention policy, scheduler handle) is
shared across requests; FastAPI routes receive it through ``get_container``
so tests can override it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from app.adapters.counter_store.base import AbstractCounterStore
from app.adapters.counter_store.factory import create_counter_store
from app.adapters.counter_store.redis_store import RedisCounterStore
from app.adapters.storage.base import AbstractAuditLogRepository, AbstractTenantRepository
from app.adapters.storage.sqlalchemy_store import (
    SQLAlchemyAuditLogRepository,
    SQLAlchemyTenantRepository,
    create_engine,
    create_schema,
    create_session_factory,
)
from app.adapters.webhook.base import AbstractWebhookClient
from app.adapters.webhook.httpx_client import HttpxWebhookClient
from app.core.config import Settings, settings
from app.services.monthly_reset import MonthlyResetExecutor, monthly_reset_config_from_settings
from app.services.notifications import NotificationConfig, NotificationDispatcher
from app.services.quota_enforcer import QuotaEnforcer
from app.services.retention import RetentionService, retention_config_from_settings
from app.services.scheduler import TaskScheduler

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    engine: AsyncEngine | None
    counter_store: AbstractCounterStore
    tenants: AbstractTenantRepository
    audit_logs: AbstractAuditLogRepository
    dispatcher: NotificationDispatcher
    quota_enforcer: QuotaEnforcer
    reset_executor: MonthlyResetExecutor
    retention: RetentionService
    scheduler: TaskScheduler

    async def startup(self, *, start_scheduler: bool = True) -> None:
        if self.engine is not None:
            await create_schema(self.engine)
        if start_scheduler:
            self.scheduler.start()

    async def shutdown(self) -> None:
        self.scheduler.shutdown()
        await self.quota_enforcer.drain()
        if isinstance(self.counter_store, RedisCounterStore):
            await self.counter_store.close()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("container.shutdown_complete")


def build_container(
    cfg: Settings | None = None,
    *,
    counter_store: AbstractCounterStore | None = None,
    webhook: AbstractWebhookClient | None = None,
) -> ServiceContainer:
    """Build every service from settings.

    Args:
        cfg: Settings to build from; defaults to the global settings.
        counter_store: Optional counter store override.
        webhook: Optional webhook client override.

    Returns:
        A fully wired ServiceContainer (storage schema not yet created).
    """
    cfg = cfg or settings

    engine = create_engine(cfg.database.url, echo=cfg.database.echo)
    session_factory = create_session_factory(engine)
    tenants = SQLAlchemyTenantRepository(session_factory)
    audit_logs = SQLAlchemyAuditLogRepository(session_factory)

    store = counter_store or create_counter_store(cfg.cache)
    dispatcher = NotificationDispatcher(
        NotificationConfig.from_settings(cfg.notifications),
        webhook or HttpxWebhookClient(timeout_seconds=cfg.notifications.timeout_seconds),
    )
    reset_executor = MonthlyResetExecutor(
        tenants, dispatcher, monthly_reset_config_from_settings(cfg.monthly_reset)
    )
    retention = RetentionService(audit_logs, dispatcher, retention_config_from_settings(cfg.audit))

    return ServiceContainer(
        engine=engine,
        counter_store=store,
        tenants=tenants,
        audit_logs=audit_logs,
        dispatcher=dispatcher,
        quota_enforcer=QuotaEnforcer(store, tenants),
        reset_executor=reset_executor,
        retention=retention,
        scheduler=TaskScheduler(
            reset_executor, retention, timezone=cfg.app.scheduler_timezone
        ),
    )


_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    """Return the process-wide service container, building it on first use."""

    global _container
    if _container is None:
        _container = build_container()
    return _container


def reset_container() -> None:
    """Forget the cached container (tests and application shutdown)."""

    global _container
    _container = None
