"""Async SQLAlchemy repositories for tenants and audit records.

Every persistence failure is translated into ``StorageAppError`` so services
never depend on driver-specific exception types.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.adapters.storage.base import AbstractAuditLogRepository, AbstractTenantRepository
from app.adapters.storage.models import AuditLogModel, Base, TenantModel
from app.core.errors import StorageAppError, TenantResetAppError
from app.schemas.tenant import Tenant

logger = logging.getLogger(__name__)


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine.

    In-memory SQLite databases live per connection, so they are pinned to a
    single shared connection.
    """

    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_async_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create missing tables (development and tests; production uses migrations)."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("storage.schema_ready")


def _storage_error(operation: str, exc: SQLAlchemyError, **context: Any) -> StorageAppError:
    logger.error(
        "storage.query_failed",
        extra={"operation": operation, "error": str(exc), **context},
    )
    return StorageAppError(
        code="storage_error",
        message=f"Storage operation '{operation}' failed",
        details={"context": {"operation": operation, **context}},
    )


def _to_tenant(row: TenantModel) -> Tenant:
    return Tenant(
        id=row.id,
        name=row.name,
        tier_id=row.tier_id,
        tier_name=row.tier.name,
        monthly_usage=row.monthly_usage,
        monthly_limit=row.tier.max_api_calls_per_month,
        per_minute_limit=row.tier.max_api_calls_per_minute,
        is_active=row.is_active,
        created_at=row.created_at,
    )


class SQLAlchemyTenantRepository(AbstractTenantRepository):
    """Tenant repository over the ``tenants`` and ``tiers`` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, tenant_id: str) -> Tenant | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(TenantModel, tenant_id)
                return _to_tenant(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise _storage_error("get_tenant", exc, tenant_id=tenant_id) from exc

    async def list_active(self, *, limit: int) -> list[Tenant]:
        stmt = (
            select(TenantModel)
            .where(TenantModel.is_active.is_(True))
            .order_by(TenantModel.created_at, TenantModel.id)
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.scalars(stmt)).all()
                return [_to_tenant(row) for row in rows]
        except SQLAlchemyError as exc:
            raise _storage_error("list_active_tenants", exc, limit=limit) from exc

    async def reset_monthly_usage(self, tenant_id: str) -> None:
        stmt = (
            update(TenantModel)
            .where(TenantModel.id == tenant_id)
            .values(monthly_usage=0, billing_cycle_start=datetime.now(timezone.utc))
        )
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise _storage_error("reset_monthly_usage", exc, tenant_id=tenant_id) from exc

        if result.rowcount == 0:
            raise TenantResetAppError(
                code="tenant_not_found",
                message=f"Tenant {tenant_id} no longer exists",
                details={"tenant_id": tenant_id},
            )

        logger.info("tenant.monthly_usage_reset", extra={"tenant_id": tenant_id})

    async def increment_monthly_usage(self, tenant_id: str) -> int:
        stmt = (
            update(TenantModel)
            .where(TenantModel.id == tenant_id)
            .values(monthly_usage=TenantModel.monthly_usage + 1)
        )
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(stmt)
                usage = await session.scalar(
                    select(TenantModel.monthly_usage).where(TenantModel.id == tenant_id)
                )
        except SQLAlchemyError as exc:
            raise _storage_error("increment_monthly_usage", exc, tenant_id=tenant_id) from exc
        return int(usage or 0)


class SQLAlchemyAuditLogRepository(AbstractAuditLogRepository):
    """Audit repository over the ``audit_log`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(
        self,
        *,
        table_name: str,
        record_id: str,
        action: str,
        changed_by: str | None = None,
        changed_at: datetime | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> int:
        record = AuditLogModel(
            table_name=table_name,
            record_id=record_id,
            action=action,
            changed_by=changed_by,
            changed_at=changed_at or datetime.now(timezone.utc),
            old_values=old_values,
            new_values=new_values,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(record)
                await session.flush()
                return record.id
        except SQLAlchemyError as exc:
            raise _storage_error("insert_audit_log", exc, table_name=table_name) from exc

    async def delete_older_than(self, cutoff: datetime) -> int:
        stmt = delete(AuditLogModel).where(AuditLogModel.changed_at < cutoff)
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise _storage_error("delete_audit_logs", exc, cutoff=cutoff.isoformat()) from exc
        return int(result.rowcount or 0)
