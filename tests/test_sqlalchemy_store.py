"""Repository tests against an in-memory SQLite database."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from app.adapters.storage.models import TenantModel, TierModel
from app.adapters.storage.sqlalchemy_store import (
    SQLAlchemyAuditLogRepository,
    SQLAlchemyTenantRepository,
    create_engine,
    create_schema,
    create_session_factory,
)
from app.core.errors import StorageAppError, TenantResetAppError


@pytest_asyncio.fixture
async def session_factory():
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await create_schema(engine)
    factory = create_session_factory(engine)

    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    async with factory() as session, session.begin():
        session.add(
            TierModel(id="basic", name="basic", max_api_calls_per_minute=10,
                      max_api_calls_per_month=1000)
        )
        session.add_all(
            [
                TenantModel(id="t-2", name="Second", tier_id="basic", monthly_usage=50,
                            is_active=True, created_at=base + timedelta(days=2)),
                TenantModel(id="t-1", name="First", tier_id="basic", monthly_usage=20,
                            is_active=True, created_at=base + timedelta(days=1)),
                TenantModel(id="t-off", name="Inactive", tier_id="basic", monthly_usage=5,
                            is_active=False, created_at=base),
            ]
        )

    yield factory
    await engine.dispose()


class TestTenantRepository:
    @pytest.mark.asyncio
    async def test_get_maps_tier_limits(self, session_factory) -> None:
        repo = SQLAlchemyTenantRepository(session_factory)

        tenant = await repo.get("t-1")

        assert tenant is not None
        assert tenant.tier_name == "basic"
        assert tenant.per_minute_limit == 10
        assert tenant.monthly_limit == 1000
        assert tenant.monthly_usage == 20
        assert await repo.get("missing") is None

    @pytest.mark.asyncio
    async def test_list_active_in_creation_order(self, session_factory) -> None:
        repo = SQLAlchemyTenantRepository(session_factory)

        tenants = await repo.list_active(limit=1000)

        assert [t.id for t in tenants] == ["t-1", "t-2"]
        assert [t.id for t in await repo.list_active(limit=1)] == ["t-1"]

    @pytest.mark.asyncio
    async def test_reset_and_increment_usage(self, session_factory) -> None:
        repo = SQLAlchemyTenantRepository(session_factory)

        await repo.reset_monthly_usage("t-2")
        assert (await repo.get("t-2")).monthly_usage == 0

        assert await repo.increment_monthly_usage("t-2") == 1
        assert await repo.increment_monthly_usage("t-2") == 2

    @pytest.mark.asyncio
    async def test_reset_of_vanished_tenant_is_a_reset_error(self, session_factory) -> None:
        repo = SQLAlchemyTenantRepository(session_factory)

        with pytest.raises(TenantResetAppError) as exc_info:
            await repo.reset_monthly_usage("deleted-tenant")

        assert exc_info.value.code == "tenant_not_found"

    @pytest.mark.asyncio
    async def test_driver_errors_become_storage_errors(self) -> None:
        failing_session = MagicMock()
        failing_session.__aenter__.side_effect = OperationalError("SELECT", {}, Exception("locked"))
        repo = SQLAlchemyTenantRepository(MagicMock(return_value=failing_session))

        with pytest.raises(StorageAppError) as exc_info:
            await repo.list_active(limit=10)

        assert exc_info.value.code == "storage_error"


class TestAuditLogRepository:
    @pytest.mark.asyncio
    async def test_delete_older_than_removes_only_expired_rows(self, session_factory) -> None:
        repo = SQLAlchemyAuditLogRepository(session_factory)
        now = datetime(2024, 6, 15, tzinfo=timezone.utc)
        for days in (400, 200, 181, 179, 10):
            await repo.insert(
                table_name="tenants",
                record_id="t-1",
                action="UPDATE",
                changed_at=now - timedelta(days=days),
            )

        deleted = await repo.delete_older_than(now - timedelta(days=180))

        assert deleted == 3
        assert await repo.delete_older_than(now - timedelta(days=180)) == 0
        assert await repo.delete_older_than(now) == 2
