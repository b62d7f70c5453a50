"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before any test module, so the
environment below is in place before ``app.core.config`` builds settings.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("APP_ADMIN_AUTH_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key-123,test-admin-key-456")
os.environ.setdefault("APP_SCHEDULER_ENABLED", "false")

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

import pytest

from app.adapters.storage.base import AbstractAuditLogRepository, AbstractTenantRepository
from app.adapters.webhook.base import AbstractWebhookClient
from app.core.errors import NotificationAppError, StorageAppError
from app.schemas.tenant import Tenant
from app.services.notifications import NotificationConfig, NotificationDispatcher


def build_tenant(tenant_id: str = "tenant-1", **overrides: Any) -> Tenant:
    values: dict[str, Any] = {
        "id": tenant_id,
        "name": f"Tenant {tenant_id}",
        "tier_id": "tier-basic",
        "tier_name": "basic",
        "monthly_usage": 0,
        "monthly_limit": 1000,
        "per_minute_limit": 10,
        "is_active": True,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return Tenant(**values)


class FakeTenantRepository(AbstractTenantRepository):
    """In-memory tenant repository with scriptable failures."""

    def __init__(self, tenants: list[Tenant] | None = None) -> None:
        self.tenants = {tenant.id: tenant for tenant in tenants or []}
        self.usage = {tenant.id: tenant.monthly_usage for tenant in tenants or []}
        # tenant_id -> number of reset calls that fail before one succeeds
        self.reset_failures: dict[str, int] = {}
        self.reset_calls: list[str] = []
        self.increment_calls: list[str] = []
        self.list_error: Exception | None = None
        self.increment_error: Exception | None = None

    async def get(self, tenant_id: str) -> Tenant | None:
        tenant = self.tenants.get(tenant_id)
        if tenant is None:
            return None
        return replace(tenant, monthly_usage=self.usage.get(tenant_id, 0))

    async def list_active(self, *, limit: int) -> list[Tenant]:
        if self.list_error is not None:
            raise self.list_error
        return [tenant for tenant in self.tenants.values() if tenant.is_active][:limit]

    async def reset_monthly_usage(self, tenant_id: str) -> None:
        self.reset_calls.append(tenant_id)
        remaining = self.reset_failures.get(tenant_id, 0)
        if remaining > 0:
            self.reset_failures[tenant_id] = remaining - 1
            raise StorageAppError(code="storage_error", message=f"reset failed for {tenant_id}")
        self.usage[tenant_id] = 0

    async def increment_monthly_usage(self, tenant_id: str) -> int:
        self.increment_calls.append(tenant_id)
        if self.increment_error is not None:
            raise self.increment_error
        self.usage[tenant_id] = self.usage.get(tenant_id, 0) + 1
        return self.usage[tenant_id]


class FakeAuditLogRepository(AbstractAuditLogRepository):
    def __init__(self, deleted: int = 0) -> None:
        self.deleted = deleted
        self.cutoffs: list[datetime] = []
        self.error: Exception | None = None

    async def insert(self, **kwargs: Any) -> int:
        return 1

    async def delete_older_than(self, cutoff: datetime) -> int:
        self.cutoffs.append(cutoff)
        if self.error is not None:
            raise self.error
        return self.deleted


class RecordingWebhook(AbstractWebhookClient):
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.error: Exception | None = None

    async def post_json(self, url: str, payload: dict[str, Any]) -> None:
        self.calls.append((url, payload))
        if self.error is not None:
            raise NotificationAppError(code="webhook_transport_error", message=str(self.error))


@pytest.fixture
def tenant_repo() -> FakeTenantRepository:
    return FakeTenantRepository([build_tenant("tenant-a"), build_tenant("tenant-b")])


@pytest.fixture
def audit_repo() -> FakeAuditLogRepository:
    return FakeAuditLogRepository()


@pytest.fixture
def webhook() -> RecordingWebhook:
    return RecordingWebhook()


@pytest.fixture
def dispatcher(webhook: RecordingWebhook) -> NotificationDispatcher:
    config = NotificationConfig(
        enabled=True,
        webhook_url="https://hooks.example.test/T000/B000",
        email_recipients=(),
        min_failure_threshold=1,
    )
    return NotificationDispatcher(config, webhook)


@pytest.fixture
def make_tenant():
    return build_tenant


@pytest.fixture
def make_tenant_repo():
    return FakeTenantRepository


@pytest.fixture
def make_dispatcher(webhook: RecordingWebhook):
    def _make(**overrides: Any) -> NotificationDispatcher:
        values: dict[str, Any] = {
            "enabled": True,
            "webhook_url": "https://hooks.example.test/T000/B000",
            "email_recipients": (),
            "min_failure_threshold": 1,
        }
        values.update(overrides)
        return NotificationDispatcher(NotificationConfig(**values), webhook)

    return _make
