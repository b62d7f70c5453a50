"""Repository interfaces consumed by the quota and maintenance services.

Implementations raise ``StorageAppError`` for persistence failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from app.schemas.tenant import Tenant


class AbstractTenantRepository(ABC):
    """Tenant rows joined with their tier limits."""

    @abstractmethod
    async def get(self, tenant_id: str) -> Tenant | None:
        """Fetch a single tenant, or None when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def list_active(self, *, limit: int) -> list[Tenant]:
        """List up to ``limit`` active tenants in creation order."""
        raise NotImplementedError

    @abstractmethod
    async def reset_monthly_usage(self, tenant_id: str) -> None:
        """Zero a tenant's monthly counter and restart its billing cycle.

        Raises:
            TenantResetAppError: The tenant row no longer exists.
            StorageAppError: The storage backend failed.
        """
        raise NotImplementedError

    @abstractmethod
    async def increment_monthly_usage(self, tenant_id: str) -> int:
        """Add one call to a tenant's monthly counter and return the new value."""
        raise NotImplementedError


class AbstractAuditLogRepository(ABC):
    """Append-only audit trail with bulk retention deletes."""

    @abstractmethod
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
        """Insert an audit record and return its id."""
        raise NotImplementedError

    @abstractmethod
    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete every record changed strictly before ``cutoff``; return the count."""
        raise NotImplementedError
