"""Storage adapters for tenants and audit records."""

from app.adapters.storage.base import AbstractAuditLogRepository, AbstractTenantRepository
from app.adapters.storage.sqlalchemy_store import (
    SQLAlchemyAuditLogRepository,
    SQLAlchemyTenantRepository,
)

__all__ = [
    "AbstractAuditLogRepository",
    "AbstractTenantRepository",
    "SQLAlchemyAuditLogRepository",
    "SQLAlchemyTenantRepository",
]
