"""Tenant quota dependency for FastAPI routes.

Wires the quota enforcer into the HTTP layer:
- the tenant is resolved from the ``X-Tenant-ID`` header set by the upstream
  gateway after it authenticated the client;
- the per-minute window and the monthly quota are checked before the route
  runs, and informational rate headers are added to the response.

A rejected request surfaces as ``QuotaExceededAppError`` and is turned into
HTTP 429 by the global exception handlers.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Header, Response

from app.core.container import ServiceContainer, get_container
from app.core.errors import AuthenticationAppError
from app.schemas.tenant import Tenant

logger = logging.getLogger(__name__)


async def resolve_tenant(
    container: Annotated[ServiceContainer, Depends(get_container)],
    x_tenant_id: Annotated[str | None, Header(alias="X-Tenant-ID")] = None,
) -> Tenant:
    """Load the calling tenant.

    Raises:
        AuthenticationAppError: Missing header, unknown or inactive tenant.
    """
    if not x_tenant_id:
        raise AuthenticationAppError(
            code="missing_tenant",
            message="Missing tenant. Provide X-Tenant-ID header.",
        )

    tenant = await container.tenants.get(x_tenant_id)
    if tenant is None or not tenant.is_active:
        logger.warning(
            "quota.tenant_rejected",
            extra={"tenant_id": x_tenant_id, "reason": "unknown" if tenant is None else "inactive"},
        )
        raise AuthenticationAppError(
            code="invalid_tenant",
            message="Unknown or inactive tenant",
            details={"tenant_id": x_tenant_id},
        )
    return tenant


async def enforce_tenant_limits(
    response: Response,
    tenant: Annotated[Tenant, Depends(resolve_tenant)],
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> Tenant:
    """FastAPI dependency enforcing the tenant's minute and monthly limits.

    Returns:
        Tenant: The admitted tenant, for use by the route.

    Raises:
        QuotaExceededAppError: When either limit is exhausted.
    """
    headers = await container.quota_enforcer.enforce(tenant)
    response.headers.update(headers)
    return tenant
