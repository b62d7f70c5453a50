"""Tenant-facing endpoints guarded by the per-minute and monthly limits."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.quota import enforce_tenant_limits
from app.schemas.tenant import Tenant

router = APIRouter(prefix="/client", tags=["Client"])


@router.get("/test")
async def client_test(tenant: Annotated[Tenant, Depends(enforce_tenant_limits)]) -> dict:
    """Test endpoint that consumes one request from the tenant's allowances.

    Rate limit headers are attached by the dependency; a rejected request
    never reaches this body.
    """
    return {
        "success": True,
        "data": {
            "message": "Request admitted",
            "tenant_id": tenant.id,
            "tier": tenant.tier_name,
        },
    }
