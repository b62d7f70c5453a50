"""Tenant and rate decision types shared by storage and the quota enforcer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Tenant:
    """A billing/quota entity with limits inherited from its tier.

    Attributes:
        id: Tenant identifier.
        name: Display name.
        tier_id: Identifier of the tier the limits come from.
        tier_name: Tier display name (used in quota messages).
        monthly_usage: Calls counted so far in the current billing month.
        monthly_limit: Maximum calls allowed per month.
        per_minute_limit: Maximum calls allowed per 60 second window.
        is_active: Inactive tenants are skipped by the monthly reset.
        created_at: Creation timestamp; fixes listing order.
    """

    id: str
    name: str
    tier_id: str
    tier_name: str
    monthly_usage: int
    monthly_limit: int
    per_minute_limit: int
    is_active: bool = True
    created_at: datetime | None = None


@dataclass(frozen=True)
class RateDecision:
    """Outcome of a single quota check.

    Attributes:
        admitted: Whether the request may proceed.
        remaining: Calls left in the window/month after this one (0 when rejected).
        limit: The limit the decision was made against.
        reset_seconds: Seconds until the window resets, when known.
    """

    admitted: bool
    remaining: int
    limit: int
    reset_seconds: int | None = None
