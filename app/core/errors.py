"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep shapes consistent across the codebase
    without forcing every error to carry every field.
    """

    code: str
    message: str
    hint: str
    field: str
    min_value: int
    max_value: int
    actual_value: Any
    scope: str
    limit: int
    remaining: int
    retry_after: int
    tenant_id: str
    headers: dict[str, str]
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class QuotaExceededAppError(AppError):
    """Raised when a tenant exceeds its per-minute rate or monthly quota."""


class StorageAppError(AppError):
    """Raised when the relational storage layer fails."""


class TenantResetAppError(AppError):
    """A single tenant's reset failed after exhausting its retries."""


class CacheAppError(AppError):
    """Raised when the counter store is unavailable or misbehaves."""


class NotificationAppError(AppError):
    """Raised when a job notification cannot be delivered."""
