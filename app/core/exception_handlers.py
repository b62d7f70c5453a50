"""Exception handlers mapping domain errors to HTTP responses.

Every error body has the same envelope::

    {"error": {"code": ..., "message": ..., "request_id": ..., "details": {...}}}

Quota rejections additionally carry their rate limit headers (and
``Retry-After`` for the minute window) on the response itself.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    CacheAppError,
    QuotaExceededAppError,
    StorageAppError,
    ValidationAppError,
)
from app.core.logging import get_request_id

logger = logging.getLogger(__name__)

# Checked in order; the first matching class wins
STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (ValidationAppError, 400),
    (AuthenticationAppError, 403),
    (QuotaExceededAppError, 429),
    (StorageAppError, 503),
    (CacheAppError, 503),
)


def status_for(exc: AppError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def _error_body(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    error: dict[str, Any] = {"code": code, "message": message, "request_id": get_request_id()}
    if details:
        error["details"] = details
    return {"error": error}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError.

    ``details["headers"]`` is moved from the body onto the response.
    """
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "http.app_error",
        extra={
            "error_code": exc.code,
            "status_code": status_code,
            "path": request.url.path,
            "tenant_id": (exc.details or {}).get("tenant_id"),
        },
    )

    details: dict[str, Any] = dict(exc.details or {})
    headers: dict[str, str] = dict(details.pop("headers", None) or {})
    if isinstance(exc, QuotaExceededAppError) and "retry_after" in details:
        headers["Retry-After"] = str(details["retry_after"])

    return JSONResponse(
        status_code=status_code,
        content=_error_body(exc.code, exc.message, details),
        headers=headers or None,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort for anything unexpected. The client never sees internals."""

    logger.error(
        "http.unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error": str(exc),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content=_error_body(
            "internal_server_error",
            "An unexpected error occurred. Please try again later.",
        ),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
