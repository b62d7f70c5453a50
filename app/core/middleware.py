"""Request correlation middleware.

Every request gets a correlation id: the incoming header value when the
caller sends one, otherwise a fresh UUID. The id is bound to the logging
context for the lifetime of the request, echoed back on the response, and
one ``http.request_completed`` line is logged per request with its tenant
(if any), status and duration.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from app.core.config import settings
from app.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

DURATION_HEADER = "X-Request-Duration-ms"


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a correlation id to the request and time it.

    The header name is configurable through ``LOG_REQUEST_ID_HEADER``.

    Args:
        request: The incoming HTTP request.
        call_next: The next handler in the stack.

    Returns:
        The downstream response with correlation and duration headers added.
    """
    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    started = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "http.request_completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "tenant_id": request.headers.get("X-Tenant-ID"),
                "duration_ms": round(duration_ms, 2),
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault(DURATION_HEADER, f"{duration_ms:.2f}")
    return response
