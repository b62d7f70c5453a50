"""httpx webhook client adapter."""

from typing import Any

import httpx

from app.adapters.webhook.base import AbstractWebhookClient
from app.core.errors import NotificationAppError


class HttpxWebhookClient(AbstractWebhookClient):
    """Deliver webhook payloads with an ``httpx.AsyncClient``.

    A fresh client is opened per delivery; notifications are rare enough that
    connection reuse does not matter.
    """

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the webhook client.

        Args:
            timeout_seconds: Timeout for the whole request in seconds.
            transport: Optional transport override (used by tests).
        """
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def post_json(self, url: str, payload: dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            raise NotificationAppError(
                code="webhook_transport_error",
                message=f"Webhook request failed: {exc}",
            ) from exc

        if not response.is_success:
            raise NotificationAppError(
                code="webhook_bad_status",
                message=(
                    f"Webhook request failed: {response.status_code} "
                    f"{response.reason_phrase}"
                ),
                details={"context": {"status_code": response.status_code}},
            )
