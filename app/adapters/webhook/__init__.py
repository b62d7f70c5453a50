"""Outbound webhook delivery for job notifications."""

from app.adapters.webhook.base import AbstractWebhookClient
from app.adapters.webhook.httpx_client import HttpxWebhookClient

__all__ = ["AbstractWebhookClient", "HttpxWebhookClient"]
