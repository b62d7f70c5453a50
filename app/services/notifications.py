"""Job outcome notifications.

Turns a job outcome into a generic notification, logs it, and pushes it to an
operator webhook (Slack, Discord, Teams, ...). Delivery problems are logged
and swallowed: a broken webhook must never fail the job that produced the
outcome.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from app.adapters.webhook.base import AbstractWebhookClient
from app.core.config import NotificationSettings
from app.schemas.jobs import (
    JobOutcome,
    MonthlyResetOutcome,
    Notification,
    ResetJobResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationConfig:
    """Notification delivery settings.

    Attributes:
        enabled: Global switch for webhook/email delivery.
        webhook_url: Target URL for webhook delivery.
        email_recipients: Addresses for the (not yet implemented) email channel.
        min_failure_threshold: Failed outcomes are only pushed once their
            failure count reaches this value; successes are always pushed.
    """

    enabled: bool = False
    webhook_url: str | None = None
    email_recipients: tuple[str, ...] = field(default_factory=tuple)
    min_failure_threshold: int = 1

    @classmethod
    def from_settings(cls, cfg: NotificationSettings) -> "NotificationConfig":
        recipients = tuple(
            email.strip() for email in (cfg.emails or "").split(",") if email.strip()
        )
        return cls(
            enabled=cfg.enabled,
            webhook_url=cfg.webhook_url or None,
            email_recipients=recipients,
            min_failure_threshold=cfg.min_failures,
        )


def build_webhook_payload(notification: Notification) -> dict[str, Any]:
    """Build a Slack/Discord compatible payload.

    Args:
        notification: Notification to render.

    Returns:
        JSON-serializable payload with a plain ``text`` summary and blocks.
    """
    status_text = "SUCCESS" if notification.success else "FAILURE"
    return {
        "text": notification.summary,
        "blocks": [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"[{status_text}] {notification.job_type.upper()} Job",
                },
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": notification.summary},
            },
            {
                "type": "section",
                "fields": [
                    {
                        "type": "mrkdwn",
                        "text": f"*{key}:*\n{json.dumps(value, default=str)}",
                    }
                    for key, value in notification.details.items()
                ],
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"Timestamp: {notification.timestamp.isoformat()}",
                    }
                ],
            },
        ],
    }


class NotificationDispatcher:
    """Format job outcomes and deliver them to the configured channels."""

    def __init__(self, config: NotificationConfig, webhook: AbstractWebhookClient) -> None:
        self._config = config
        self._webhook = webhook

    @property
    def config(self) -> NotificationConfig:
        return self._config

    def should_send_webhook(self, notification: Notification) -> bool:
        if not self._config.enabled or not self._config.webhook_url:
            return False
        return (
            notification.success
            or notification.failure_count >= self._config.min_failure_threshold
        )

    async def dispatch(self, outcome: JobOutcome) -> Notification:
        """Log and deliver a job outcome.

        Never raises because of delivery problems.

        Returns:
            The notification that was built from the outcome.
        """
        notification = outcome.to_notification()
        self._log(notification)

        if not self._config.enabled:
            logger.debug("notifications.disabled", extra={"job_type": notification.job_type})
            return notification

        if self._config.webhook_url:
            if self.should_send_webhook(notification):
                await self._send_webhook(self._config.webhook_url, notification)
            else:
                logger.debug(
                    "notifications.webhook_skipped_below_threshold",
                    extra={
                        "job_type": notification.job_type,
                        "failure_count": notification.failure_count,
                        "min_failure_threshold": self._config.min_failure_threshold,
                    },
                )

        if self._config.email_recipients:
            self._send_email(notification)

        return notification

    async def send_test_notification(self) -> Notification:
        """Dispatch a synthetic successful monthly reset result."""

        result = ResetJobResult(
            total_tenants=10,
            success_count=10,
            failure_count=0,
            duration_ms=1234,
            success=True,
        )
        return await self.dispatch(MonthlyResetOutcome(result=result))

    def _log(self, notification: Notification) -> None:
        level = logging.INFO if notification.success else logging.ERROR
        logger.log(
            level,
            "notifications.job_notification",
            extra={
                "job_type": notification.job_type,
                "summary": notification.summary,
                "notification_timestamp": notification.timestamp.isoformat(),
                "details": notification.details,
            },
        )

    async def _send_webhook(self, url: str, notification: Notification) -> None:
        try:
            await self._webhook.post_json(url, build_webhook_payload(notification))
        except Exception as exc:
            logger.error(
                "notifications.webhook_failed",
                extra={"job_type": notification.job_type, "error": str(exc)},
            )
            return

        logger.info("notifications.webhook_sent", extra={"job_type": notification.job_type})

    def _send_email(self, notification: Notification) -> None:
        # TODO: deliver through an email provider (SES/SendGrid) once one is chosen.
        logger.info(
            "notifications.email_not_implemented",
            extra={
                "email_recipients": list(self._config.email_recipients),
                "job_type": notification.job_type,
                "summary": notification.summary,
            },
        )
