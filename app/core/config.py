"""Settings for the quota service and its scheduled jobs.

Each concern is a separate settings group with its own environment prefix
(APP_, LOG_, DATABASE_, CACHE_, MONTHLY_RESET_, AUDIT_, JOB_NOTIFICATIONS_).
Values come from the process environment, optionally seeded from the
``.env.<APP_ENV>`` file at the project root. Variables already present in
the environment win over the file.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")
KNOWN_ENVIRONMENTS = ("development", "testing", "staging", "production")

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_file_for(app_env: str) -> Path | None:
    name = app_env if app_env in KNOWN_ENVIRONMENTS else "development"
    path = PROJECT_ROOT / f".env.{name}"
    return path if path.is_file() else None


# Each nested group reads os.environ on its own, so the file is loaded into it once
_env_file = _env_file_for(APP_ENV)
if _env_file is not None:
    load_dotenv(_env_file, override=False)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    admin_auth_required: bool = Field(
        True,
        description="Whether admin/job endpoints require an X-Admin-Key header",
    )
    admin_api_keys: str | None = Field(
        None,
        description="Comma-separated list of keys accepted on the X-Admin-Key header",
    )
    scheduler_enabled: bool = Field(
        True,
        description="Start the job scheduler together with the application",
    )
    scheduler_timezone: str = Field(
        "UTC",
        description="Timezone of the scheduler and the daily cleanup trigger",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate log file after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class DatabaseSettings(BaseSettings):
    """Relational storage for tenants, tiers and audit records."""

    url: str = Field(
        "sqlite+aiosqlite:///./quota_guard.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = Field(False, description="Echo SQL statements")

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        case_sensitive=False,
    )


class CacheSettings(BaseSettings):
    """Counter store backing the per-minute rate windows."""

    backend: str = Field("memory", description="Counter store backend: memory or redis")
    redis_url: str = Field("redis://localhost:6379/0", description="Redis connection URL")
    key_prefix: str = Field("quota_guard", description="Namespace prefix for counter keys")

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
    )


class MonthlyResetSettings(BaseSettings):
    """Monthly usage reset job defaults."""

    enabled: bool = Field(False, description="Schedule the monthly reset job")
    cron: str = Field("0 0 1 * *", description="Cron expression (1st day of month at midnight)")
    timezone: str = Field("America/New_York", description="Timezone used by the cron trigger")
    retry_attempts: int = Field(3, ge=1, description="Attempts per tenant before giving up")
    retry_delay_ms: int = Field(5000, ge=0, description="Delay between attempts in milliseconds")
    page_size: int = Field(1000, ge=1, description="Maximum tenants processed per run")

    model_config = SettingsConfigDict(
        env_prefix="MONTHLY_RESET_",
        case_sensitive=False,
    )


class AuditSettings(BaseSettings):
    """Audit log retention defaults."""

    log_retention_days: int = Field(180, description="Days to keep audit records")
    cleanup_enabled: bool = Field(False, description="Schedule the daily cleanup job")
    cleanup_hour: int = Field(2, description="Hour of day (0-23) the cleanup runs")

    model_config = SettingsConfigDict(
        env_prefix="AUDIT_",
        case_sensitive=False,
    )


class NotificationSettings(BaseSettings):
    """Job outcome notifications."""

    enabled: bool = Field(False, description="Process job notifications")
    webhook_url: str | None = Field(None, description="Slack/Discord/Teams compatible webhook")
    emails: str | None = Field(None, description="Comma-separated email recipients")
    min_failures: int = Field(
        1,
        ge=0,
        description="Minimum failure count before a failed job is pushed to the webhook",
    )
    timeout_seconds: float = Field(10.0, description="Webhook request timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="JOB_NOTIFICATIONS_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if required settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    monthly_reset: MonthlyResetSettings = Field(default_factory=MonthlyResetSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Nested settings are created via default_factory so env loading works.
settings = Settings()
