"""Pydantic schemas for scheduled jobs, their results and notifications."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TenantResetError(BaseModel):
    """A tenant whose reset could not be completed."""

    tenant_id: str = Field(..., description="Tenant identifier, or SYSTEM for a listing failure.")
    error: str = Field(..., description="Last error message observed.")


class ResetJobResult(BaseModel):
    """Outcome of one monthly reset run.

    On every completed run ``success_count + failure_count == total_tenants``
    and ``success`` is true exactly when ``failure_count == 0``.
    """

    timestamp: datetime = Field(default_factory=utcnow)
    total_tenants: int = 0
    success_count: int = 0
    failure_count: int = 0
    errors: list[TenantResetError] = Field(default_factory=list)
    duration_ms: int = 0
    success: bool = False


class CleanupResult(BaseModel):
    """Outcome of one audit log retention cleanup."""

    deleted_records: int = Field(..., ge=0)
    cutoff_date: datetime
    retention_days: int | None = None
    duration_ms: int = 0
    success: bool = True
    skipped: bool = Field(
        default=False,
        description="True when cleanup is disabled and storage was not touched.",
    )


class RetentionConfig(BaseModel):
    """Immutable snapshot of the audit retention policy."""

    model_config = ConfigDict(frozen=True)

    retention_days: int = Field(..., ge=30, le=730)
    cleanup_enabled: bool
    cleanup_hour: int = Field(..., ge=0, le=23)
    last_cleanup: datetime | None = None
    last_cleanup_deleted: int | None = None


class RetentionConfigUpdate(BaseModel):
    """Partial retention update; only supplied fields are applied.

    Range checks happen in the retention service so that a rejected update
    surfaces as a ValidationAppError and leaves the live config untouched.
    """

    retention_days: int | None = None
    cleanup_enabled: bool | None = None
    cleanup_hour: int | None = None


class MonthlyResetConfig(BaseModel):
    """Immutable snapshot of the monthly reset job configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool
    cron_expression: str = "0 0 1 * *"
    timezone: str = "America/New_York"
    retry_attempts: int = Field(3, ge=1)
    retry_delay_ms: int = Field(5000, ge=0)
    page_size: int = Field(1000, ge=1)


class MonthlyResetConfigUpdate(BaseModel):
    """Partial monthly reset configuration update."""

    enabled: bool | None = None
    cron_expression: str | None = None
    timezone: str | None = None
    retry_attempts: int | None = None
    retry_delay_ms: int | None = None


class JobStatus(BaseModel):
    """Read-only projection of one periodic job."""

    name: str
    enabled: bool
    running: bool
    last_execution: datetime | None = None
    next_execution: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class SchedulerStatus(BaseModel):
    running: bool
    jobs: list[JobStatus]
    started_at: datetime | None = None


class JobCounts(BaseModel):
    total: int
    enabled: int
    running: int


class SchedulerHealth(BaseModel):
    healthy: bool
    uptime_ms: int | None = None
    job_counts: JobCounts


JobType = Literal["monthly-reset", "audit-cleanup", "custom"]


class Notification(BaseModel):
    """Generic, job-agnostic notification derived from a job outcome."""

    job_type: JobType
    timestamp: datetime = Field(default_factory=utcnow)
    success: bool
    summary: str
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def failure_count(self) -> int:
        return int(self.details.get("failure_count") or 0)


class MonthlyResetOutcome(BaseModel):
    job_type: Literal["monthly-reset"] = "monthly-reset"
    result: ResetJobResult

    def to_notification(self) -> Notification:
        result = self.result
        # A run that died before any tenant was processed still counts as one failure
        failure_count = result.failure_count if result.success else max(result.failure_count, 1)
        if result.success:
            summary = (
                f"Monthly reset completed successfully "
                f"({result.success_count}/{result.total_tenants} tenants)"
            )
        else:
            summary = (
                f"Monthly reset failed "
                f"({result.failure_count}/{result.total_tenants} failures)"
            )
        return Notification(
            job_type=self.job_type,
            success=result.success,
            summary=summary,
            details={
                "total_tenants": result.total_tenants,
                "success_count": result.success_count,
                "failure_count": failure_count,
                "duration": f"{result.duration_ms}ms",
                "errors": [error.model_dump() for error in result.errors],
            },
        )


class AuditCleanupOutcome(BaseModel):
    job_type: Literal["audit-cleanup"] = "audit-cleanup"
    result: CleanupResult | None = None
    retention_days: int | None = None
    error: str | None = None

    def to_notification(self) -> Notification:
        if self.result is not None and self.error is None:
            return Notification(
                job_type=self.job_type,
                success=True,
                summary=f"Audit cleanup completed ({self.result.deleted_records} logs removed)",
                details={
                    "deleted_count": self.result.deleted_records,
                    "retention_days": self.result.retention_days,
                    "cutoff_date": self.result.cutoff_date.isoformat(),
                    "duration": f"{self.result.duration_ms}ms",
                },
            )
        return Notification(
            job_type=self.job_type,
            success=False,
            summary="Audit cleanup failed",
            details={
                "deleted_count": 0,
                "retention_days": self.retention_days,
                "failure_count": 1,
                "error": self.error,
            },
        )


class GenericOutcome(BaseModel):
    job_type: Literal["custom"] = "custom"
    success: bool
    details: dict[str, Any] = Field(default_factory=dict)

    def to_notification(self) -> Notification:
        details = dict(self.details)
        if not self.success:
            details.setdefault("failure_count", 1)
        return Notification(
            job_type=self.job_type,
            success=self.success,
            summary="Job completed" if self.success else "Job failed",
            details=details,
        )


JobOutcome = Annotated[
    Union[MonthlyResetOutcome, AuditCleanupOutcome, GenericOutcome],
    Field(discriminator="job_type"),
]
