"""HTTP tests for the client, job and retention endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from app.adapters.counter_store.in_memory import InMemoryCounterStore
from app.core.app_factory import create_app
from app.core.container import ServiceContainer, get_container
from app.schemas.jobs import MonthlyResetConfig, RetentionConfig
from app.services.monthly_reset import MonthlyResetExecutor
from app.services.quota_enforcer import QuotaEnforcer
from app.services.retention import RetentionService
from app.services.scheduler import TaskScheduler

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key-123"}


@pytest.fixture
def container(make_tenant_repo, make_tenant, audit_repo, dispatcher) -> ServiceContainer:
    tenants = make_tenant_repo(
        [
            make_tenant("tenant-a", per_minute_limit=2, monthly_limit=1000, monthly_usage=10),
            make_tenant("tenant-full", monthly_limit=100, monthly_usage=100),
            make_tenant("tenant-off", is_active=False),
        ]
    )
    store = InMemoryCounterStore()
    reset_executor = MonthlyResetExecutor(
        tenants, dispatcher, MonthlyResetConfig(enabled=True, retry_delay_ms=0), sleep=AsyncMock()
    )
    retention = RetentionService(
        audit_repo,
        dispatcher,
        RetentionConfig(retention_days=180, cleanup_enabled=True, cleanup_hour=2),
    )
    return ServiceContainer(
        engine=None,
        counter_store=store,
        tenants=tenants,
        audit_logs=audit_repo,
        dispatcher=dispatcher,
        quota_enforcer=QuotaEnforcer(store, tenants),
        reset_executor=reset_executor,
        retention=retention,
        scheduler=TaskScheduler(reset_executor, retention),
    )


@pytest.fixture
def client(container: ServiceContainer):
    app = create_app()
    app.dependency_overrides[get_container] = lambda: container
    with patch("app.core.app_factory.get_container", return_value=container):
        with TestClient(app) as test_client:
            yield test_client


class TestClientEndpoint:
    def test_admitted_request_carries_rate_headers(self, client: TestClient) -> None:
        response = client.get("/v1/client/test", headers={"X-Tenant-ID": "tenant-a"})

        assert response.status_code == 200
        assert response.json()["data"]["tenant_id"] == "tenant-a"
        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Remaining"] == "1"
        assert response.headers["X-Monthly-Remaining"] == "989"

    def test_minute_limit_returns_429(self, client: TestClient) -> None:
        headers = {"X-Tenant-ID": "tenant-a"}
        client.get("/v1/client/test", headers=headers)
        client.get("/v1/client/test", headers=headers)

        response = client.get("/v1/client/test", headers=headers)

        assert response.status_code == 429
        body = response.json()
        assert body["error"]["code"] == "rate_limit_exceeded"
        assert body["error"]["details"]["scope"] == "minute"
        assert "headers" not in body["error"]["details"]
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert int(response.headers["Retry-After"]) > 0

    def test_monthly_quota_returns_429(self, client: TestClient) -> None:
        response = client.get("/v1/client/test", headers={"X-Tenant-ID": "tenant-full"})

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "monthly_quota_exceeded"
        assert response.headers["X-Monthly-Remaining"] == "0"

    @pytest.mark.parametrize(
        ("headers", "code"),
        [
            ({}, "missing_tenant"),
            ({"X-Tenant-ID": "nope"}, "invalid_tenant"),
            ({"X-Tenant-ID": "tenant-off"}, "invalid_tenant"),
        ],
    )
    def test_unknown_tenants_are_forbidden(self, client: TestClient, headers, code) -> None:
        response = client.get("/v1/client/test", headers=headers)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == code


class TestAdminAuth:
    def test_missing_admin_key_is_forbidden(self, client: TestClient) -> None:
        response = client.get("/v1/jobs/status")

        assert response.status_code == 403
        assert "X-Admin-Key" in response.json()["detail"]

    def test_wrong_admin_key_is_forbidden(self, client: TestClient) -> None:
        response = client.get("/v1/audit-logs/retention/config", headers={"X-Admin-Key": "wrong"})

        assert response.status_code == 403


class TestJobEndpoints:
    def test_status(self, client: TestClient) -> None:
        response = client.get("/v1/jobs/status", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["scheduler"]["running"] is False
        assert {job["name"] for job in data["scheduler"]["jobs"]} == {"monthly-reset", "audit-cleanup"}
        assert data["health"]["job_counts"]["total"] == 2

    def test_execute_monthly_reset(self, client: TestClient, container: ServiceContainer) -> None:
        response = client.post("/v1/jobs/monthly-reset/execute", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["success"] is True
        assert data["total_tenants"] == 2
        assert data["success_count"] == 2

        info = client.get("/v1/jobs/monthly-reset", headers=ADMIN_HEADERS).json()["data"]
        assert info["last_execution"]["total_tenants"] == 2
        assert info["config"]["cron_expression"] == "0 0 1 * *"

    def test_restart_monthly_reset_rejects_bad_cron(self, client: TestClient) -> None:
        response = client.post(
            "/v1/jobs/monthly-reset/restart",
            headers=ADMIN_HEADERS,
            json={"cron_expression": "every monday"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_cron_expression"

    def test_restart_monthly_reset_applies_update(self, client: TestClient) -> None:
        response = client.post(
            "/v1/jobs/monthly-reset/restart",
            headers=ADMIN_HEADERS,
            json={"retry_attempts": 5},
        )

        assert response.status_code == 200
        assert response.json()["data"]["config"]["retry_attempts"] == 5

    def test_scheduler_restart_starts_jobs(self, client: TestClient) -> None:
        response = client.post("/v1/jobs/scheduler/restart", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["running"] is True
        assert all(job["running"] for job in data["jobs"])

    def test_notification_test(self, client: TestClient, webhook) -> None:
        response = client.post("/v1/jobs/notifications/test", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["data"]["notification"]["success"] is True
        assert len(webhook.calls) == 1


class TestRetentionEndpoints:
    def test_get_config(self, client: TestClient) -> None:
        response = client.get("/v1/audit-logs/retention/config", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["data"]["retention_days"] == 180

    def test_update_rejects_out_of_range_and_keeps_config(self, client: TestClient) -> None:
        response = client.post(
            "/v1/audit-logs/retention/config", headers=ADMIN_HEADERS, json={"retention_days": 10}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_retention_days"
        config = client.get("/v1/audit-logs/retention/config", headers=ADMIN_HEADERS).json()["data"]
        assert config["retention_days"] == 180

    def test_update_applies_valid_values(self, client: TestClient) -> None:
        response = client.post(
            "/v1/audit-logs/retention/config",
            headers=ADMIN_HEADERS,
            json={"retention_days": 90, "cleanup_hour": 4},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["retention_days"] == 90
        assert data["cleanup_hour"] == 4

    def test_manual_cleanup(self, client: TestClient, audit_repo) -> None:
        audit_repo.deleted = 12

        response = client.post("/v1/audit-logs/retention/cleanup", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["deleted_records"] == 12
        assert data["retention_days"] == 180
        assert len(audit_repo.cutoffs) == 1
