"""Tests for the monthly usage reset job."""

from unittest.mock import AsyncMock

import pytest

from app.core.errors import StorageAppError, ValidationAppError
from app.schemas.jobs import MonthlyResetConfig, MonthlyResetConfigUpdate
from app.services.monthly_reset import MonthlyResetExecutor


def _config(**overrides) -> MonthlyResetConfig:
    values = {"enabled": True, "retry_attempts": 3, "retry_delay_ms": 5000}
    values.update(overrides)
    return MonthlyResetConfig(**values)


@pytest.fixture
def sleep() -> AsyncMock:
    return AsyncMock()


class TestResetTenantWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_on_third_attempt(self, tenant_repo, dispatcher, sleep) -> None:
        tenant_repo.reset_failures["tenant-a"] = 2
        executor = MonthlyResetExecutor(tenant_repo, dispatcher, _config(), sleep=sleep)

        attempt = await executor.reset_tenant_with_retry("tenant-a", 3, 5000)

        assert attempt.succeeded is True
        assert attempt.attempts == 3
        assert tenant_repo.reset_calls == ["tenant-a"] * 3
        assert sleep.await_count == 2
        sleep.assert_awaited_with(5.0)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts_without_trailing_sleep(
        self, tenant_repo, dispatcher, sleep
    ) -> None:
        tenant_repo.reset_failures["tenant-a"] = 10
        executor = MonthlyResetExecutor(tenant_repo, dispatcher, _config(), sleep=sleep)

        attempt = await executor.reset_tenant_with_retry("tenant-a", 3, 100)

        assert attempt.succeeded is False
        assert attempt.attempts == 3
        assert "reset failed for tenant-a" in attempt.last_error
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, tenant_repo, dispatcher, sleep) -> None:
        tenant_repo.reset_failures["tenant-a"] = 1
        executor = MonthlyResetExecutor(tenant_repo, dispatcher, _config(), sleep=sleep)

        attempt = await executor.reset_tenant_with_retry("tenant-a", 1, 5000)

        assert attempt.succeeded is False
        sleep.assert_not_awaited()


class TestExecuteMonthlyReset:
    @pytest.mark.asyncio
    async def test_all_tenants_reset(
        self, make_tenant_repo, make_tenant, dispatcher, webhook, sleep
    ) -> None:
        repo = make_tenant_repo(
            [make_tenant(f"t{i}", monthly_usage=i * 10) for i in range(1, 4)]
        )
        executor = MonthlyResetExecutor(repo, dispatcher, _config(), sleep=sleep)

        result = await executor.execute_monthly_reset()

        assert result.success is True
        assert result.total_tenants == 3
        assert result.success_count == 3
        assert result.failure_count == 0
        assert result.errors == []
        assert all(usage == 0 for usage in repo.usage.values())
        assert executor.get_last_execution() is result
        assert executor.is_running is False
        assert len(webhook.calls) == 1
        assert webhook.calls[0][1]["text"] == "Monthly reset completed successfully (3/3 tenants)"

    @pytest.mark.asyncio
    async def test_one_tenant_failing_permanently(
        self, make_tenant_repo, make_tenant, dispatcher, webhook, sleep
    ) -> None:
        repo = make_tenant_repo([make_tenant("A"), make_tenant("B"), make_tenant("C")])
        repo.reset_failures["B"] = 100
        executor = MonthlyResetExecutor(repo, dispatcher, _config(), sleep=sleep)

        result = await executor.execute_monthly_reset()

        assert result.success is False
        assert result.total_tenants == 3
        assert result.success_count == 2
        assert result.failure_count == 1
        assert len(result.errors) == 1
        assert result.errors[0].tenant_id == "B"
        assert result.errors[0].error.startswith("Failed after all retry attempts")
        assert repo.reset_calls.count("B") == 3
        assert repo.reset_calls == ["A", "B", "B", "B", "C"]
        assert result.success_count + result.failure_count == result.total_tenants

        assert len(webhook.calls) == 1
        payload = webhook.calls[0][1]
        assert payload["text"] == "Monthly reset failed (1/3 failures)"

    @pytest.mark.asyncio
    async def test_no_active_tenants_is_a_success(
        self, make_tenant_repo, dispatcher, sleep
    ) -> None:
        executor = MonthlyResetExecutor(make_tenant_repo([]), dispatcher, _config(), sleep=sleep)

        result = await executor.execute_monthly_reset()

        assert result.success is True
        assert result.total_tenants == 0

    @pytest.mark.asyncio
    async def test_listing_failure_records_system_error_and_reraises(
        self, tenant_repo, dispatcher, webhook, sleep
    ) -> None:
        tenant_repo.list_error = StorageAppError(code="storage_error", message="database unavailable")
        executor = MonthlyResetExecutor(tenant_repo, dispatcher, _config(), sleep=sleep)

        with pytest.raises(StorageAppError):
            await executor.execute_monthly_reset()

        last = executor.get_last_execution()
        assert last is not None
        assert last.success is False
        assert [e.tenant_id for e in last.errors] == ["SYSTEM"]
        assert "database unavailable" in last.errors[0].error
        assert last.failure_count == 0
        assert tenant_repo.reset_calls == []
        assert executor.is_running is False
        assert len(webhook.calls) == 1
        assert webhook.calls[0][1]["text"].startswith("Monthly reset failed")

    @pytest.mark.asyncio
    async def test_page_size_bounds_the_batch(
        self, make_tenant_repo, make_tenant, dispatcher, sleep
    ) -> None:
        repo = make_tenant_repo([make_tenant(f"t{i}") for i in range(5)])
        executor = MonthlyResetExecutor(repo, dispatcher, _config(page_size=2), sleep=sleep)

        result = await executor.execute_monthly_reset()

        assert result.total_tenants == 2
        assert repo.reset_calls == ["t0", "t1"]


class TestUpdateConfig:
    def test_applies_supplied_fields_only(self, tenant_repo, dispatcher) -> None:
        executor = MonthlyResetExecutor(tenant_repo, dispatcher, _config())

        updated = executor.update_config(MonthlyResetConfigUpdate(retry_attempts=5))

        assert updated.retry_attempts == 5
        assert updated.retry_delay_ms == 5000
        assert updated.cron_expression == "0 0 1 * *"
        assert executor.get_config() is updated

    @pytest.mark.parametrize(
        ("update", "code"),
        [
            (MonthlyResetConfigUpdate(retry_attempts=0), "invalid_retry_attempts"),
            (MonthlyResetConfigUpdate(retry_delay_ms=-1), "invalid_retry_delay"),
            (MonthlyResetConfigUpdate(cron_expression="not a cron"), "invalid_cron_expression"),
            (MonthlyResetConfigUpdate(timezone="Mars/Olympus_Mons"), "invalid_timezone"),
        ],
    )
    def test_rejects_invalid_values_and_keeps_config(
        self, tenant_repo, dispatcher, update, code
    ) -> None:
        original = _config()
        executor = MonthlyResetExecutor(tenant_repo, dispatcher, original)

        with pytest.raises(ValidationAppError) as exc_info:
            executor.update_config(update)

        assert exc_info.value.code == code
        assert executor.get_config() is original
