"""Unit tests for CheckQuota use case

Tests cover:
- Allowed under quota
- Denied without a subscription
- Denied at quota without overage pricing (upgrade required)
- Allowed over quota when overage is billed
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from src.app.use_cases.billing.check_quota import CheckQuota
from src.domain.subscription import OCCUPYING_STATUSES


@pytest.fixture
def mock_subscription_repo():
    return MagicMock()


@pytest.fixture
def mock_plan_repo():
    return MagicMock()


@pytest.fixture
def check_quota(mock_subscription_repo, mock_plan_repo):
    return CheckQuota(mock_subscription_repo, mock_plan_repo)


@pytest.mark.asyncio
class TestCheckQuota:
    async def test_allowed_under_quota(self, check_quota, mock_subscription_repo, mock_plan_repo, active_subscription):
        # Arrange
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=active_subscription)
        mock_plan_repo.get_by_id = AsyncMock()

        # Act
        result = await check_quota.execute("tenant_123")

        # Assert
        assert result.is_ok()
        check = result.value
        assert check.allowed is True
        assert check.reason is None
        assert check.quota == 1000
        assert check.used == 250
        assert check.remaining == 750
        mock_subscription_repo.get_current_for_tenant.assert_called_once_with("tenant_123", OCCUPYING_STATUSES)
        mock_plan_repo.get_by_id.assert_not_called()

    async def test_denied_without_subscription(self, check_quota, mock_subscription_repo):
        """
        Given: Tenant has no trialing or active subscription
        When: Quota is checked
        Then: Not allowed with reason no_subscription
        """
        # Arrange
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=None)

        # Act
        result = await check_quota.execute("tenant_404")

        # Assert
        assert result.is_ok()
        assert result.value.allowed is False
        assert result.value.reason == "no_subscription"

    async def test_denied_at_quota_without_overage_price(
        self, check_quota, mock_subscription_repo, mock_plan_repo, active_subscription, pro_plan
    ):
        """
        Given: executions_used == execution_quota and the plan forbids overage
        When: Quota is checked
        Then: Not allowed, reason quota_exceeded, action_required upgrade_plan
        """
        # Arrange
        active_subscription.executions_used = 1000
        pro_plan.overage_price_per_execution = None
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=active_subscription)
        mock_plan_repo.get_by_id = AsyncMock(return_value=pro_plan)

        # Act
        result = await check_quota.execute("tenant_123")

        # Assert
        check = result.value
        assert check.allowed is False
        assert check.reason == "quota_exceeded"
        assert check.action_required == "upgrade_plan"
        assert check.remaining == 0

    async def test_allowed_over_quota_with_overage_price(
        self, check_quota, mock_subscription_repo, mock_plan_repo, active_subscription, pro_plan
    ):
        """
        Given: Usage is 1200 of 1000 and the plan bills overage at 0.01
        When: Quota is checked
        Then: Allowed, reason overage_billed, 200 overage executions reported
        """
        # Arrange
        active_subscription.executions_used = 1200
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=active_subscription)
        mock_plan_repo.get_by_id = AsyncMock(return_value=pro_plan)

        # Act
        result = await check_quota.execute("tenant_123")

        # Assert
        check = result.value
        assert check.allowed is True
        assert check.reason == "overage_billed"
        assert check.overage_executions == 200
        mock_plan_repo.get_by_id.assert_called_once_with(3)

    async def test_repository_failure(self, check_quota, mock_subscription_repo):
        # Arrange
        mock_subscription_repo.get_current_for_tenant = AsyncMock(side_effect=Exception("db down"))

        # Act
        result = await check_quota.execute("tenant_123")

        # Assert
        assert result.is_err()
        assert result.error.code == "QUOTA_CHECK_FAILED"
