"""Unit tests for subscription lifecycle use cases

Tests cover:
- CreateSubscription: trial vs active start, plan validation, one current subscription
- CancelSubscription: immediate (with closing invoice) and end-of-period
- ReactivateSubscription: within period, conflict with a newer subscription
- FinalizeCancellation (with closing invoice) and MarkPastDue scheduler transitions
- RenewAgentSubscription
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import IntegrityError

from src.app.use_cases.billing.create_subscription import CreateSubscription
from src.app.use_cases.billing.cancel_subscription import CancelSubscription
from src.app.use_cases.billing.reactivate_subscription import ReactivateSubscription
from src.app.use_cases.billing.finalize_cancellation import FinalizeCancellation
from src.app.use_cases.billing.mark_past_due import MarkPastDue
from src.app.use_cases.billing.renew_agent_subscription import RenewAgentSubscription
from src.app.use_cases.billing.dtos import CancelSubscriptionCommandDTO, CreateSubscriptionCommandDTO
from src.domain.agent_subscription import AgentSubscription, AgentSubscriptionStatus
from src.domain.errors import ConflictError
from src.domain.invoice import Invoice, InvoiceStatus
from src.domain.subscription import SubscriptionStatus


async def persist(entity):
    entity.id = 40
    return entity


@pytest.fixture
def closing_invoice():
    return Invoice(
        id=101,
        tenant_id="tenant_123",
        subscription_id=12,
        invoice_number="INV-20240201-00002",
        billing_period_start=datetime(2024, 1, 1),
        billing_period_end=datetime(2024, 2, 1),
        due_date=datetime(2024, 2, 8),
        status=InvoiceStatus.PENDING,
        total_amount=Decimal("54.00"),
    )


@pytest.fixture
def mock_composer():
    composer = MagicMock()
    composer.close_period = AsyncMock(return_value=None)
    return composer


@pytest.fixture
def mock_plan_repo():
    return MagicMock()


@pytest.fixture
def mock_subscription_repo():
    repo = MagicMock()
    repo.save_transition = AsyncMock()
    return repo


@pytest.mark.asyncio
class TestCreateSubscription:
    @pytest.fixture
    def create_subscription(self, mock_uow, mock_plan_repo, mock_subscription_repo, clock):
        return CreateSubscription(mock_uow, mock_plan_repo, mock_subscription_repo, clock)

    async def test_paid_plan_without_trial_starts_active(
        self, create_subscription, mock_uow, mock_plan_repo, mock_subscription_repo, pro_plan, now
    ):
        """
        Given: An active monthly plan without trial days
        When: A tenant subscribes
        Then: Subscription is active for [now, now + 1 month) with the plan's quota
        """
        # Arrange
        mock_plan_repo.get_by_id = AsyncMock(return_value=pro_plan)
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=None)
        mock_subscription_repo.create = AsyncMock(side_effect=persist)

        # Act
        result = await create_subscription.execute(
            CreateSubscriptionCommandDTO(tenant_id="tenant_new", plan_id=3)
        )

        # Assert
        assert result.is_ok()
        dto = result.value
        assert dto.subscription_id == 40
        assert dto.status == "active"
        assert dto.current_period_start == now
        assert dto.current_period_end == datetime(2024, 3, 1)
        assert dto.next_billing_date == datetime(2024, 3, 1)
        assert dto.execution_quota == 1000
        assert dto.executions_used == 0
        assert dto.trial_ends_at is None
        mock_uow.commit.assert_called_once()

    async def test_plan_with_trial_starts_trialing(
        self, create_subscription, mock_plan_repo, mock_subscription_repo, pro_plan, now
    ):
        # Arrange
        pro_plan.trial_days = 14
        mock_plan_repo.get_by_id = AsyncMock(return_value=pro_plan)
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=None)
        mock_subscription_repo.create = AsyncMock(side_effect=persist)

        # Act
        result = await create_subscription.execute(
            CreateSubscriptionCommandDTO(tenant_id="tenant_new", plan_id=3)
        )

        # Assert
        assert result.value.status == "trialing"
        assert result.value.trial_ends_at == now + timedelta(days=14)

    async def test_inactive_plan_rejected(self, create_subscription, mock_uow, mock_plan_repo, pro_plan):
        # Arrange
        pro_plan.is_active = False
        mock_plan_repo.get_by_id = AsyncMock(return_value=pro_plan)

        # Act
        result = await create_subscription.execute(
            CreateSubscriptionCommandDTO(tenant_id="tenant_new", plan_id=3)
        )

        # Assert
        assert result.is_err()
        assert result.error.code == "VALIDATION_ERROR"
        mock_uow.commit.assert_not_called()

    async def test_existing_current_subscription_conflicts(
        self, create_subscription, mock_plan_repo, mock_subscription_repo, pro_plan, active_subscription
    ):
        """
        Given: Tenant already holds an active subscription
        When: A second subscription is requested
        Then: CONFLICT, nothing created
        """
        # Arrange
        mock_plan_repo.get_by_id = AsyncMock(return_value=pro_plan)
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=active_subscription)
        mock_subscription_repo.create = AsyncMock()

        # Act
        result = await create_subscription.execute(
            CreateSubscriptionCommandDTO(tenant_id="tenant_123", plan_id=3)
        )

        # Assert
        assert result.error.code == "CONFLICT"
        mock_subscription_repo.create.assert_not_called()

    async def test_concurrent_create_hits_unique_index(
        self, create_subscription, mock_uow, mock_plan_repo, mock_subscription_repo, pro_plan
    ):
        # Arrange
        mock_plan_repo.get_by_id = AsyncMock(return_value=pro_plan)
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=None)
        mock_subscription_repo.create = AsyncMock(
            side_effect=IntegrityError("INSERT INTO subscriptions", {}, Exception("ux_subscriptions_tenant_current"))
        )

        # Act
        result = await create_subscription.execute(
            CreateSubscriptionCommandDTO(tenant_id="tenant_123", plan_id=3)
        )

        # Assert
        assert result.error.code == "CONFLICT"
        mock_uow.rollback.assert_called_once()


@pytest.mark.asyncio
class TestCancelSubscription:
    @pytest.fixture
    def cancel_subscription(self, mock_uow, mock_subscription_repo, mock_composer, clock):
        return CancelSubscription(mock_uow, mock_subscription_repo, mock_composer, clock)

    async def test_cancel_at_period_end(
        self, cancel_subscription, mock_uow, mock_subscription_repo, mock_composer, active_subscription
    ):
        """
        Given: An active subscription
        When: Cancelled without immediate
        Then: Stays active with auto_renew off; status CAS against active
        """
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)

        # Act
        result = await cancel_subscription.execute(CancelSubscriptionCommandDTO(subscription_id=12))

        # Assert
        assert result.is_ok()
        assert result.value.status == "active"
        assert result.value.auto_renew is False
        assert result.value.cancelled_at is not None
        mock_subscription_repo.get_by_id.assert_called_once_with(12, for_update=True)
        mock_subscription_repo.save_transition.assert_called_once_with(
            active_subscription, SubscriptionStatus.ACTIVE
        )
        mock_uow.commit.assert_called_once()
        mock_composer.close_period.assert_not_called()

    async def test_cancel_immediately_bills_current_period(
        self,
        cancel_subscription,
        mock_uow,
        mock_subscription_repo,
        mock_composer,
        active_subscription,
        closing_invoice,
        now,
    ):
        """
        Given: An active subscription with January running
        When: Cancelled immediately
        Then: Canceled, and January is invoiced in the same commit
        """
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_composer.close_period = AsyncMock(return_value=closing_invoice)

        # Act
        result = await cancel_subscription.execute(
            CancelSubscriptionCommandDTO(subscription_id=12, immediate=True)
        )

        # Assert
        assert result.value.status == "canceled"
        assert mock_composer.close_period.call_args.args == (active_subscription, now)
        mock_uow.commit.assert_called_once()

    async def test_cancel_trial_immediately_is_free(
        self, cancel_subscription, mock_subscription_repo, mock_composer, active_subscription
    ):
        # Arrange
        active_subscription.status = SubscriptionStatus.TRIALING
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)

        # Act
        result = await cancel_subscription.execute(
            CancelSubscriptionCommandDTO(subscription_id=12, immediate=True)
        )

        # Assert
        assert result.value.status == "canceled"
        mock_composer.close_period.assert_not_called()

    async def test_cancel_immediately_after_renewal_invoice(
        self, cancel_subscription, mock_uow, mock_subscription_repo, mock_composer, active_subscription
    ):
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_composer.close_period = AsyncMock(side_effect=ConflictError("Invoice already exists"))

        # Act
        result = await cancel_subscription.execute(
            CancelSubscriptionCommandDTO(subscription_id=12, immediate=True)
        )

        # Assert
        assert result.value.status == "canceled"
        mock_uow.commit.assert_called_once()

    async def test_cancel_already_cancelled(
        self, cancel_subscription, mock_uow, mock_subscription_repo, active_subscription
    ):
        # Arrange
        active_subscription.status = SubscriptionStatus.CANCELED
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)

        # Act
        result = await cancel_subscription.execute(
            CancelSubscriptionCommandDTO(subscription_id=12, immediate=True)
        )

        # Assert
        assert result.error.code == "INVALID_TRANSITION"
        mock_uow.rollback.assert_called_once()
        mock_subscription_repo.save_transition.assert_not_called()

    async def test_concurrent_status_change(
        self, cancel_subscription, mock_uow, mock_subscription_repo, active_subscription
    ):
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_subscription_repo.save_transition = AsyncMock(
            side_effect=ConflictError("Subscription 12 changed concurrently")
        )

        # Act
        result = await cancel_subscription.execute(CancelSubscriptionCommandDTO(subscription_id=12))

        # Assert
        assert result.error.code == "CONFLICT"
        mock_uow.commit.assert_not_called()

    async def test_unknown_subscription(self, cancel_subscription, mock_subscription_repo):
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=None)

        # Act
        result = await cancel_subscription.execute(CancelSubscriptionCommandDTO(subscription_id=999))

        # Assert
        assert result.error.code == "NOT_FOUND"


@pytest.mark.asyncio
class TestReactivateSubscription:
    @pytest.fixture
    def reactivate(self, mock_uow, mock_subscription_repo, clock):
        return ReactivateSubscription(mock_uow, mock_subscription_repo, clock)

    async def test_reactivate_cancelled_within_period(
        self, reactivate, mock_subscription_repo, active_subscription
    ):
        """
        Given: A subscription cancelled immediately, period ends 2024-03-01
        When: Reactivated on 2024-02-01
        Then: Back to active with auto_renew on
        """
        # Arrange
        active_subscription.current_period_end = datetime(2024, 3, 1)
        active_subscription.cancel_immediately(datetime(2024, 1, 20))
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=None)

        # Act
        result = await reactivate.execute(12)

        # Assert
        assert result.value.status == "active"
        assert result.value.auto_renew is True
        mock_subscription_repo.save_transition.assert_called_once_with(
            active_subscription, SubscriptionStatus.CANCELED
        )

    async def test_reactivate_conflicts_with_newer_subscription(
        self, reactivate, mock_subscription_repo, active_subscription
    ):
        # Arrange
        active_subscription.current_period_end = datetime(2024, 3, 1)
        active_subscription.cancel_immediately(datetime(2024, 1, 20))
        newer = MagicMock(id=13, status=SubscriptionStatus.ACTIVE)
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=newer)

        # Act
        result = await reactivate.execute(12)

        # Assert
        assert result.error.code == "CONFLICT"
        mock_subscription_repo.save_transition.assert_not_called()

    async def test_reactivate_after_period_end(self, reactivate, mock_subscription_repo, active_subscription):
        # Arrange
        active_subscription.cancel_immediately(datetime(2024, 1, 20))
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_subscription_repo.get_current_for_tenant = AsyncMock(return_value=None)

        # Act
        result = await reactivate.execute(12)

        # Assert
        assert result.error.code == "INVALID_TRANSITION"


@pytest.mark.asyncio
class TestSchedulerTransitions:
    async def test_finalize_cancellation_at_period_end(
        self, mock_uow, mock_subscription_repo, mock_composer, clock, active_subscription, closing_invoice, now
    ):
        """
        Given: A cancellation scheduled during January, 1500/1000 executions used
        When: FinalizeCancellation runs on 2024-02-01
        Then: January is invoiced and the subscription canceled in one commit
        """
        # Arrange
        active_subscription.executions_used = 1500
        active_subscription.schedule_cancellation(datetime(2024, 1, 20))
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_composer.close_period = AsyncMock(return_value=closing_invoice)
        use_case = FinalizeCancellation(mock_uow, mock_subscription_repo, mock_composer, clock)

        # Act
        result = await use_case.execute(12)

        # Assert
        assert result.value.action == "cancelled"
        assert result.value.status == "canceled"
        assert result.value.invoice_id == 101
        assert result.value.invoice_number == "INV-20240201-00002"
        mock_composer.close_period.assert_called_once_with(active_subscription, now)
        mock_subscription_repo.save_transition.assert_called_once_with(
            active_subscription, SubscriptionStatus.ACTIVE
        )
        mock_uow.commit.assert_called_once()

    async def test_finalize_cancellation_of_invoiced_period(
        self, mock_uow, mock_subscription_repo, mock_composer, clock, active_subscription
    ):
        # Arrange
        active_subscription.schedule_cancellation(datetime(2024, 1, 20))
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_composer.close_period = AsyncMock(side_effect=ConflictError("Invoice already exists"))
        use_case = FinalizeCancellation(mock_uow, mock_subscription_repo, mock_composer, clock)

        # Act
        result = await use_case.execute(12)

        # Assert
        assert result.value.action == "cancelled"
        assert result.value.invoice_id is None
        mock_uow.commit.assert_called_once()

    async def test_finalize_cancellation_rolls_back_when_billing_fails(
        self, mock_uow, mock_subscription_repo, mock_composer, clock, active_subscription
    ):
        # Arrange
        active_subscription.schedule_cancellation(datetime(2024, 1, 20))
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_composer.close_period = AsyncMock(side_effect=Exception("connection reset"))
        use_case = FinalizeCancellation(mock_uow, mock_subscription_repo, mock_composer, clock)

        # Act
        result = await use_case.execute(12)

        # Assert
        assert result.error.code == "FINALIZE_CANCELLATION_FAILED"
        mock_uow.rollback.assert_called_once()
        mock_uow.commit.assert_not_called()
        mock_subscription_repo.save_transition.assert_not_called()

    async def test_finalize_cancellation_skips_running_period(
        self, mock_uow, mock_subscription_repo, mock_composer, clock, active_subscription
    ):
        # Arrange
        active_subscription.current_period_end = datetime(2024, 3, 1)
        active_subscription.schedule_cancellation(datetime(2024, 1, 20))
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        use_case = FinalizeCancellation(mock_uow, mock_subscription_repo, mock_composer, clock)

        # Act
        result = await use_case.execute(12)

        # Assert
        assert result.value.action == "skipped"
        mock_composer.close_period.assert_not_called()
        mock_uow.commit.assert_not_called()

    async def test_mark_past_due_alerts(self, mock_uow, mock_subscription_repo, clock, active_subscription):
        """
        Given: An active subscription with an overdue invoice
        When: MarkPastDue runs
        Then: Status past_due and a billing alert is sent
        """
        # Arrange
        notification_service = MagicMock()
        notification_service.send_billing_alert = AsyncMock(return_value=True)
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        use_case = MarkPastDue(mock_uow, mock_subscription_repo, clock, notification_service)

        # Act
        result = await use_case.execute(12)

        # Assert
        assert result.value.action == "past_due"
        assert active_subscription.status == SubscriptionStatus.PAST_DUE
        mock_uow.commit.assert_called_once()
        assert notification_service.send_billing_alert.call_args.args[0] == "subscription_past_due"

    async def test_mark_past_due_skips_non_active(self, mock_uow, mock_subscription_repo, clock, active_subscription):
        # Arrange
        active_subscription.status = SubscriptionStatus.PAST_DUE
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        use_case = MarkPastDue(mock_uow, mock_subscription_repo, clock)

        # Act
        result = await use_case.execute(12)

        # Assert
        assert result.value.action == "skipped"
        mock_subscription_repo.save_transition.assert_not_called()


@pytest.mark.asyncio
class TestRenewAgentSubscription:
    @pytest.fixture
    def addon(self):
        return AgentSubscription(
            id=7,
            tenant_id="tenant_123",
            agent_id="agent_seo",
            agent_name="SEO Writer",
            monthly_price=Decimal("10.00"),
            status=AgentSubscriptionStatus.ACTIVE,
            current_period_start=datetime(2024, 1, 1),
            current_period_end=datetime(2024, 2, 1),
            next_billing_date=datetime(2024, 2, 1),
            auto_renew=True,
        )

    @pytest.fixture
    def mock_addon_repo(self):
        repo = MagicMock()
        repo.update = AsyncMock(side_effect=lambda addon: addon)
        return repo

    async def test_renews_one_month(self, mock_uow, mock_addon_repo, clock, addon):
        # Arrange
        mock_addon_repo.get_by_id = AsyncMock(return_value=addon)
        use_case = RenewAgentSubscription(mock_uow, mock_addon_repo, clock)

        # Act
        result = await use_case.execute(7)

        # Assert
        assert result.value.action == "renewed"
        assert result.value.next_billing_date == datetime(2024, 3, 1)
        assert addon.current_period_start == datetime(2024, 2, 1)
        mock_uow.commit.assert_called_once()

    async def test_cancels_when_auto_renew_off(self, mock_uow, mock_addon_repo, clock, addon):
        # Arrange
        addon.auto_renew = False
        mock_addon_repo.get_by_id = AsyncMock(return_value=addon)
        use_case = RenewAgentSubscription(mock_uow, mock_addon_repo, clock)

        # Act
        result = await use_case.execute(7)

        # Assert
        assert result.value.action == "cancelled"
        assert result.value.status == "cancelled"

    async def test_skips_when_not_due(self, mock_uow, mock_addon_repo, clock, addon):
        # Arrange
        addon.next_billing_date = datetime(2024, 2, 15)
        mock_addon_repo.get_by_id = AsyncMock(return_value=addon)
        use_case = RenewAgentSubscription(mock_uow, mock_addon_repo, clock)

        # Act
        result = await use_case.execute(7)

        # Assert
        assert result.value.action == "skipped"
        mock_addon_repo.update.assert_not_called()
