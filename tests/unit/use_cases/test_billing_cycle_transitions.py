"""Unit tests for ExpireTrial and RenewSubscription use cases

Tests cover:
- Free plan trial expiry activates without an invoice
- Paid plan trial expiry opens a new period and bills it upfront
- Cancellation scheduled during a trial
- Renewal billing the ended period and advancing atomically
- Renewal of an already invoiced period
- Renewal of a prepaid period with nothing left to bill
- Invoice number collisions are retried
- Concurrent renewal (period advance CAS miss)
- Invariant violations are alerted and roll back
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from src.app.use_cases.billing.expire_trial import ExpireTrial
from src.app.use_cases.billing.renew_subscription import RenewSubscription
from src.domain.errors import ConflictError, InvariantViolation, InvoiceNumberTakenError
from src.domain.invoice import Invoice, InvoiceKind, InvoiceStatus
from src.domain.subscription import SubscriptionStatus


@pytest.fixture
def sample_invoice():
    return Invoice(
        id=100,
        tenant_id="tenant_123",
        subscription_id=12,
        invoice_number="INV-20240201-00001",
        billing_period_start=datetime(2024, 1, 1),
        billing_period_end=datetime(2024, 2, 1),
        due_date=datetime(2024, 2, 8),
        status=InvoiceStatus.PENDING,
        total_amount=Decimal("49.00"),
    )


@pytest.fixture
def mock_composer(sample_invoice):
    composer = MagicMock()
    composer.due_days = 7
    composer.compose = AsyncMock(return_value=sample_invoice)
    composer.close_period = AsyncMock(return_value=sample_invoice)
    return composer


@pytest.fixture
def mock_subscription_repo():
    repo = MagicMock()
    repo.save_transition = AsyncMock()
    repo.reset_executions_used = AsyncMock()
    repo.advance_period = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def mock_plan_repo(pro_plan):
    repo = MagicMock()
    repo.get_by_id = AsyncMock(return_value=pro_plan)
    return repo


@pytest.fixture
def mock_notification_service():
    service = MagicMock()
    service.send_billing_alert = AsyncMock(return_value=True)
    return service


@pytest.fixture
def trialing_subscription(active_subscription):
    active_subscription.status = SubscriptionStatus.TRIALING
    active_subscription.trial_ends_at = datetime(2024, 1, 31)
    active_subscription.executions_used = 40
    return active_subscription


@pytest.mark.asyncio
class TestExpireTrial:
    @pytest.fixture
    def expire_trial(self, mock_uow, mock_subscription_repo, mock_plan_repo, mock_composer, clock, mock_notification_service):
        return ExpireTrial(
            uow=mock_uow,
            subscription_repo=mock_subscription_repo,
            plan_repo=mock_plan_repo,
            composer=mock_composer,
            clock=clock,
            notification_service=mock_notification_service,
        )

    async def test_free_plan_activates_without_invoice(
        self, expire_trial, mock_uow, mock_subscription_repo, mock_composer, pro_plan, trialing_subscription
    ):
        """
        Given: A trial on a free plan has expired
        When: ExpireTrial runs
        Then: Subscription is active and no invoice is composed
        """
        # Arrange
        pro_plan.base_price = Decimal("0")
        pro_plan.final_price = Decimal("0")
        mock_subscription_repo.get_by_id = AsyncMock(return_value=trialing_subscription)

        # Act
        result = await expire_trial.execute(12)

        # Assert
        assert result.is_ok()
        assert result.value.action == "activated"
        assert result.value.status == "active"
        assert result.value.invoice_id is None
        mock_composer.compose.assert_not_called()
        mock_subscription_repo.save_transition.assert_called_once_with(
            trialing_subscription, SubscriptionStatus.TRIALING
        )
        mock_uow.commit.assert_called_once()

    async def test_paid_plan_bills_first_period(
        self, expire_trial, mock_uow, mock_subscription_repo, mock_composer, trialing_subscription, now
    ):
        """
        Given: A trial on a paid plan has expired
        When: ExpireTrial runs
        Then: New period starts now, one base-plan-only invoice due in 7 days,
              subscription active, usage reset, everything committed once
        """
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=trialing_subscription)

        # Act
        result = await expire_trial.execute(12)

        # Assert
        assert result.value.action == "activated"
        assert result.value.invoice_id == 100
        assert result.value.invoice_number == "INV-20240201-00001"

        kwargs = mock_composer.compose.call_args.kwargs
        assert kwargs["period_start"] == now
        assert kwargs["period_end"] == datetime(2024, 3, 1)
        assert kwargs["due_date"] == now + timedelta(days=7)
        assert kwargs["kind"] == InvoiceKind.ADVANCE

        assert trialing_subscription.status == SubscriptionStatus.ACTIVE
        assert trialing_subscription.next_billing_date == datetime(2024, 3, 1)
        mock_subscription_repo.reset_executions_used.assert_called_once_with(12)
        mock_uow.commit.assert_called_once()

    async def test_cancelled_trial_is_not_billed(
        self, expire_trial, mock_subscription_repo, mock_composer, trialing_subscription
    ):
        # Arrange
        trialing_subscription.schedule_cancellation(datetime(2024, 1, 20))
        mock_subscription_repo.get_by_id = AsyncMock(return_value=trialing_subscription)

        # Act
        result = await expire_trial.execute(12)

        # Assert
        assert result.value.action == "cancelled"
        assert result.value.status == "canceled"
        mock_composer.compose.assert_not_called()

    async def test_trial_not_yet_expired(self, expire_trial, mock_uow, mock_subscription_repo, trialing_subscription):
        # Arrange
        trialing_subscription.trial_ends_at = datetime(2024, 2, 10)
        mock_subscription_repo.get_by_id = AsyncMock(return_value=trialing_subscription)

        # Act
        result = await expire_trial.execute(12)

        # Assert
        assert result.value.action == "skipped"
        mock_uow.commit.assert_not_called()

    async def test_invariant_violation_rolls_back_and_alerts(
        self,
        expire_trial,
        mock_uow,
        mock_subscription_repo,
        mock_composer,
        mock_notification_service,
        trialing_subscription,
    ):
        """
        Given: Invoice totals do not match their line items
        When: ExpireTrial composes the first invoice
        Then: Rolled back, INVARIANT_VIOLATION returned, alert sent, subscription not saved
        """
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=trialing_subscription)
        mock_composer.compose = AsyncMock(side_effect=InvariantViolation("total mismatch"))

        # Act
        result = await expire_trial.execute(12)

        # Assert
        assert result.error.code == "INVARIANT_VIOLATION"
        mock_uow.rollback.assert_called_once()
        mock_uow.commit.assert_not_called()
        mock_subscription_repo.save_transition.assert_not_called()
        assert mock_notification_service.send_billing_alert.call_args.args[0] == "invariant_violation"


@pytest.mark.asyncio
class TestRenewSubscription:
    @pytest.fixture
    def renew(self, mock_uow, mock_subscription_repo, mock_composer, clock, mock_notification_service):
        return RenewSubscription(
            uow=mock_uow,
            subscription_repo=mock_subscription_repo,
            composer=mock_composer,
            clock=clock,
            notification_service=mock_notification_service,
        )

    async def test_renew_bills_ended_period(
        self, renew, mock_uow, mock_subscription_repo, mock_composer, active_subscription, now
    ):
        """
        Given: Active subscription whose period ended on 2024-02-01
        When: RenewSubscription runs on 2024-02-01
        Then: January is invoiced, period advanced to February by CAS, committed once
        """
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)

        # Act
        result = await renew.execute(12)

        # Assert
        assert result.value.action == "renewed"
        assert result.value.invoice_id == 100

        mock_composer.close_period.assert_called_once_with(active_subscription, now)

        mock_subscription_repo.advance_period.assert_called_once_with(
            12, datetime(2024, 2, 1), datetime(2024, 2, 1), datetime(2024, 3, 1), now
        )
        assert active_subscription.next_billing_date == datetime(2024, 3, 1)
        assert active_subscription.executions_used == 0
        mock_uow.commit.assert_called_once()

    async def test_period_already_invoiced(
        self, renew, mock_uow, mock_subscription_repo, mock_composer, active_subscription
    ):
        """
        Given: The ended period already has an invoice
        When: RenewSubscription runs
        Then: No second invoice, period still advances, action already_processed
        """
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_composer.close_period = AsyncMock(side_effect=ConflictError("Invoice already exists"))

        # Act
        result = await renew.execute(12)

        # Assert
        assert result.value.action == "already_processed"
        assert result.value.invoice_id is None
        mock_subscription_repo.advance_period.assert_called_once()
        mock_uow.commit.assert_called_once()

    async def test_concurrent_renewal(self, renew, mock_uow, mock_subscription_repo, active_subscription):
        """
        Given: Another scheduler advanced the period first
        When: The period advance CAS misses
        Then: Rolled back (the composed invoice with it), already_processed
        """
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_subscription_repo.advance_period = AsyncMock(return_value=False)

        # Act
        result = await renew.execute(12)

        # Assert
        assert result.value.action == "already_processed"
        mock_uow.rollback.assert_called_once()
        mock_uow.commit.assert_not_called()

    async def test_not_due(self, renew, mock_subscription_repo, mock_composer, active_subscription):
        # Arrange
        active_subscription.next_billing_date = datetime(2024, 2, 15)
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)

        # Act
        result = await renew.execute(12)

        # Assert
        assert result.value.action == "skipped"
        mock_composer.close_period.assert_not_called()

    async def test_scheduled_cancellation_is_not_renewed(self, renew, mock_subscription_repo, mock_composer, active_subscription):
        # Arrange
        active_subscription.schedule_cancellation(datetime(2024, 1, 20))
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)

        # Act
        result = await renew.execute(12)

        # Assert
        assert result.value.action == "skipped"
        mock_composer.close_period.assert_not_called()

    async def test_unexpected_error(self, renew, mock_uow, mock_subscription_repo, mock_composer, active_subscription):
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_composer.close_period = AsyncMock(side_effect=Exception("deadlock detected"))

        # Act
        result = await renew.execute(12)

        # Assert
        assert result.error.code == "RENEW_SUBSCRIPTION_FAILED"
        mock_uow.rollback.assert_called_once()

    async def test_prepaid_period_with_nothing_to_bill(
        self, renew, mock_uow, mock_subscription_repo, mock_composer, active_subscription
    ):
        """
        Given: The base plan was billed in advance and there is no add-on or overage
        When: RenewSubscription runs
        Then: No invoice, the period still advances, action renewed
        """
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_composer.close_period = AsyncMock(return_value=None)

        # Act
        result = await renew.execute(12)

        # Assert
        assert result.value.action == "renewed"
        assert result.value.invoice_id is None
        mock_subscription_repo.advance_period.assert_called_once()
        mock_uow.commit.assert_called_once()

    async def test_invoice_number_taken_is_retried(
        self, renew, mock_uow, mock_subscription_repo, mock_composer, active_subscription, sample_invoice
    ):
        """
        Given: A concurrent run committed the allocated invoice number first
        When: RenewSubscription runs
        Then: The first attempt rolls back, the second one renews and commits
        """
        # Arrange
        mock_subscription_repo.get_by_id = AsyncMock(return_value=active_subscription)
        mock_composer.close_period = AsyncMock(
            side_effect=[InvoiceNumberTakenError("INV-20240201-00001 taken"), sample_invoice]
        )

        # Act
        result = await renew.execute(12)

        # Assert
        assert result.value.action == "renewed"
        assert result.value.invoice_id == 100
        assert mock_composer.close_period.await_count == 2
        mock_uow.rollback.assert_called_once()
        mock_uow.commit.assert_called_once()
        mock_subscription_repo.advance_period.assert_called_once()
