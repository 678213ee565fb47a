"""Unit tests for InvoiceComposer

Tests cover:
- Base plan, agent add-on and usage overage lines
- Total recalculated from persisted lines
- One invoice per tenant, kind and period
- Advance (base plan only) and usage (add-ons and overage only) invoices
- Closing a period after a prepaid base plan
- Missing plan or tenant persists nothing
- Retrying a use case whose invoice number was taken
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from src.app.services.tenant_directory import TenantInfo
from libs.result import Error, Return
from src.app.use_cases.billing.compose_invoice import InvoiceComposer, retry_on_number_collision
from src.domain.errors import ConflictError, NotFoundError
from src.domain.invoice import InvoiceKind, InvoiceStatus, PaymentLinkStatus
from src.domain.invoice_line_item import LineItemType


@pytest.fixture
def stored_lines():
    return []


@pytest.fixture
def mock_plan_repo(pro_plan):
    repo = MagicMock()
    repo.get_by_id = AsyncMock(return_value=pro_plan)
    return repo


@pytest.fixture
def mock_invoice_repo():
    async def create(invoice):
        invoice.id = 100
        return invoice

    repo = MagicMock()
    repo.exists_for_period = AsyncMock(return_value=False)
    repo.generate_invoice_number = AsyncMock(return_value="INV-20240201-00001")
    repo.create = AsyncMock(side_effect=create)
    repo.update = AsyncMock(side_effect=lambda invoice: invoice)
    return repo


@pytest.fixture
def mock_line_item_repo(stored_lines):
    async def create(item):
        item.id = len(stored_lines) + 1
        stored_lines.append(item)
        return item

    async def list_by_invoice(invoice_id):
        return [item for item in stored_lines if item.invoice_id == invoice_id]

    repo = MagicMock()
    repo.create = AsyncMock(side_effect=create)
    repo.list_by_invoice = AsyncMock(side_effect=list_by_invoice)
    return repo


@pytest.fixture
def mock_agent_subscription_repo():
    repo = MagicMock()
    repo.list_active_for_tenant = AsyncMock(
        return_value=[
            SimpleNamespace(id=7, agent_id="agent_seo", agent_name="SEO Writer", monthly_price=Decimal("10.00"))
        ]
    )
    return repo


@pytest.fixture
def mock_tenant_directory():
    directory = MagicMock()
    directory.get_tenant = AsyncMock(return_value=TenantInfo(tenant_id="tenant_123", name="Acme Corp"))
    return directory


@pytest.fixture
def composer(mock_plan_repo, mock_invoice_repo, mock_line_item_repo, mock_agent_subscription_repo, mock_tenant_directory):
    return InvoiceComposer(
        plan_repo=mock_plan_repo,
        invoice_repo=mock_invoice_repo,
        line_item_repo=mock_line_item_repo,
        agent_subscription_repo=mock_agent_subscription_repo,
        tenant_directory=mock_tenant_directory,
        currency="USD",
        due_days=7,
    )


@pytest.mark.asyncio
class TestInvoiceComposer:
    async def test_compose_with_overage_and_addon(self, composer, active_subscription, stored_lines, now):
        """
        Given: Pro plan (49.00, 1000 included, 0.01 overage), one 10.00 add-on, 1200 executions used
        When: The January invoice is composed
        Then: base_plan 49.00 + agent_addon 10.00 + usage_overage 200 x 0.01 = 61.00
        """
        # Arrange
        active_subscription.executions_used = 1200

        # Act
        invoice = await composer.compose(
            tenant_id="tenant_123",
            period_start=datetime(2024, 1, 1),
            period_end=datetime(2024, 2, 1),
            subscription=active_subscription,
            now=now,
        )

        # Assert
        assert invoice.invoice_number == "INV-20240201-00001"
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.subscription_id == 12
        assert invoice.due_date == datetime(2024, 2, 8)
        assert invoice.total_amount == Decimal("61.00")
        assert invoice.base_subscription_amount == Decimal("49.00")
        assert invoice.agent_addons_amount == Decimal("10.00")
        assert invoice.usage_overage_amount == Decimal("2.00")

        types = [item.item_type for item in stored_lines]
        assert types == [LineItemType.BASE_PLAN, LineItemType.AGENT_ADDON, LineItemType.USAGE_OVERAGE]
        overage = stored_lines[2]
        assert overage.quantity == 200
        assert overage.unit_price == Decimal("0.01")
        assert overage.total_price == Decimal("2.00")
        assert all(item.invoice_id == 100 for item in stored_lines)

    async def test_no_overage_line_without_overage_price(
        self, composer, active_subscription, pro_plan, stored_lines, now
    ):
        # Arrange
        active_subscription.executions_used = 1200
        pro_plan.overage_price_per_execution = None

        # Act
        invoice = await composer.compose(
            tenant_id="tenant_123",
            period_start=datetime(2024, 1, 1),
            period_end=datetime(2024, 2, 1),
            subscription=active_subscription,
            now=now,
        )

        # Assert
        assert LineItemType.USAGE_OVERAGE not in [item.item_type for item in stored_lines]
        assert invoice.total_amount == Decimal("59.00")

    async def test_advance_invoice_bills_base_plan_only(self, composer, active_subscription, stored_lines, now):
        # Arrange
        active_subscription.executions_used = 1200

        # Act
        invoice = await composer.compose(
            tenant_id="tenant_123",
            period_start=now,
            period_end=datetime(2024, 3, 1),
            subscription=active_subscription,
            now=now,
            due_date=now + timedelta(days=7),
            kind=InvoiceKind.ADVANCE,
        )

        # Assert
        assert [item.item_type for item in stored_lines] == [LineItemType.BASE_PLAN]
        assert invoice.kind == InvoiceKind.ADVANCE
        assert invoice.total_amount == Decimal("49.00")
        assert invoice.payment_link_status == PaymentLinkStatus.PENDING

    async def test_existing_invoice_for_period_conflicts(
        self, composer, mock_invoice_repo, active_subscription, now
    ):
        """
        Given: An invoice already exists for the tenant and period
        When: compose runs again
        Then: ConflictError and nothing is created
        """
        # Arrange
        mock_invoice_repo.exists_for_period = AsyncMock(return_value=True)

        # Act / Assert
        with pytest.raises(ConflictError):
            await composer.compose(
                tenant_id="tenant_123",
                period_start=datetime(2024, 1, 1),
                period_end=datetime(2024, 2, 1),
                subscription=active_subscription,
                now=now,
            )
        mock_invoice_repo.exists_for_period.assert_called_once_with(
            "tenant_123", datetime(2024, 1, 1), datetime(2024, 2, 1), InvoiceKind.PERIOD
        )
        mock_invoice_repo.create.assert_not_called()

    async def test_unknown_tenant(self, composer, mock_tenant_directory, mock_invoice_repo, active_subscription, now):
        # Arrange
        mock_tenant_directory.get_tenant = AsyncMock(return_value=None)

        # Act / Assert
        with pytest.raises(NotFoundError):
            await composer.compose(
                tenant_id="tenant_123",
                period_start=datetime(2024, 1, 1),
                period_end=datetime(2024, 2, 1),
                subscription=active_subscription,
                now=now,
            )
        mock_invoice_repo.create.assert_not_called()

    async def test_unknown_plan(self, composer, mock_plan_repo, mock_invoice_repo, active_subscription, now):
        # Arrange
        mock_plan_repo.get_by_id = AsyncMock(return_value=None)

        # Act / Assert
        with pytest.raises(NotFoundError):
            await composer.compose(
                tenant_id="tenant_123",
                period_start=datetime(2024, 1, 1),
                period_end=datetime(2024, 2, 1),
                subscription=active_subscription,
                now=now,
            )
        mock_invoice_repo.create.assert_not_called()

    async def test_usage_invoice_skips_base_plan(self, composer, active_subscription, stored_lines, now):
        # Arrange
        active_subscription.executions_used = 1200

        # Act
        invoice = await composer.compose(
            tenant_id="tenant_123",
            period_start=datetime(2024, 1, 1),
            period_end=datetime(2024, 2, 1),
            subscription=active_subscription,
            now=now,
            kind=InvoiceKind.USAGE,
        )

        # Assert
        assert [item.item_type for item in stored_lines] == [LineItemType.AGENT_ADDON, LineItemType.USAGE_OVERAGE]
        assert invoice.kind == InvoiceKind.USAGE
        assert invoice.base_subscription_amount == Decimal("0")
        assert invoice.total_amount == Decimal("12.00")

    async def test_usage_invoice_with_nothing_to_bill(
        self, composer, mock_invoice_repo, mock_agent_subscription_repo, active_subscription, now
    ):
        """
        Given: No add-ons and usage within quota
        When: A usage invoice is composed
        Then: No invoice, no number allocated
        """
        # Arrange
        mock_agent_subscription_repo.list_active_for_tenant = AsyncMock(return_value=[])

        # Act
        invoice = await composer.compose(
            tenant_id="tenant_123",
            period_start=datetime(2024, 1, 1),
            period_end=datetime(2024, 2, 1),
            subscription=active_subscription,
            now=now,
            kind=InvoiceKind.USAGE,
        )

        # Assert
        assert invoice is None
        mock_invoice_repo.generate_invoice_number.assert_not_called()
        mock_invoice_repo.create.assert_not_called()


@pytest.mark.asyncio
class TestClosePeriod:
    async def test_prepaid_period_bills_overage(
        self, composer, mock_invoice_repo, mock_agent_subscription_repo, active_subscription, stored_lines, now
    ):
        """
        Given: The base plan of January was billed in advance at trial conversion, 1200/1000 used
        When: The period is closed
        Then: A usage invoice with the 200 overage executions, no second base plan charge
        """
        # Arrange
        async def exists(tenant_id, start, end, kind):
            return kind == InvoiceKind.ADVANCE

        mock_invoice_repo.exists_for_period = AsyncMock(side_effect=exists)
        mock_agent_subscription_repo.list_active_for_tenant = AsyncMock(return_value=[])
        active_subscription.executions_used = 1200

        # Act
        invoice = await composer.close_period(active_subscription, now)

        # Assert
        assert invoice.kind == InvoiceKind.USAGE
        assert invoice.billing_period_start == datetime(2024, 1, 1)
        assert invoice.billing_period_end == datetime(2024, 2, 1)
        assert [item.item_type for item in stored_lines] == [LineItemType.USAGE_OVERAGE]
        assert stored_lines[0].quantity == 200
        assert invoice.total_amount == Decimal("2.00")

    async def test_period_without_advance_bills_everything(
        self, composer, active_subscription, stored_lines, now
    ):
        # Arrange
        active_subscription.executions_used = 1500

        # Act
        invoice = await composer.close_period(active_subscription, now, notes="Closing invoice on cancellation")

        # Assert
        assert invoice.kind == InvoiceKind.PERIOD
        assert invoice.notes == "Closing invoice on cancellation"
        assert [item.item_type for item in stored_lines] == [
            LineItemType.BASE_PLAN,
            LineItemType.AGENT_ADDON,
            LineItemType.USAGE_OVERAGE,
        ]
        assert invoice.total_amount == Decimal("64.00")

    async def test_closing_invoice_already_exists(self, composer, mock_invoice_repo, active_subscription, now):
        # Arrange
        async def exists(tenant_id, start, end, kind):
            return kind == InvoiceKind.PERIOD

        mock_invoice_repo.exists_for_period = AsyncMock(side_effect=exists)

        # Act / Assert
        with pytest.raises(ConflictError):
            await composer.close_period(active_subscription, now)
        mock_invoice_repo.create.assert_not_called()


@pytest.mark.asyncio
class TestRetryOnNumberCollision:
    async def test_retries_until_number_is_free(self):
        # Arrange
        taken = Return.err(Error(code="INVOICE_NUMBER_TAKEN", message="taken"))
        operation = AsyncMock(side_effect=[taken, Return.ok("renewed")])

        # Act
        result = await retry_on_number_collision(operation)

        # Assert
        assert result.is_ok()
        assert result.value == "renewed"
        assert operation.await_count == 2

    async def test_gives_up_after_attempts(self):
        # Arrange
        taken = Return.err(Error(code="INVOICE_NUMBER_TAKEN", message="taken"))
        operation = AsyncMock(return_value=taken)

        # Act
        result = await retry_on_number_collision(operation, attempts=3)

        # Assert
        assert result.error.code == "INVOICE_NUMBER_TAKEN"
        assert operation.await_count == 3

    async def test_other_errors_are_not_retried(self):
        # Arrange
        operation = AsyncMock(return_value=Return.err(Error(code="NOT_FOUND", message="missing")))

        # Act
        result = await retry_on_number_collision(operation)

        # Assert
        assert result.error.code == "NOT_FOUND"
        assert operation.await_count == 1
