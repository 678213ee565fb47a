import pytest
from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from src.domain.billing_cycle import BillingCycle
from src.domain.subscription import Subscription, SubscriptionStatus
from src.domain.subscription_plan import SubscriptionPlan
from tests.fixtures.clock import FixedClock


@pytest.fixture
def mock_uow():
    """Mock unit of work"""
    uow = MagicMock()
    uow.__aenter__ = AsyncMock(return_value=uow)
    uow.__aexit__ = AsyncMock()
    uow.commit = AsyncMock()
    uow.rollback = AsyncMock()
    return uow


@pytest.fixture
def now():
    return datetime(2024, 2, 1, 0, 0, 0)


@pytest.fixture
def clock(now):
    return FixedClock(now)


@pytest.fixture
def pro_plan():
    """Paid monthly plan: 49.00, 1000 executions, 0.01 per overage execution"""
    return SubscriptionPlan(
        id=3,
        name="Pro",
        tier="pro",
        billing_cycle=BillingCycle.MONTHLY,
        base_price=Decimal("49.00"),
        final_price=Decimal("49.00"),
        included_executions=1000,
        overage_price_per_execution=Decimal("0.01"),
        trial_days=0,
    )


@pytest.fixture
def active_subscription():
    """Active monthly subscription for January 2024"""
    return Subscription(
        id=12,
        tenant_id="tenant_123",
        plan_id=3,
        status=SubscriptionStatus.ACTIVE,
        billing_cycle=BillingCycle.MONTHLY,
        current_period_start=datetime(2024, 1, 1),
        current_period_end=datetime(2024, 2, 1),
        next_billing_date=datetime(2024, 2, 1),
        execution_quota=1000,
        executions_used=250,
        auto_renew=True,
    )
