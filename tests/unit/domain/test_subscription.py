"""Unit tests for Subscription domain entity

Tests cover:
- Allowed and rejected status transitions
- Deferred cancellation and reactivation window
- Renewal and trial expiry checks
- Billing period arithmetic
"""

import pytest
from datetime import datetime, timedelta

from src.domain.billing_cycle import BillingCycle, add_months
from src.domain.errors import InvalidTransitionError
from src.domain.subscription import Subscription, SubscriptionStatus, can_transition


def make_subscription(**overrides) -> Subscription:
    values = dict(
        id=1,
        tenant_id="tenant_123",
        plan_id=3,
        status=SubscriptionStatus.ACTIVE,
        billing_cycle=BillingCycle.MONTHLY,
        current_period_start=datetime(2024, 1, 1),
        current_period_end=datetime(2024, 2, 1),
        next_billing_date=datetime(2024, 2, 1),
        execution_quota=1000,
        executions_used=0,
        auto_renew=True,
    )
    values.update(overrides)
    return Subscription(**values)


class TestSubscriptionTransitions:
    """Test the status state machine"""

    @pytest.mark.parametrize(
        "current,target",
        [
            (SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE),
            (SubscriptionStatus.TRIALING, SubscriptionStatus.CANCELED),
            (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE),
            (SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELED),
            (SubscriptionStatus.PAST_DUE, SubscriptionStatus.ACTIVE),
            (SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED),
            (SubscriptionStatus.CANCELED, SubscriptionStatus.ACTIVE),
        ],
    )
    def test_allowed_transitions(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (SubscriptionStatus.CANCELED, SubscriptionStatus.TRIALING),
            (SubscriptionStatus.CANCELED, SubscriptionStatus.PAST_DUE),
            (SubscriptionStatus.PAST_DUE, SubscriptionStatus.TRIALING),
            (SubscriptionStatus.TRIALING, SubscriptionStatus.PAST_DUE),
        ],
    )
    def test_rejected_transitions(self, current, target):
        assert not can_transition(current, target)

    def test_mark_past_due_requires_active(self):
        """
        Given: A trialing subscription
        When: mark_past_due is called
        Then: InvalidTransitionError is raised and status is unchanged
        """
        subscription = make_subscription(status=SubscriptionStatus.TRIALING)

        with pytest.raises(InvalidTransitionError):
            subscription.mark_past_due(datetime(2024, 1, 15))

        assert subscription.status == SubscriptionStatus.TRIALING

    def test_cancel_immediately(self):
        now = datetime(2024, 1, 15)
        subscription = make_subscription()

        subscription.cancel_immediately(now)

        assert subscription.status == SubscriptionStatus.CANCELED
        assert subscription.cancelled_at == now
        assert subscription.auto_renew is False

    def test_cancelled_subscription_cannot_be_cancelled_again(self):
        subscription = make_subscription(status=SubscriptionStatus.CANCELED)

        with pytest.raises(InvalidTransitionError):
            subscription.cancel_immediately(datetime(2024, 1, 15))


class TestDeferredCancellation:
    def test_schedule_cancellation_keeps_subscription_active(self):
        """
        Given: An active subscription
        When: Cancellation is scheduled
        Then: Still active, auto_renew off, cancellation visible to the scheduler
        """
        now = datetime(2024, 1, 15)
        subscription = make_subscription()

        subscription.schedule_cancellation(now)

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.auto_renew is False
        assert subscription.is_cancellation_scheduled()
        assert not subscription.due_for_renewal(datetime(2024, 2, 1))

    def test_reactivate_within_period(self):
        subscription = make_subscription()
        subscription.schedule_cancellation(datetime(2024, 1, 15))

        subscription.reactivate(datetime(2024, 1, 20))

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.auto_renew is True
        assert subscription.cancelled_at is None

    def test_reactivate_cancelled_within_period(self):
        subscription = make_subscription()
        subscription.cancel_immediately(datetime(2024, 1, 15))

        subscription.reactivate(datetime(2024, 1, 20))

        assert subscription.status == SubscriptionStatus.ACTIVE

    def test_reactivate_after_period_end_rejected(self):
        """
        Given: A subscription cancelled during January
        When: Reactivation is attempted after the period ended
        Then: InvalidTransitionError
        """
        subscription = make_subscription()
        subscription.cancel_immediately(datetime(2024, 1, 15))

        with pytest.raises(InvalidTransitionError):
            subscription.reactivate(datetime(2024, 2, 2))

    def test_reactivate_never_cancelled_rejected(self):
        subscription = make_subscription()

        assert not subscription.can_reactivate(datetime(2024, 1, 20))


class TestSchedulingChecks:
    def test_due_for_renewal(self):
        subscription = make_subscription()

        assert not subscription.due_for_renewal(datetime(2024, 1, 31, 23, 59))
        assert subscription.due_for_renewal(datetime(2024, 2, 1))

    def test_trial_expired(self):
        subscription = make_subscription(
            status=SubscriptionStatus.TRIALING,
            trial_ends_at=datetime(2024, 1, 15),
        )

        assert not subscription.trial_expired(datetime(2024, 1, 14))
        assert subscription.trial_expired(datetime(2024, 1, 15))

    def test_start_period_resets_usage(self):
        start = datetime(2024, 1, 31, 10, 0)
        subscription = make_subscription(executions_used=80)

        subscription.start_period(start)

        assert subscription.current_period_start == start
        assert subscription.current_period_end == datetime(2024, 2, 29, 10, 0)
        assert subscription.next_billing_date == subscription.current_period_end
        assert subscription.executions_used == 0

    def test_annual_period(self):
        subscription = make_subscription(billing_cycle=BillingCycle.ANNUAL)

        start, end = subscription.next_period(datetime(2024, 3, 1))

        assert end == datetime(2025, 3, 1)


class TestAddMonths:
    @pytest.mark.parametrize(
        "value,months,expected",
        [
            (datetime(2024, 1, 31), 1, datetime(2024, 2, 29)),
            (datetime(2023, 1, 31), 1, datetime(2023, 2, 28)),
            (datetime(2024, 11, 15), 2, datetime(2025, 1, 15)),
            (datetime(2024, 8, 31), 6, datetime(2025, 2, 28)),
        ],
    )
    def test_clamps_to_month_end(self, value, months, expected):
        assert add_months(value, months) == expected

    def test_semi_annual_months(self):
        assert BillingCycle.SEMI_ANNUAL.months == 6
        assert add_months(datetime(2024, 1, 1), BillingCycle.SEMI_ANNUAL.months) - datetime(2024, 1, 1) == timedelta(days=182)
