"""Subscription Domain Entity

Owns a tenant's current plan, billing period and lifecycle status.
Subscriptions are never deleted, only transitioned.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import ForeignKey, text
from src.domain.base import BaseModel, BigIntId
from src.domain.billing_cycle import BillingCycle, add_months
from src.domain.errors import InvalidTransitionError


class SubscriptionStatus(str, Enum):
    """Subscription status types"""
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


# Statuses that occupy the tenant's single "current subscription" slot
OCCUPYING_STATUSES = (SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE)

# Statuses whose usage is still metered against the subscription
METERED_STATUSES = (
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.PAST_DUE,
)

ALLOWED_TRANSITIONS = {
    SubscriptionStatus.TRIALING: {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELED},
    SubscriptionStatus.ACTIVE: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
    },
    SubscriptionStatus.PAST_DUE: {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELED},
    SubscriptionStatus.CANCELED: {SubscriptionStatus.ACTIVE},
}


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class Subscription(BaseModel, table=True):
    """
    Subscription - Tenant plan, billing period and usage counter

    Domain Rules:
    - At most one subscription per tenant in trialing/active
    - Status transitions: trialing -> active -> past_due -> canceled,
      active -> canceled, past_due -> active, canceled -> active (reactivation)
    - executions_used is only changed by an atomic SQL increment and
      is reset to 0 when a new period starts
    """

    __tablename__ = "subscriptions"
    __table_args__ = (
        Index('ix_subscriptions_tenant_id', 'tenant_id'),
        Index('ix_subscriptions_status', 'status'),
        Index('ix_subscriptions_next_billing_date', 'next_billing_date'),
        # Enum columns store member names
        Index(
            'ux_subscriptions_tenant_current',
            'tenant_id',
            unique=True,
            postgresql_where=text("status IN ('TRIALING', 'ACTIVE')"),
            sqlite_where=text("status IN ('TRIALING', 'ACTIVE')"),
        ),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, primary_key=True, autoincrement=True),
        description="Unique subscription identifier (auto-increment)"
    )

    tenant_id: str = Field(
        description="Tenant ID"
    )

    plan_id: int = Field(
        sa_column=Column(BigIntId, ForeignKey("subscription_plans.id"), nullable=False),
        description="Foreign key to SubscriptionPlan"
    )

    status: SubscriptionStatus = Field(
        description="Subscription status (trialing, active, past_due, canceled)"
    )

    billing_cycle: BillingCycle = Field(
        default=BillingCycle.MONTHLY,
        description="Renewal cadence copied from the plan"
    )

    current_period_start: datetime = Field(
        description="Start of the current billing period"
    )

    current_period_end: datetime = Field(
        description="End of the current billing period"
    )

    next_billing_date: datetime = Field(
        description="When the scheduler renews this subscription"
    )

    execution_quota: int = Field(
        default=0,
        description="Executions included in the current period"
    )

    executions_used: int = Field(
        default=0,
        description="Executions recorded in the current period"
    )

    trial_ends_at: Optional[datetime] = Field(default=None)

    cancelled_at: Optional[datetime] = Field(default=None)

    auto_renew: bool = Field(default=True)

    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Subscription creation timestamp"
    )

    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Last update timestamp"
    )

    def is_trialing(self) -> bool:
        return self.status == SubscriptionStatus.TRIALING

    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    def is_cancellation_scheduled(self) -> bool:
        return self.is_active() and not self.auto_renew and self.cancelled_at is not None

    def trial_expired(self, now: datetime) -> bool:
        return self.is_trialing() and self.trial_ends_at is not None and self.trial_ends_at <= now

    def due_for_renewal(self, now: datetime) -> bool:
        return self.is_active() and self.auto_renew and self.next_billing_date <= now

    def next_period(self, start: datetime) -> tuple[datetime, datetime]:
        """Period [start, start + cycle) for this subscription's billing cycle"""
        return start, add_months(start, self.billing_cycle.months)

    def _transition(self, target: SubscriptionStatus, now: datetime) -> None:
        if not can_transition(self.status, target):
            raise InvalidTransitionError(
                f"Subscription {self.id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target
        self.updated_at = now

    def start_period(self, start: datetime) -> None:
        period_start, period_end = self.next_period(start)
        self.current_period_start = period_start
        self.current_period_end = period_end
        self.next_billing_date = period_end
        self.executions_used = 0

    def activate(self, now: datetime) -> None:
        self._transition(SubscriptionStatus.ACTIVE, now)

    def mark_past_due(self, now: datetime) -> None:
        if self.status != SubscriptionStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Only active subscriptions can become past_due (got {self.status.value})"
            )
        self._transition(SubscriptionStatus.PAST_DUE, now)

    def cancel_immediately(self, now: datetime) -> None:
        self._transition(SubscriptionStatus.CANCELED, now)
        self.cancelled_at = now
        self.auto_renew = False

    def schedule_cancellation(self, now: datetime) -> None:
        """Stop renewing; the scheduler cancels at current_period_end"""
        if self.status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING):
            raise InvalidTransitionError(
                f"Cannot schedule cancellation from {self.status.value}"
            )
        self.auto_renew = False
        self.cancelled_at = now
        self.updated_at = now

    def finalize_cancellation(self, now: datetime) -> None:
        self._transition(SubscriptionStatus.CANCELED, now)

    def can_reactivate(self, now: datetime) -> bool:
        if self.cancelled_at is None:
            return False
        if self.status not in (SubscriptionStatus.CANCELED, SubscriptionStatus.ACTIVE):
            return False
        return now < self.current_period_end

    def reactivate(self, now: datetime) -> None:
        if not self.can_reactivate(now):
            raise InvalidTransitionError(
                f"Subscription {self.id} cannot be reactivated: "
                f"period ended {self.current_period_end.isoformat()} or it was never cancelled"
            )
        if self.status == SubscriptionStatus.CANCELED:
            self._transition(SubscriptionStatus.ACTIVE, now)
        self.cancelled_at = None
        self.auto_renew = True
        self.updated_at = now
