"""SQLAlchemy Subscription Repository Implementation

Implements subscription persistence using SQLAlchemy async session.
"""

from datetime import datetime
from typing import Optional, List, Sequence
from sqlalchemy import update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain.errors import ConflictError
from src.domain.invoice import PAYABLE_STATUSES, Invoice
from src.domain.subscription import Subscription, SubscriptionStatus


class SqlAlchemySubscriptionRepository(SubscriptionRepository):
    """
    SQLAlchemy implementation of SubscriptionRepository

    Features:
    - Pessimistic locking via SELECT FOR UPDATE
    - Compare-and-swap status and period updates
    - Atomic executions_used increment
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, subscription_id: int, for_update: bool = False) -> Optional[Subscription]:
        statement = select(Subscription).where(Subscription.id == subscription_id)

        if for_update:
            statement = statement.with_for_update()

        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def get_current_for_tenant(
        self,
        tenant_id: str,
        statuses: Sequence[SubscriptionStatus],
        for_update: bool = False,
    ) -> Optional[Subscription]:
        statement = (
            select(Subscription)
            .where(Subscription.tenant_id == tenant_id)
            .where(Subscription.status.in_(list(statuses)))
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .limit(1)
        )

        if for_update:
            statement = statement.with_for_update()

        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def create(self, subscription: Subscription) -> Subscription:
        self.session.add(subscription)
        await self.session.flush()
        await self.session.refresh(subscription)
        return subscription

    async def save_transition(self, subscription: Subscription, expected_status: SubscriptionStatus) -> None:
        """
        Write status-related columns only if the stored status is still expected_status

        executions_used is deliberately left out so concurrent increments
        are never overwritten by a stale in-memory value.
        """
        statement = (
            update(Subscription)
            .where(Subscription.id == subscription.id)
            .where(Subscription.status == expected_status)
            .values(
                status=subscription.status,
                auto_renew=subscription.auto_renew,
                cancelled_at=subscription.cancelled_at,
                trial_ends_at=subscription.trial_ends_at,
                current_period_start=subscription.current_period_start,
                current_period_end=subscription.current_period_end,
                next_billing_date=subscription.next_billing_date,
                updated_at=subscription.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(statement)
        if result.rowcount != 1:
            raise ConflictError(
                f"Subscription {subscription.id} changed concurrently",
                reason=f"expected status {expected_status.value}",
            )

    async def increment_executions_used(self, subscription_id: int) -> None:
        statement = (
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .values(executions_used=Subscription.executions_used + 1)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(statement)

    async def reset_executions_used(self, subscription_id: int) -> None:
        statement = (
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .values(executions_used=0)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(statement)

    async def advance_period(
        self,
        subscription_id: int,
        expected_next_billing_date: datetime,
        period_start: datetime,
        period_end: datetime,
        now: datetime,
    ) -> bool:
        statement = (
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .where(Subscription.next_billing_date == expected_next_billing_date)
            .values(
                current_period_start=period_start,
                current_period_end=period_end,
                next_billing_date=period_end,
                executions_used=0,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(statement)
        return result.rowcount == 1

    async def list_trials_expiring(self, now: datetime) -> List[Subscription]:
        statement = (
            select(Subscription)
            .where(Subscription.status == SubscriptionStatus.TRIALING)
            .where(Subscription.trial_ends_at.is_not(None))
            .where(Subscription.trial_ends_at <= now)
            .order_by(Subscription.id)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def list_due_for_renewal(self, now: datetime) -> List[Subscription]:
        statement = (
            select(Subscription)
            .where(Subscription.status == SubscriptionStatus.ACTIVE)
            .where(Subscription.auto_renew.is_(True))
            .where(Subscription.next_billing_date <= now)
            .order_by(Subscription.id)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def list_cancellations_due(self, now: datetime) -> List[Subscription]:
        statement = (
            select(Subscription)
            .where(Subscription.status == SubscriptionStatus.ACTIVE)
            .where(Subscription.auto_renew.is_(False))
            .where(Subscription.cancelled_at.is_not(None))
            .where(Subscription.current_period_end <= now)
            .order_by(Subscription.id)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def list_with_overdue_invoices(self, now: datetime) -> List[Subscription]:
        statement = (
            select(Subscription)
            .join(Invoice, Invoice.subscription_id == Subscription.id)
            .where(Subscription.status == SubscriptionStatus.ACTIVE)
            .where(Invoice.status.in_(PAYABLE_STATUSES))
            .where(Invoice.due_date < now)
            .distinct()
            .order_by(Subscription.id)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())
