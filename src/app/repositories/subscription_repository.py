"""Subscription Repository Interface

Defines the contract for subscription persistence operations.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Sequence
from src.domain.subscription import Subscription, SubscriptionStatus


class SubscriptionRepository(ABC):
    """
    Repository interface for Subscription persistence

    Row locks (SELECT FOR UPDATE) serialize transitions of one subscription.
    Counter and period changes are applied with single SQL statements so
    concurrent writers never lose an update.
    """

    @abstractmethod
    async def get_by_id(self, subscription_id: int, for_update: bool = False) -> Optional[Subscription]:
        """
        Retrieve subscription by ID

        Args:
            subscription_id: Subscription ID
            for_update: If True, lock the row with SELECT FOR UPDATE

        Returns:
            Subscription if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_current_for_tenant(
        self,
        tenant_id: str,
        statuses: Sequence[SubscriptionStatus],
        for_update: bool = False,
    ) -> Optional[Subscription]:
        """
        Retrieve the tenant's most recent subscription in one of the given statuses

        Args:
            tenant_id: Tenant identifier
            statuses: Acceptable statuses (e.g., trialing and active)
            for_update: If True, lock the row with SELECT FOR UPDATE

        Returns:
            Subscription if found, None otherwise
        """
        pass

    @abstractmethod
    async def create(self, subscription: Subscription) -> Subscription:
        """
        Create a new subscription

        Args:
            subscription: Subscription entity to persist

        Returns:
            Created Subscription with generated ID
        """
        pass

    @abstractmethod
    async def save_transition(self, subscription: Subscription, expected_status: SubscriptionStatus) -> None:
        """
        Persist a status transition with compare-and-swap on the previous status

        Args:
            subscription: Subscription already moved to its new status
            expected_status: Status the row must still have in the database

        Raises:
            ConflictError: the row's status changed concurrently
        """
        pass

    @abstractmethod
    async def increment_executions_used(self, subscription_id: int) -> None:
        """
        Atomically add one execution to the usage counter

        Args:
            subscription_id: Subscription ID
        """
        pass

    @abstractmethod
    async def reset_executions_used(self, subscription_id: int) -> None:
        """Set the usage counter back to 0 when a new period starts"""
        pass

    @abstractmethod
    async def advance_period(
        self,
        subscription_id: int,
        expected_next_billing_date: datetime,
        period_start: datetime,
        period_end: datetime,
        now: datetime,
    ) -> bool:
        """
        Move to the next billing period and reset executions_used to 0

        The update only applies while next_billing_date still equals
        expected_next_billing_date, so a concurrent renewal of the same
        period is a no-op.

        Returns:
            True if this call advanced the period, False otherwise
        """
        pass

    @abstractmethod
    async def list_trials_expiring(self, now: datetime) -> List[Subscription]:
        """Trialing subscriptions whose trial_ends_at <= now"""
        pass

    @abstractmethod
    async def list_due_for_renewal(self, now: datetime) -> List[Subscription]:
        """Active, auto-renewing subscriptions whose next_billing_date <= now"""
        pass

    @abstractmethod
    async def list_cancellations_due(self, now: datetime) -> List[Subscription]:
        """Active subscriptions with a deferred cancellation whose period has ended"""
        pass

    @abstractmethod
    async def list_with_overdue_invoices(self, now: datetime) -> List[Subscription]:
        """Active subscriptions that have an unpaid (pending or failed) invoice past its due date"""
        pass
