"""Usage Event Repository Interface

Defines the contract for the append-only usage ledger.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from src.domain.usage_event import UsageEvent


class UsageEventRepository(ABC):
    """
    Repository interface for UsageEvent persistence

    The ledger is append-only: there is no update or delete operation.
    """

    @abstractmethod
    async def create(self, event: UsageEvent) -> UsageEvent:
        """
        Append a usage event

        Args:
            event: UsageEvent entity to persist

        Returns:
            Created UsageEvent with generated ID

        Raises:
            sqlalchemy.exc.IntegrityError: execution_id already recorded
        """
        pass

    @abstractmethod
    async def get_by_execution_id(self, execution_id: str) -> Optional[UsageEvent]:
        """
        Retrieve event by its idempotency key

        Args:
            execution_id: Unique execution identifier

        Returns:
            UsageEvent if found, None otherwise
        """
        pass

    @abstractmethod
    async def summarize_month(self, tenant_id: str, billing_cycle_month: date) -> Dict[str, Any]:
        """
        Aggregate a tenant's usage for one billing month

        Args:
            tenant_id: Tenant identifier
            billing_cycle_month: First day of the month

        Returns:
            Dict with executions, total_cost, total_charged,
            avg_execution_time_ms and total_tokens
        """
        pass

    @abstractmethod
    async def daily_trend(self, tenant_id: str, since: datetime) -> List[Dict[str, Any]]:
        """
        Per-day executions and charged amount since a point in time

        Args:
            tenant_id: Tenant identifier
            since: Lower bound on occurred_at (inclusive)

        Returns:
            List of {date, executions, charged} ordered by date
        """
        pass

    @abstractmethod
    async def agent_breakdown(self, tenant_id: str, billing_cycle_month: date) -> List[Dict[str, Any]]:
        """
        Per-agent usage for one billing month

        Returns:
            List of {agent_id, executions, cost, charged}, most executions first
        """
        pass
