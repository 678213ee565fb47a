"""Agent Subscription Repository Interface"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from src.domain.agent_subscription import AgentSubscription


class AgentSubscriptionRepository(ABC):
    """Persistence of per-agent monthly add-ons"""

    @abstractmethod
    async def create(self, agent_subscription: AgentSubscription) -> AgentSubscription:
        pass

    @abstractmethod
    async def get_by_id(self, agent_subscription_id: int, for_update: bool = False) -> Optional[AgentSubscription]:
        pass

    @abstractmethod
    async def list_active_for_tenant(self, tenant_id: str) -> List[AgentSubscription]:
        """
        Active add-ons of a tenant, in creation order

        Used by the invoice composer to add one agent_addon line per add-on.
        """
        pass

    @abstractmethod
    async def list_due(self, now: datetime) -> List[AgentSubscription]:
        """Active add-ons whose next_billing_date <= now"""
        pass

    @abstractmethod
    async def update(self, agent_subscription: AgentSubscription) -> AgentSubscription:
        pass
