"""Subscription Plan Repository Interface"""

from abc import ABC, abstractmethod
from typing import Optional
from src.domain.subscription_plan import SubscriptionPlan


class SubscriptionPlanRepository(ABC):
    """Read access to plan reference data"""

    @abstractmethod
    async def get_by_id(self, plan_id: int) -> Optional[SubscriptionPlan]:
        pass

    @abstractmethod
    async def create(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        pass
