"""SQLAlchemy Agent Subscription Repository Implementation"""

from datetime import datetime
from typing import List, Optional
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from src.app.repositories.agent_subscription_repository import AgentSubscriptionRepository
from src.domain.agent_subscription import AgentSubscription, AgentSubscriptionStatus


class SqlAlchemyAgentSubscriptionRepository(AgentSubscriptionRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, agent_subscription: AgentSubscription) -> AgentSubscription:
        self.session.add(agent_subscription)
        await self.session.flush()
        await self.session.refresh(agent_subscription)
        return agent_subscription

    async def get_by_id(self, agent_subscription_id: int, for_update: bool = False) -> Optional[AgentSubscription]:
        stmt = select(AgentSubscription).where(AgentSubscription.id == agent_subscription_id)

        if for_update:
            stmt = stmt.with_for_update()

        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active_for_tenant(self, tenant_id: str) -> List[AgentSubscription]:
        stmt = (
            select(AgentSubscription)
            .where(AgentSubscription.tenant_id == tenant_id)
            .where(AgentSubscription.status == AgentSubscriptionStatus.ACTIVE)
            .order_by(AgentSubscription.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_due(self, now: datetime) -> List[AgentSubscription]:
        stmt = (
            select(AgentSubscription)
            .where(AgentSubscription.status == AgentSubscriptionStatus.ACTIVE)
            .where(AgentSubscription.next_billing_date <= now)
            .order_by(AgentSubscription.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def update(self, agent_subscription: AgentSubscription) -> AgentSubscription:
        self.session.add(agent_subscription)
        await self.session.flush()
        await self.session.refresh(agent_subscription)
        return agent_subscription
