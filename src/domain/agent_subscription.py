"""Agent Subscription Domain Entity

Per-agent add-on billed monthly on top of the base plan.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import Numeric, String
from src.domain.base import BaseModel, BigIntId
from src.domain.billing_cycle import add_months


class AgentSubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class AgentSubscription(BaseModel, table=True):
    """
    Agent Subscription - Monthly add-on for one marketplace agent

    Domain Rules:
    - Renews monthly, independent of the base subscription's cycle
    - Only active add-ons contribute an agent_addon invoice line
    - A renewal with auto_renew off cancels the add-on instead
    """

    __tablename__ = "agent_subscriptions"
    __table_args__ = (
        Index('ix_agent_subscriptions_tenant_id', 'tenant_id'),
        Index('ix_agent_subscriptions_next_billing_date', 'next_billing_date'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, primary_key=True, autoincrement=True),
        description="Unique agent subscription identifier (auto-increment)"
    )

    tenant_id: str = Field(description="Tenant ID")

    agent_id: str = Field(description="Subscribed agent")

    agent_name: str = Field(
        sa_column=Column(String(255), nullable=False),
        description="Agent display name used on invoices"
    )

    monthly_price: Decimal = Field(
        sa_column=Column(Numeric(18, 6), nullable=False),
        description="Monthly add-on price (precision: 18,6)"
    )

    status: AgentSubscriptionStatus = Field(default=AgentSubscriptionStatus.ACTIVE)

    current_period_start: datetime
    current_period_end: datetime
    next_billing_date: datetime

    auto_renew: bool = Field(default=True)

    cancelled_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    def is_active(self) -> bool:
        return self.status == AgentSubscriptionStatus.ACTIVE

    def renew(self) -> None:
        """Advance one month, starting where the previous period ended"""
        self.current_period_start = self.current_period_end
        self.current_period_end = add_months(self.current_period_start, 1)
        self.next_billing_date = self.current_period_end

    def cancel(self, now: datetime) -> None:
        self.status = AgentSubscriptionStatus.CANCELLED
        self.cancelled_at = now
        self.auto_renew = False
