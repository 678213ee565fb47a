"""Subscription Plan Domain Entity

Immutable pricing reference data. Plans are versioned by creating new rows
(parent_plan_id links a version to its predecessor) and are never edited in
place once an active subscription references them, so historical invoices
stay reproducible.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import ForeignKey, Numeric, String
from src.domain.base import BaseModel, BigIntId
from src.domain.billing_cycle import BillingCycle

# Agent limit sentinel meaning "no limit"
UNLIMITED_AGENTS = 999


class AgentTier(str, Enum):
    BASIC = "basic"
    PROFESSIONAL = "professional"
    SPECIALIZED = "specialized"
    ENTERPRISE = "enterprise"


class SubscriptionPlan(BaseModel, table=True):
    """
    Subscription Plan - Pricing, quota and agent limits

    Domain Rules:
    - final_price is the full price of one billing cycle
    - overage_price_per_execution = None forbids billable overage
    - trial_days > 0 starts new subscriptions in trialing
    - A plan whose final_price is 0 is free (no invoices)
    """

    __tablename__ = "subscription_plans"
    __table_args__ = (
        Index('ix_subscription_plans_parent_plan_id', 'parent_plan_id'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, primary_key=True, autoincrement=True),
        description="Unique plan identifier (auto-increment)"
    )

    name: str = Field(
        sa_column=Column(String(100), nullable=False),
        description="Display name of the plan"
    )

    tier: str = Field(
        default="standard",
        sa_column=Column(String(50), nullable=False),
        description="Marketing tier (free, starter, pro, enterprise...)"
    )

    billing_cycle: BillingCycle = Field(
        default=BillingCycle.MONTHLY,
        description="Renewal cadence"
    )

    base_price: Decimal = Field(
        sa_column=Column(Numeric(18, 6), nullable=False),
        description="List price for one cycle before discounts"
    )

    final_price: Decimal = Field(
        sa_column=Column(Numeric(18, 6), nullable=False),
        description="Charged price for one full cycle"
    )

    included_executions: int = Field(
        default=0,
        description="Executions included per billing period"
    )

    overage_price_per_execution: Optional[Decimal] = Field(
        default=None,
        sa_column=Column(Numeric(18, 6), nullable=True),
        description="Price per execution beyond quota (None = overage forbidden)"
    )

    trial_days: int = Field(default=0)

    max_agent_slots: Optional[int] = Field(default=None)
    max_basic_agents: Optional[int] = Field(default=None)
    max_professional_agents: Optional[int] = Field(default=None)
    max_specialized_agents: Optional[int] = Field(default=None)
    max_enterprise_agents: Optional[int] = Field(default=None)

    plan_version: int = Field(default=1)

    parent_plan_id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, ForeignKey("subscription_plans.id"), nullable=True),
        description="Previous version of this plan"
    )

    is_active: bool = Field(default=True)

    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Plan creation timestamp"
    )

    def is_free(self) -> bool:
        return Decimal(self.final_price) == 0

    def has_overage_pricing(self) -> bool:
        return self.overage_price_per_execution is not None

    def monthly_equivalent_price(self) -> Decimal:
        """Display price per month; annual/semi-annual plans are still billed per cycle"""
        months = self.billing_cycle.months
        return (Decimal(self.final_price) / months).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )

    @property
    def discount_amount(self) -> Decimal:
        return Decimal(self.base_price) - Decimal(self.final_price)

    def agent_limit(self, tier: AgentTier) -> Optional[int]:
        return {
            AgentTier.BASIC: self.max_basic_agents,
            AgentTier.PROFESSIONAL: self.max_professional_agents,
            AgentTier.SPECIALIZED: self.max_specialized_agents,
            AgentTier.ENTERPRISE: self.max_enterprise_agents,
        }[tier]

    def allows_agent_tier(self, tier: AgentTier, current_count: int = 0) -> bool:
        limit = self.agent_limit(tier)
        if limit is None or limit == UNLIMITED_AGENTS:
            return True
        return current_count < limit

    def remaining_agent_slots(self, current_counts: dict) -> dict:
        remaining = {}
        for tier in AgentTier:
            limit = self.agent_limit(tier)
            if limit is None or limit == UNLIMITED_AGENTS:
                remaining[tier.value] = "unlimited"
            else:
                remaining[tier.value] = max(0, limit - current_counts.get(tier.value, 0))
        return remaining
