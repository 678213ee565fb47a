"""Usage Event Domain Entity

Append-only ledger of billable agent executions.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import Date, Numeric, String
from src.domain.base import BaseModel, BigIntId
from src.domain.billing_cycle import first_of_month


class UsageEvent(BaseModel, table=True):
    """
    Usage Event - One billable agent execution

    Domain Rules:
    - Immutable once written (no update or delete path exists)
    - execution_id is the idempotency key and must be unique
    - billing_cycle_month is the first day of the month of occurred_at
    - cost is what the execution cost us, charged_amount what the tenant pays
    """

    __tablename__ = "usage_events"
    __table_args__ = (
        Index('ix_usage_events_tenant_id', 'tenant_id'),
        Index('ix_usage_events_tenant_month', 'tenant_id', 'billing_cycle_month'),
        Index('ix_usage_events_occurred_at', 'occurred_at'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, primary_key=True, autoincrement=True),
        description="Unique usage event identifier (auto-increment)"
    )

    tenant_id: str = Field(
        description="Tenant ID"
    )

    agent_id: str = Field(
        description="Agent that performed the execution"
    )

    execution_id: str = Field(
        sa_column=Column(String(255), nullable=False, unique=True),
        description="Unique execution identifier (idempotency key)"
    )

    subscription_id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, nullable=True),
        description="Subscription whose counter was incremented, if any"
    )

    tokens_used: int = Field(
        default=0,
        description="LLM tokens consumed by the execution"
    )

    execution_time_ms: Optional[int] = Field(
        default=None,
        description="Wall-clock execution time in milliseconds"
    )

    cost: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(18, 6), nullable=False),
        description="Internal cost of the execution (precision: 18,6)"
    )

    charged_amount: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(18, 6), nullable=False),
        description="Amount charged to the tenant (precision: 18,6)"
    )

    occurred_at: datetime = Field(
        description="When the execution happened"
    )

    billing_cycle_month: date = Field(
        sa_column=Column(Date, nullable=False),
        description="First day of the month the event is billed in"
    )

    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Row creation timestamp"
    )

    @classmethod
    def record(
        cls,
        tenant_id: str,
        agent_id: str,
        execution_id: str,
        occurred_at: datetime,
        cost: Decimal = Decimal("0"),
        charged_amount: Decimal = Decimal("0"),
        tokens_used: int = 0,
        execution_time_ms: Optional[int] = None,
        subscription_id: Optional[int] = None,
    ) -> "UsageEvent":
        return cls(
            tenant_id=tenant_id,
            agent_id=agent_id,
            execution_id=execution_id,
            subscription_id=subscription_id,
            tokens_used=tokens_used,
            execution_time_ms=execution_time_ms,
            cost=cost,
            charged_amount=charged_amount,
            occurred_at=occurred_at,
            billing_cycle_month=first_of_month(occurred_at),
        )
