"""SQLAlchemy implementation of UsageEventRepository

Provides the append-only usage ledger and its aggregate reads.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlmodel import select, func
from sqlmodel.ext.asyncio.session import AsyncSession
from src.app.repositories.usage_event_repository import UsageEventRepository
from src.domain.usage_event import UsageEvent


def _decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


class SqlAlchemyUsageEventRepository(UsageEventRepository):
    """SQLAlchemy implementation of UsageEventRepository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, event: UsageEvent) -> UsageEvent:
        self.session.add(event)
        await self.session.flush()
        await self.session.refresh(event)
        return event

    async def get_by_execution_id(self, execution_id: str) -> Optional[UsageEvent]:
        stmt = select(UsageEvent).where(UsageEvent.execution_id == execution_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def summarize_month(self, tenant_id: str, billing_cycle_month: date) -> Dict[str, Any]:
        stmt = (
            select(
                func.count(UsageEvent.id),
                func.sum(UsageEvent.cost),
                func.sum(UsageEvent.charged_amount),
                func.avg(UsageEvent.execution_time_ms),
                func.sum(UsageEvent.tokens_used),
            )
            .where(UsageEvent.tenant_id == tenant_id)
            .where(UsageEvent.billing_cycle_month == billing_cycle_month)
        )
        result = await self.session.execute(stmt)
        executions, total_cost, total_charged, avg_time, total_tokens = result.one()
        return {
            "executions": executions or 0,
            "total_cost": _decimal(total_cost),
            "total_charged": _decimal(total_charged),
            "avg_execution_time_ms": float(avg_time) if avg_time is not None else None,
            "total_tokens": int(total_tokens or 0),
        }

    async def daily_trend(self, tenant_id: str, since: datetime) -> List[Dict[str, Any]]:
        day = func.date(UsageEvent.occurred_at).label("day")
        stmt = (
            select(
                day,
                func.count(UsageEvent.id),
                func.sum(UsageEvent.charged_amount),
            )
            .where(UsageEvent.tenant_id == tenant_id)
            .where(UsageEvent.occurred_at >= since)
            .group_by(day)
            .order_by(day)
        )
        result = await self.session.execute(stmt)
        return [
            {"date": str(row[0]), "executions": row[1], "charged": _decimal(row[2])}
            for row in result.all()
        ]

    async def agent_breakdown(self, tenant_id: str, billing_cycle_month: date) -> List[Dict[str, Any]]:
        executions = func.count(UsageEvent.id).label("executions")
        stmt = (
            select(
                UsageEvent.agent_id,
                executions,
                func.sum(UsageEvent.cost),
                func.sum(UsageEvent.charged_amount),
            )
            .where(UsageEvent.tenant_id == tenant_id)
            .where(UsageEvent.billing_cycle_month == billing_cycle_month)
            .group_by(UsageEvent.agent_id)
            .order_by(executions.desc(), UsageEvent.agent_id)
        )
        result = await self.session.execute(stmt)
        return [
            {
                "agent_id": row[0],
                "executions": row[1],
                "cost": _decimal(row[2]),
                "charged": _decimal(row[3]),
            }
            for row in result.all()
        ]
