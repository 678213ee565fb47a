"""GetUsageSummary Use Case

Monthly usage totals and per-agent breakdown for a tenant.
"""

from datetime import date
from typing import Optional
from libs.result import Result, Return, Error
from src.app.repositories.usage_event_repository import UsageEventRepository
from src.app.services.clock import Clock
from .dtos import AgentUsageDTO, UsageSummaryDTO


class GetUsageSummary:
    """
    Use Case: Summarize a tenant's usage for one billing month

    Defaults to the current month when year/month are not given.
    """

    def __init__(self, usage_repo: UsageEventRepository, clock: Clock):
        self.usage_repo = usage_repo
        self.clock = clock

    async def execute(
        self, tenant_id: str, year: Optional[int] = None, month: Optional[int] = None
    ) -> Result[UsageSummaryDTO]:
        try:
            now = self.clock.now()
            if (year is None) != (month is None):
                return Return.err(
                    Error(
                        code="VALIDATION_ERROR",
                        message="year and month must be given together",
                    )
                )
            if year is None:
                year, month = now.year, now.month
            if not 1 <= month <= 12:
                return Return.err(
                    Error(code="VALIDATION_ERROR", message=f"Invalid month {month}")
                )

            billing_cycle_month = date(year, month, 1)
            totals = await self.usage_repo.summarize_month(tenant_id, billing_cycle_month)
            breakdown = await self.usage_repo.agent_breakdown(tenant_id, billing_cycle_month)

            return Return.ok(
                UsageSummaryDTO(
                    tenant_id=tenant_id,
                    billing_cycle_month=billing_cycle_month,
                    agents=[AgentUsageDTO(**row) for row in breakdown],
                    **totals,
                )
            )

        except Exception as e:
            return Return.err(
                Error(
                    code="USAGE_SUMMARY_FAILED",
                    message="Failed to summarize usage",
                    reason=str(e),
                )
            )
