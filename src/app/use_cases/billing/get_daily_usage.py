"""GetDailyUsage Use Case"""

from datetime import datetime, timedelta
from libs.result import Result, Return, Error
from src.app.repositories.usage_event_repository import UsageEventRepository
from src.app.services.clock import Clock
from .dtos import DailyTrendDTO, DailyUsageDTO

MAX_DAYS = 366


class GetDailyUsage:
    """Use Case: Per-day executions and charges over the last N days"""

    def __init__(self, usage_repo: UsageEventRepository, clock: Clock):
        self.usage_repo = usage_repo
        self.clock = clock

    async def execute(self, tenant_id: str, days: int = 30) -> Result[DailyTrendDTO]:
        if days < 1 or days > MAX_DAYS:
            return Return.err(
                Error(code="VALIDATION_ERROR", message=f"days must be between 1 and {MAX_DAYS}")
            )
        try:
            today = self.clock.now().date()
            since = datetime.combine(today - timedelta(days=days - 1), datetime.min.time())
            rows = await self.usage_repo.daily_trend(tenant_id, since)
            return Return.ok(
                DailyTrendDTO(
                    tenant_id=tenant_id,
                    days=days,
                    points=[DailyUsageDTO(**row) for row in rows],
                )
            )
        except Exception as e:
            return Return.err(
                Error(code="USAGE_TREND_FAILED", message="Failed to load daily usage", reason=str(e))
            )
