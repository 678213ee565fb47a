"""Usage API Routes

Usage recording and usage reporting.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from src.api.schemas.billing_request import RecordUsageRequestSchema
from src.app.use_cases.billing.dtos import (
    DailyTrendDTO,
    RecordUsageCommandDTO,
    UsageEventResponseDTO,
    UsageSummaryDTO,
)
from src.app.use_cases.billing.record_usage import RecordUsage
from src.app.use_cases.billing.get_usage_summary import GetUsageSummary
from src.app.use_cases.billing.get_daily_usage import GetDailyUsage
from src.adapter.repositories.usage_event_repository import SqlAlchemyUsageEventRepository
from src.adapter.repositories.subscription_repository import SqlAlchemySubscriptionRepository
from src.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from src.app.services.clock import Clock
from src.app.services.notification_service import NotificationService
from src.depends import get_clock, get_notification_service, get_session
from src.api.error import ClientError

router = APIRouter(prefix="/billing/usage", tags=["Usage"])


@router.post(
    "",
    response_model=UsageEventResponseDTO,
    status_code=status.HTTP_200_OK,
    responses={
        400: {
            "description": "Validation error",
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": "VALIDATION_ERROR",
                            "message": "execution_id: String should have at least 1 character"
                        }
                    }
                }
            }
        }
    }
)
async def record_usage(
    request: RecordUsageRequestSchema,
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
    notification_service: NotificationService = Depends(get_notification_service),
):
    """
    Record one billable execution.

    Idempotent per `execution_id`: a replay returns the stored event with
    `duplicate: true` and does not count the execution again.

    **Returns:**
    - 200: Event recorded (or replayed)
    - 400: Invalid request parameters
    """
    uow = SqlAlchemyUnitOfWork(session)
    usage_repo = SqlAlchemyUsageEventRepository(session)
    subscription_repo = SqlAlchemySubscriptionRepository(session)

    command = RecordUsageCommandDTO(**request.model_dump())

    use_case = RecordUsage(uow, usage_repo, subscription_repo, clock, notification_service)
    result = await use_case.execute(command)

    if result.is_err():
        raise ClientError(result.error)

    return result.value


@router.get(
    "/{tenant_id}/summary",
    response_model=UsageSummaryDTO,
    status_code=status.HTTP_200_OK,
)
async def get_usage_summary(
    tenant_id: str,
    year: Optional[int] = Query(default=None, ge=2000, le=9999),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    """
    Monthly usage totals and per-agent breakdown.

    **Query parameters:**
    - `year`, `month` (optional, together): billing month, current month by default
    """
    use_case = GetUsageSummary(SqlAlchemyUsageEventRepository(session), clock)
    result = await use_case.execute(tenant_id, year=year, month=month)

    if result.is_err():
        raise ClientError(result.error)

    return result.value


@router.get(
    "/{tenant_id}/daily",
    response_model=DailyTrendDTO,
    status_code=status.HTTP_200_OK,
)
async def get_daily_usage(
    tenant_id: str,
    days: int = Query(default=30, ge=1, le=366),
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    """Executions and charges per day over the last `days` days."""
    use_case = GetDailyUsage(SqlAlchemyUsageEventRepository(session), clock)
    result = await use_case.execute(tenant_id, days=days)

    if result.is_err():
        raise ClientError(result.error)

    return result.value
