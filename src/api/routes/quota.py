"""Quota API Routes

Admission check called before an execution starts.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlmodel.ext.asyncio.session import AsyncSession

from src.app.use_cases.billing.dtos import QuotaCheckDTO
from src.app.use_cases.billing.check_quota import CheckQuota
from src.adapter.repositories.subscription_repository import SqlAlchemySubscriptionRepository
from src.adapter.repositories.subscription_plan_repository import SqlAlchemySubscriptionPlanRepository
from src.depends import get_session
from src.api.error import ClientError

router = APIRouter(prefix="/billing/quota", tags=["Quota"])

DENIED_STATUS = {
    "no_subscription": status.HTTP_402_PAYMENT_REQUIRED,
    "quota_exceeded": status.HTTP_429_TOO_MANY_REQUESTS,
}


@router.get(
    "/{tenant_id}",
    response_model=QuotaCheckDTO,
    status_code=status.HTTP_200_OK,
    responses={
        402: {"description": "Tenant has no trialing or active subscription", "model": QuotaCheckDTO},
        429: {"description": "Execution quota exceeded, plan upgrade required", "model": QuotaCheckDTO},
    }
)
async def check_quota(
    tenant_id: str,
    session: AsyncSession = Depends(get_session),
):
    """
    Decide whether the tenant may start another execution.

    **Returns:**
    - 200: Allowed (`reason: overage_billed` when usage over quota is billed)
    - 402: No subscription
    - 429: Quota exceeded, `action_required: upgrade_plan`
    """
    use_case = CheckQuota(
        SqlAlchemySubscriptionRepository(session),
        SqlAlchemySubscriptionPlanRepository(session),
    )
    result = await use_case.execute(tenant_id)

    if result.is_err():
        raise ClientError(result.error)

    check = result.value
    if not check.allowed:
        return JSONResponse(
            status_code=DENIED_STATUS.get(check.reason, status.HTTP_403_FORBIDDEN),
            content=check.model_dump(mode="json"),
        )
    return check
