"""Subscription API Routes"""

from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession

from config import ApplicationConfig

from src.api.schemas.billing_request import (
    CancelSubscriptionRequestSchema,
    CreateSubscriptionRequestSchema,
)
from src.app.use_cases.billing.dtos import (
    CancelSubscriptionCommandDTO,
    CreateSubscriptionCommandDTO,
    SubscriptionResponseDTO,
)
from src.app.use_cases.billing.create_subscription import CreateSubscription
from src.app.use_cases.billing.cancel_subscription import CancelSubscription
from src.app.use_cases.billing.compose_invoice import InvoiceComposer
from src.app.use_cases.billing.reactivate_subscription import ReactivateSubscription
from src.adapter.repositories.agent_subscription_repository import SqlAlchemyAgentSubscriptionRepository
from src.adapter.repositories.invoice_line_item_repository import SqlAlchemyInvoiceLineItemRepository
from src.adapter.repositories.invoice_repository import SqlAlchemyInvoiceRepository
from src.adapter.repositories.subscription_plan_repository import SqlAlchemySubscriptionPlanRepository
from src.adapter.repositories.subscription_repository import SqlAlchemySubscriptionRepository
from src.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from src.app.services.clock import Clock
from src.app.services.tenant_directory import TenantDirectory
from src.depends import get_clock, get_session, get_tenant_directory
from src.api.error import ClientError

router = APIRouter(prefix="/billing/subscriptions", tags=["Subscriptions"])

CONFLICT_EXAMPLE = {
    "description": "Tenant already has a current subscription",
    "content": {
        "application/json": {
            "example": {
                "error": {
                    "code": "CONFLICT",
                    "message": "Tenant tenant_xyz789 already has subscription 12"
                }
            }
        }
    }
}


@router.post(
    "",
    response_model=SubscriptionResponseDTO,
    status_code=status.HTTP_201_CREATED,
    responses={409: CONFLICT_EXAMPLE},
)
async def create_subscription(
    request: CreateSubscriptionRequestSchema,
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    """
    Subscribe a tenant to a plan.

    Plans with trial days start `trialing`, others start `active`.

    **Returns:**
    - 201: Subscription created
    - 400: Plan missing or inactive
    - 409: Tenant already has a trialing or active subscription
    """
    use_case = CreateSubscription(
        SqlAlchemyUnitOfWork(session),
        SqlAlchemySubscriptionPlanRepository(session),
        SqlAlchemySubscriptionRepository(session),
        clock,
    )
    result = await use_case.execute(
        CreateSubscriptionCommandDTO(tenant_id=request.tenant_id, plan_id=request.plan_id)
    )

    if result.is_err():
        raise ClientError(result.error)

    return result.value


@router.post(
    "/{subscription_id}/cancel",
    response_model=SubscriptionResponseDTO,
    status_code=status.HTTP_200_OK,
)
async def cancel_subscription(
    subscription_id: int,
    request: CancelSubscriptionRequestSchema,
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
    tenant_directory: TenantDirectory = Depends(get_tenant_directory),
):
    """
    Cancel a subscription.

    With `immediate: false` (default) the subscription stays active until the
    end of its current period and is then cancelled and billed by the billing
    scheduler. With `immediate: true` the current period is billed right away.
    """
    composer = InvoiceComposer(
        plan_repo=SqlAlchemySubscriptionPlanRepository(session),
        invoice_repo=SqlAlchemyInvoiceRepository(session),
        line_item_repo=SqlAlchemyInvoiceLineItemRepository(session),
        agent_subscription_repo=SqlAlchemyAgentSubscriptionRepository(session),
        tenant_directory=tenant_directory,
        currency=ApplicationConfig.INVOICE_CURRENCY,
        due_days=ApplicationConfig.INVOICE_DUE_DAYS,
    )
    use_case = CancelSubscription(
        SqlAlchemyUnitOfWork(session),
        SqlAlchemySubscriptionRepository(session),
        composer,
        clock,
    )
    result = await use_case.execute(
        CancelSubscriptionCommandDTO(subscription_id=subscription_id, immediate=request.immediate)
    )

    if result.is_err():
        raise ClientError(result.error)

    return result.value


@router.post(
    "/{subscription_id}/reactivate",
    response_model=SubscriptionResponseDTO,
    status_code=status.HTTP_200_OK,
    responses={409: CONFLICT_EXAMPLE},
)
async def reactivate_subscription(
    subscription_id: int,
    session: AsyncSession = Depends(get_session),
    clock: Clock = Depends(get_clock),
):
    """Undo a cancellation while the paid period is still running."""
    use_case = ReactivateSubscription(
        SqlAlchemyUnitOfWork(session),
        SqlAlchemySubscriptionRepository(session),
        clock,
    )
    result = await use_case.execute(subscription_id)

    if result.is_err():
        raise ClientError(result.error)

    return result.value
