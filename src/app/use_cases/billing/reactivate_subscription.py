"""ReactivateSubscription Use Case"""

import logging
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain.errors import BillingError
from src.domain.subscription import OCCUPYING_STATUSES, SubscriptionStatus
from .dtos import SubscriptionResponseDTO
from .mappers import to_subscription_dto

logger = logging.getLogger(__name__)


class ReactivateSubscription:
    """
    Use Case: Undo a cancellation before the paid period ends

    Business Rules:
    1. Only subscriptions with cancelled_at set and now < current_period_end
    2. A canceled subscription may not be revived while the tenant holds
       another trialing/active subscription
    3. Period and usage counter are kept as they are
    """

    def __init__(
        self,
        uow: UnitOfWork,
        subscription_repo: SubscriptionRepository,
        clock: Clock,
    ):
        self.uow = uow
        self.subscription_repo = subscription_repo
        self.clock = clock

    async def execute(self, subscription_id: int) -> Result[SubscriptionResponseDTO]:
        try:
            now = self.clock.now()

            subscription = await self.subscription_repo.get_by_id(subscription_id, for_update=True)
            if not subscription:
                return Return.err(
                    Error(code="NOT_FOUND", message=f"Subscription {subscription_id} not found")
                )

            if subscription.status == SubscriptionStatus.CANCELED:
                current = await self.subscription_repo.get_current_for_tenant(
                    subscription.tenant_id, OCCUPYING_STATUSES
                )
                if current and current.id != subscription.id:
                    return Return.err(
                        Error(
                            code="CONFLICT",
                            message=f"Tenant {subscription.tenant_id} already has subscription {current.id}",
                        )
                    )

            previous_status = subscription.status
            subscription.reactivate(now)
            await self.subscription_repo.save_transition(subscription, previous_status)
            await self.uow.commit()

            logger.info(f"Subscription {subscription.id} of tenant {subscription.tenant_id} reactivated")
            return Return.ok(to_subscription_dto(subscription))

        except BillingError as e:
            await self.uow.rollback()
            return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

        except Exception as e:
            await self.uow.rollback()
            return Return.err(
                Error(
                    code="REACTIVATE_SUBSCRIPTION_FAILED",
                    message="Failed to reactivate subscription",
                    reason=str(e),
                )
            )
