"""MarkPastDue Use Case"""

import logging
from typing import Optional
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.services.notification_service import NotificationService
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain.errors import BillingError
from src.domain.subscription import SubscriptionStatus
from .dtos import SubscriptionTransitionDTO
from .mappers import to_transition_dto

logger = logging.getLogger(__name__)


class MarkPastDue:
    """
    Use Case: Move an active subscription with an overdue unpaid invoice to past_due

    The subscription returns to active when the invoice is paid.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        subscription_repo: SubscriptionRepository,
        clock: Clock,
        notification_service: Optional[NotificationService] = None,
    ):
        self.uow = uow
        self.subscription_repo = subscription_repo
        self.clock = clock
        self.notification_service = notification_service

    async def execute(self, subscription_id: int) -> Result[SubscriptionTransitionDTO]:
        try:
            now = self.clock.now()

            subscription = await self.subscription_repo.get_by_id(subscription_id, for_update=True)
            if not subscription:
                return Return.err(
                    Error(code="NOT_FOUND", message=f"Subscription {subscription_id} not found")
                )
            if not subscription.is_active():
                return Return.ok(to_transition_dto(subscription, "skipped"))

            subscription.mark_past_due(now)
            await self.subscription_repo.save_transition(subscription, SubscriptionStatus.ACTIVE)
            await self.uow.commit()

            logger.warning(f"Subscription {subscription.id} of tenant {subscription.tenant_id} is past due")
            if self.notification_service:
                await self.notification_service.send_billing_alert(
                    "subscription_past_due",
                    f"Subscription {subscription.id} has an overdue invoice",
                    {"tenant_id": subscription.tenant_id, "subscription_id": subscription.id},
                )
            return Return.ok(to_transition_dto(subscription, "past_due"))

        except BillingError as e:
            await self.uow.rollback()
            return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

        except Exception as e:
            await self.uow.rollback()
            return Return.err(
                Error(
                    code="MARK_PAST_DUE_FAILED",
                    message=f"Failed to mark subscription {subscription_id} past due",
                    reason=str(e),
                )
            )
