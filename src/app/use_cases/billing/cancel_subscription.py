"""CancelSubscription Use Case"""

import logging
from datetime import datetime
from typing import Optional
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain.errors import BillingError, ConflictError, InvoiceNumberTakenError
from src.domain.invoice import Invoice
from src.domain.subscription import Subscription, SubscriptionStatus
from .compose_invoice import InvoiceComposer, retry_on_number_collision
from .dtos import CancelSubscriptionCommandDTO, SubscriptionResponseDTO
from .mappers import to_subscription_dto

logger = logging.getLogger(__name__)


class CancelSubscription:
    """
    Use Case: Cancel a subscription now or at the end of its period

    Business Rules:
    1. immediate=True moves the subscription to canceled right away. An
       active or past-due subscription is billed for its current period
       (no proration) in the same commit; trials are free
    2. Otherwise auto_renew is switched off and the billing cycle
       scheduler finalizes the cancellation at current_period_end
    3. The status write is compare-and-swap on the status read under lock
    4. Invoice number taken concurrently -> rolled back and retried
    """

    def __init__(
        self,
        uow: UnitOfWork,
        subscription_repo: SubscriptionRepository,
        composer: InvoiceComposer,
        clock: Clock,
    ):
        self.uow = uow
        self.subscription_repo = subscription_repo
        self.composer = composer
        self.clock = clock

    async def execute(self, command: CancelSubscriptionCommandDTO) -> Result[SubscriptionResponseDTO]:
        return await retry_on_number_collision(lambda: self._cancel(command))

    async def _cancel(self, command: CancelSubscriptionCommandDTO) -> Result[SubscriptionResponseDTO]:
        try:
            now = self.clock.now()

            subscription = await self.subscription_repo.get_by_id(
                command.subscription_id, for_update=True
            )
            if not subscription:
                return Return.err(
                    Error(
                        code="NOT_FOUND",
                        message=f"Subscription {command.subscription_id} not found",
                    )
                )

            previous_status = subscription.status
            invoice = None
            if command.immediate:
                subscription.cancel_immediately(now)
                invoice = await self._close_period(subscription, previous_status, now)
            else:
                subscription.schedule_cancellation(now)

            await self.subscription_repo.save_transition(subscription, previous_status)
            await self.uow.commit()

            if command.immediate:
                logger.info(
                    f"Subscription {subscription.id} of tenant {subscription.tenant_id} cancelled"
                    + (f", closing invoice {invoice.invoice_number}" if invoice else "")
                )
            else:
                logger.info(
                    f"Subscription {subscription.id} of tenant {subscription.tenant_id} "
                    f"will cancel at {subscription.current_period_end.isoformat()}"
                )
            return Return.ok(to_subscription_dto(subscription))

        except BillingError as e:
            await self.uow.rollback()
            return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

        except Exception as e:
            await self.uow.rollback()
            return Return.err(
                Error(
                    code="CANCEL_SUBSCRIPTION_FAILED",
                    message="Failed to cancel subscription",
                    reason=str(e),
                )
            )

    async def _close_period(
        self, subscription: Subscription, previous_status: SubscriptionStatus, now: datetime
    ) -> Optional[Invoice]:
        if previous_status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE):
            return None
        if now <= subscription.current_period_start:
            return None
        try:
            return await self.composer.close_period(subscription, now, notes="Closing invoice on cancellation")
        except InvoiceNumberTakenError:
            raise
        except ConflictError:
            logger.info(f"Current period of subscription {subscription.id} already invoiced")
            return None
