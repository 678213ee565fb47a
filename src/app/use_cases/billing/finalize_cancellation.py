"""FinalizeCancellation Use Case"""

import logging
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain.errors import BillingError, ConflictError, InvoiceNumberTakenError
from src.domain.subscription import SubscriptionStatus
from .compose_invoice import InvoiceComposer, retry_on_number_collision
from .dtos import SubscriptionTransitionDTO
from .mappers import to_transition_dto

logger = logging.getLogger(__name__)


class FinalizeCancellation:
    """
    Use Case: Cancel a deferred cancellation once its period has ended

    The last period is still billed: base plan (unless paid in advance),
    add-ons and overage are invoiced in the same commit as the cancellation.
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

    async def execute(self, subscription_id: int) -> Result[SubscriptionTransitionDTO]:
        return await retry_on_number_collision(lambda: self._finalize(subscription_id))

    async def _finalize(self, subscription_id: int) -> Result[SubscriptionTransitionDTO]:
        try:
            now = self.clock.now()

            # Step 1: Lock and re-check
            subscription = await self.subscription_repo.get_by_id(subscription_id, for_update=True)
            if not subscription:
                return Return.err(
                    Error(code="NOT_FOUND", message=f"Subscription {subscription_id} not found")
                )
            if not subscription.is_cancellation_scheduled() or subscription.current_period_end > now:
                return Return.ok(to_transition_dto(subscription, "skipped"))

            # Step 2: Closing invoice for the last period
            try:
                invoice = await self.composer.close_period(subscription, now)
            except InvoiceNumberTakenError:
                raise
            except ConflictError:
                invoice = None
                logger.info(f"Last period of subscription {subscription.id} already invoiced")

            # Step 3: Cancel
            subscription.finalize_cancellation(now)
            await self.subscription_repo.save_transition(subscription, SubscriptionStatus.ACTIVE)
            await self.uow.commit()

            logger.info(
                f"Subscription {subscription.id} of tenant {subscription.tenant_id} cancelled at period end"
                + (f", closing invoice {invoice.invoice_number}" if invoice else "")
            )
            return Return.ok(to_transition_dto(subscription, "cancelled", invoice))

        except BillingError as e:
            await self.uow.rollback()
            return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

        except Exception as e:
            await self.uow.rollback()
            return Return.err(
                Error(
                    code="FINALIZE_CANCELLATION_FAILED",
                    message=f"Failed to finalize cancellation of subscription {subscription_id}",
                    reason=str(e),
                )
            )
