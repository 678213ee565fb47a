"""RenewSubscription Use Case

Scheduler-driven active -> active transition at the end of a period.
"""

import logging
from typing import Optional
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.services.notification_service import NotificationService
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain.errors import BillingError, ConflictError, InvariantViolation, InvoiceNumberTakenError
from .compose_invoice import InvoiceComposer, retry_on_number_collision
from .dtos import SubscriptionTransitionDTO
from .mappers import to_transition_dto

logger = logging.getLogger(__name__)


class RenewSubscription:
    """
    Use Case: Bill the period that just ended and open the next one

    Business Rules:
    1. Only active, auto-renewing subscriptions with next_billing_date <= now
    2. Invoice for [current_period_start, current_period_end) with base plan,
       agent add-ons and overage from executions_used. When the base plan
       was billed in advance at trial conversion, only add-ons and overage
    3. An invoice that already exists for the period is not composed again
    4. Period advance is compare-and-swap on the old next_billing_date and
       resets executions_used in the same statement
    5. Invoice and period advance commit together
    6. Invoice number taken concurrently -> rolled back and retried

    Flow:
    1. Lock subscription and re-check it is due
    2. Compose invoice (ConflictError -> already invoiced)
    3. Advance period (CAS miss -> already processed, roll back)
    4. Commit
    """

    def __init__(
        self,
        uow: UnitOfWork,
        subscription_repo: SubscriptionRepository,
        composer: InvoiceComposer,
        clock: Clock,
        notification_service: Optional[NotificationService] = None,
    ):
        self.uow = uow
        self.subscription_repo = subscription_repo
        self.composer = composer
        self.clock = clock
        self.notification_service = notification_service

    async def execute(self, subscription_id: int) -> Result[SubscriptionTransitionDTO]:
        return await retry_on_number_collision(lambda: self._renew(subscription_id))

    async def _renew(self, subscription_id: int) -> Result[SubscriptionTransitionDTO]:
        try:
            now = self.clock.now()

            # Step 1: Lock and re-check
            subscription = await self.subscription_repo.get_by_id(subscription_id, for_update=True)
            if not subscription:
                return Return.err(
                    Error(code="NOT_FOUND", message=f"Subscription {subscription_id} not found")
                )
            if not subscription.due_for_renewal(now):
                return Return.ok(to_transition_dto(subscription, "skipped"))

            period_start = subscription.current_period_start
            period_end = subscription.current_period_end
            expected_next_billing_date = subscription.next_billing_date

            # Step 2: Invoice for the ended period
            action = "renewed"
            try:
                invoice = await self.composer.close_period(subscription, now)
            except InvoiceNumberTakenError:
                raise
            except ConflictError:
                invoice = None
                action = "already_processed"
                logger.info(
                    f"Period {period_start.isoformat()} - {period_end.isoformat()} of subscription "
                    f"{subscription.id} already invoiced"
                )

            # Step 3: Advance period
            next_start, next_end = subscription.next_period(period_end)
            advanced = await self.subscription_repo.advance_period(
                subscription.id, expected_next_billing_date, next_start, next_end, now
            )
            if not advanced:
                await self.uow.rollback()
                logger.info(f"Subscription {subscription.id} was renewed concurrently")
                return Return.ok(to_transition_dto(subscription, "already_processed"))

            # Step 4: Commit
            await self.uow.commit()

            subscription.current_period_start = next_start
            subscription.current_period_end = next_end
            subscription.next_billing_date = next_end
            subscription.executions_used = 0
            subscription.updated_at = now

            logger.info(
                f"Subscription {subscription.id} renewed until {next_end.isoformat()}"
                + (f", invoice {invoice.invoice_number}" if invoice and action == "renewed" else "")
            )
            return Return.ok(
                to_transition_dto(subscription, action, invoice if action == "renewed" else None)
            )

        except InvariantViolation as e:
            await self.uow.rollback()
            logger.error(f"Invariant violated renewing subscription {subscription_id}: {e.message}")
            if self.notification_service:
                await self.notification_service.send_billing_alert(
                    "invariant_violation", e.message, {"subscription_id": subscription_id}
                )
            return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

        except BillingError as e:
            await self.uow.rollback()
            return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

        except Exception as e:
            await self.uow.rollback()
            return Return.err(
                Error(
                    code="RENEW_SUBSCRIPTION_FAILED",
                    message=f"Failed to renew subscription {subscription_id}",
                    reason=str(e),
                )
            )
