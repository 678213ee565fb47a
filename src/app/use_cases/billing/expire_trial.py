"""ExpireTrial Use Case

Scheduler-driven trialing -> active (or canceled) transition.
"""

import logging
from datetime import timedelta
from typing import Optional
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.services.notification_service import NotificationService
from src.app.repositories.subscription_plan_repository import SubscriptionPlanRepository
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain.errors import BillingError, InvariantViolation
from src.domain.invoice import InvoiceKind
from src.domain.subscription import SubscriptionStatus
from .compose_invoice import InvoiceComposer, retry_on_number_collision
from .dtos import SubscriptionTransitionDTO
from .mappers import to_transition_dto

logger = logging.getLogger(__name__)


class ExpireTrial:
    """
    Use Case: End an expired trial

    Business Rules:
    1. Only trialing subscriptions with trial_ends_at <= now
    2. Cancellation scheduled during the trial -> canceled, nothing billed
    3. Free plan -> active, no invoice
    4. Paid plan -> new period [now, now + cycle], usage reset, first
       invoice in advance (base plan only, due now + due_days), active.
       Add-ons and overage of that period are billed when it closes.
    5. Invoice and status change commit together or not at all
    6. Invoice number taken concurrently -> rolled back and retried
    """

    def __init__(
        self,
        uow: UnitOfWork,
        subscription_repo: SubscriptionRepository,
        plan_repo: SubscriptionPlanRepository,
        composer: InvoiceComposer,
        clock: Clock,
        notification_service: Optional[NotificationService] = None,
    ):
        self.uow = uow
        self.subscription_repo = subscription_repo
        self.plan_repo = plan_repo
        self.composer = composer
        self.clock = clock
        self.notification_service = notification_service

    async def execute(self, subscription_id: int) -> Result[SubscriptionTransitionDTO]:
        return await retry_on_number_collision(lambda: self._expire(subscription_id))

    async def _expire(self, subscription_id: int) -> Result[SubscriptionTransitionDTO]:
        try:
            now = self.clock.now()

            # Step 1: Lock and re-check
            subscription = await self.subscription_repo.get_by_id(subscription_id, for_update=True)
            if not subscription:
                return Return.err(
                    Error(code="NOT_FOUND", message=f"Subscription {subscription_id} not found")
                )
            if not subscription.trial_expired(now):
                return Return.ok(to_transition_dto(subscription, "skipped"))

            # Step 2: Cancelled during trial
            if not subscription.auto_renew:
                subscription.finalize_cancellation(now)
                await self.subscription_repo.save_transition(subscription, SubscriptionStatus.TRIALING)
                await self.uow.commit()
                logger.info(f"Trial of subscription {subscription.id} ended with scheduled cancellation")
                return Return.ok(to_transition_dto(subscription, "cancelled"))

            plan = await self.plan_repo.get_by_id(subscription.plan_id)
            if not plan:
                return Return.err(
                    Error(code="NOT_FOUND", message=f"Plan {subscription.plan_id} not found")
                )

            # Step 3: Free plan
            if plan.is_free():
                subscription.activate(now)
                await self.subscription_repo.save_transition(subscription, SubscriptionStatus.TRIALING)
                await self.uow.commit()
                logger.info(f"Subscription {subscription.id} activated on free plan {plan.name}")
                return Return.ok(to_transition_dto(subscription, "activated"))

            # Step 4: Paid plan, new period and first invoice
            subscription.start_period(now)
            invoice = await self.composer.compose(
                tenant_id=subscription.tenant_id,
                period_start=subscription.current_period_start,
                period_end=subscription.current_period_end,
                subscription=subscription,
                now=now,
                due_date=now + timedelta(days=self.composer.due_days),
                notes=f"First invoice after trial of {plan.name}",
                kind=InvoiceKind.ADVANCE,
            )

            # Step 5: Activate
            subscription.activate(now)
            await self.subscription_repo.save_transition(subscription, SubscriptionStatus.TRIALING)
            await self.subscription_repo.reset_executions_used(subscription.id)
            await self.uow.commit()

            logger.info(
                f"Subscription {subscription.id} activated after trial, "
                f"invoice {invoice.invoice_number} for {invoice.total_amount} {invoice.currency}"
            )
            return Return.ok(to_transition_dto(subscription, "activated", invoice))

        except InvariantViolation as e:
            await self.uow.rollback()
            logger.error(f"Invariant violated expiring trial of subscription {subscription_id}: {e.message}")
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
                    code="EXPIRE_TRIAL_FAILED",
                    message=f"Failed to expire trial of subscription {subscription_id}",
                    reason=str(e),
                )
            )
