"""CreateSubscription Use Case"""

import logging
from datetime import timedelta
from sqlalchemy.exc import IntegrityError
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.repositories.subscription_plan_repository import SubscriptionPlanRepository
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain.errors import BillingError
from src.domain.subscription import OCCUPYING_STATUSES, Subscription, SubscriptionStatus
from .dtos import CreateSubscriptionCommandDTO, SubscriptionResponseDTO
from .mappers import to_subscription_dto

logger = logging.getLogger(__name__)


class CreateSubscription:
    """
    Use Case: Subscribe a tenant to a plan

    Business Rules:
    1. Plan must exist and be active
    2. A tenant holds at most one trialing/active subscription
    3. Plans with trial_days > 0 start trialing, others start active
    4. The first period is [now, now + billing cycle)
    """

    def __init__(
        self,
        uow: UnitOfWork,
        plan_repo: SubscriptionPlanRepository,
        subscription_repo: SubscriptionRepository,
        clock: Clock,
    ):
        self.uow = uow
        self.plan_repo = plan_repo
        self.subscription_repo = subscription_repo
        self.clock = clock

    async def execute(self, command: CreateSubscriptionCommandDTO) -> Result[SubscriptionResponseDTO]:
        try:
            now = self.clock.now()

            # Step 1: Validate plan
            plan = await self.plan_repo.get_by_id(command.plan_id)
            if not plan or not plan.is_active:
                return Return.err(
                    Error(
                        code="VALIDATION_ERROR",
                        message=f"Plan {command.plan_id} does not exist or is not active",
                    )
                )

            # Step 2: One current subscription per tenant
            current = await self.subscription_repo.get_current_for_tenant(
                command.tenant_id, OCCUPYING_STATUSES
            )
            if current:
                return Return.err(
                    Error(
                        code="CONFLICT",
                        message=f"Tenant {command.tenant_id} already has subscription {current.id}",
                    )
                )

            # Step 3: Build subscription
            subscription = Subscription(
                tenant_id=command.tenant_id,
                plan_id=plan.id,
                status=SubscriptionStatus.ACTIVE,
                billing_cycle=plan.billing_cycle,
                current_period_start=now,
                current_period_end=now,
                next_billing_date=now,
                execution_quota=plan.included_executions,
                executions_used=0,
                auto_renew=True,
                created_at=now,
                updated_at=now,
            )
            subscription.start_period(now)

            if plan.trial_days > 0:
                subscription.status = SubscriptionStatus.TRIALING
                subscription.trial_ends_at = now + timedelta(days=plan.trial_days)

            # Step 4: Persist
            subscription = await self.subscription_repo.create(subscription)
            await self.uow.commit()

            logger.info(
                f"Tenant {command.tenant_id} subscribed to plan {plan.name} "
                f"({subscription.status.value})"
            )
            return Return.ok(to_subscription_dto(subscription))

        except IntegrityError as e:
            # Concurrent create hit the one-current-subscription index
            await self.uow.rollback()
            return Return.err(
                Error(
                    code="CONFLICT",
                    message=f"Tenant {command.tenant_id} already has a current subscription",
                    reason=str(e),
                )
            )

        except BillingError as e:
            await self.uow.rollback()
            return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

        except Exception as e:
            await self.uow.rollback()
            return Return.err(
                Error(
                    code="CREATE_SUBSCRIPTION_FAILED",
                    message="Failed to create subscription",
                    reason=str(e),
                )
            )
