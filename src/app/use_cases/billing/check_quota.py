"""CheckQuota Use Case

Admission check run before an execution starts.
"""

import logging
from libs.result import Result, Return, Error
from src.app.repositories.subscription_plan_repository import SubscriptionPlanRepository
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain import quota
from src.domain.subscription import OCCUPYING_STATUSES
from .dtos import QuotaCheckDTO

logger = logging.getLogger(__name__)


class CheckQuota:
    """
    Use Case: Decide whether a tenant may start another execution

    Business Rules:
    1. No trialing/active subscription -> not allowed (no_subscription)
    2. Quota reached and no overage price -> not allowed, upgrade_plan required
    3. Quota reached with overage price -> allowed, usage is billed as overage
    """

    def __init__(
        self,
        subscription_repo: SubscriptionRepository,
        plan_repo: SubscriptionPlanRepository,
    ):
        self.subscription_repo = subscription_repo
        self.plan_repo = plan_repo

    async def execute(self, tenant_id: str) -> Result[QuotaCheckDTO]:
        try:
            subscription = await self.subscription_repo.get_current_for_tenant(
                tenant_id, OCCUPYING_STATUSES
            )
            if not subscription:
                return Return.ok(
                    QuotaCheckDTO(tenant_id=tenant_id, allowed=False, reason="no_subscription")
                )

            check = QuotaCheckDTO(
                tenant_id=tenant_id,
                allowed=True,
                subscription_id=subscription.id,
                quota=subscription.execution_quota,
                used=subscription.executions_used,
                remaining=quota.remaining(subscription),
                overage_executions=quota.overage_executions(subscription),
            )

            if not quota.has_exceeded_quota(subscription):
                return Return.ok(check)

            plan = await self.plan_repo.get_by_id(subscription.plan_id)
            if plan and plan.has_overage_pricing():
                logger.warning(
                    f"Tenant {tenant_id} exceeded quota ({subscription.executions_used}/"
                    f"{subscription.execution_quota}); usage billed at "
                    f"{plan.overage_price_per_execution} per execution"
                )
                check.reason = "overage_billed"
                return Return.ok(check)

            check.allowed = False
            check.reason = "quota_exceeded"
            check.action_required = "upgrade_plan"
            return Return.ok(check)

        except Exception as e:
            return Return.err(
                Error(
                    code="QUOTA_CHECK_FAILED",
                    message="Failed to check quota",
                    reason=str(e),
                )
            )
