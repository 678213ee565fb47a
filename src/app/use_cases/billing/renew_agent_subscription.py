"""RenewAgentSubscription Use Case"""

import logging
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.repositories.agent_subscription_repository import AgentSubscriptionRepository
from .dtos import AgentSubscriptionRenewalDTO

logger = logging.getLogger(__name__)


class RenewAgentSubscription:
    """
    Use Case: Roll a due agent add-on into its next monthly period

    Add-ons with auto_renew off are cancelled instead. The add-on charge
    itself is billed on the tenant's next subscription invoice.
    """

    def __init__(
        self,
        uow: UnitOfWork,
        agent_subscription_repo: AgentSubscriptionRepository,
        clock: Clock,
    ):
        self.uow = uow
        self.agent_subscription_repo = agent_subscription_repo
        self.clock = clock

    async def execute(self, agent_subscription_id: int) -> Result[AgentSubscriptionRenewalDTO]:
        try:
            now = self.clock.now()

            addon = await self.agent_subscription_repo.get_by_id(agent_subscription_id, for_update=True)
            if not addon:
                return Return.err(
                    Error(
                        code="NOT_FOUND",
                        message=f"Agent subscription {agent_subscription_id} not found",
                    )
                )

            if not addon.is_active() or addon.next_billing_date > now:
                action = "skipped"
            elif not addon.auto_renew:
                addon.cancel(now)
                action = "cancelled"
            else:
                addon.renew()
                action = "renewed"

            if action != "skipped":
                addon = await self.agent_subscription_repo.update(addon)
                await self.uow.commit()
                logger.info(f"Agent subscription {addon.id} ({addon.agent_id}) of tenant {addon.tenant_id} {action}")

            return Return.ok(
                AgentSubscriptionRenewalDTO(
                    agent_subscription_id=addon.id,
                    tenant_id=addon.tenant_id,
                    agent_id=addon.agent_id,
                    action=action,
                    status=addon.status.value,
                    next_billing_date=addon.next_billing_date,
                )
            )

        except Exception as e:
            await self.uow.rollback()
            return Return.err(
                Error(
                    code="RENEW_AGENT_SUBSCRIPTION_FAILED",
                    message=f"Failed to renew agent subscription {agent_subscription_id}",
                    reason=str(e),
                )
            )
