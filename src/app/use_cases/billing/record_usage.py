"""RecordUsage Use Case

Appends one billable execution to the usage ledger and increments the
tenant's period counter in the same transaction, idempotent per
execution_id.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.exc import IntegrityError
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.services.notification_service import NotificationService
from src.app.repositories.usage_event_repository import UsageEventRepository
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain.errors import BillingError
from src.domain.subscription import METERED_STATUSES
from src.domain.usage_event import UsageEvent
from .dtos import RecordUsageCommandDTO, UsageEventResponseDTO
from .mappers import to_usage_event_dto

logger = logging.getLogger(__name__)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class RecordUsage:
    """
    Use Case: Record a billable execution

    Business Rules:
    1. Idempotency: a replayed execution_id returns the stored event, counter untouched
    2. The ledger row and the executions_used increment commit together
    3. The increment is a single SQL UPDATE, never read-modify-write
    4. Metering failures are reported, never fatal to the caller

    Flow:
    1. Return the existing event if execution_id is known
    2. Find the tenant's metered subscription (trialing, active, past_due)
    3. Insert the usage event
    4. Increment executions_used
    5. Commit
    """

    def __init__(
        self,
        uow: UnitOfWork,
        usage_repo: UsageEventRepository,
        subscription_repo: SubscriptionRepository,
        clock: Clock,
        notification_service: Optional[NotificationService] = None,
    ):
        self.uow = uow
        self.usage_repo = usage_repo
        self.subscription_repo = subscription_repo
        self.clock = clock
        self.notification_service = notification_service

    async def execute(self, command: RecordUsageCommandDTO) -> Result[UsageEventResponseDTO]:
        """
        Execute usage recording

        Args:
            command: RecordUsageCommandDTO with tenant_id, agent_id, execution_id and amounts

        Returns:
            Result[UsageEventResponseDTO]: Recorded (or replayed) event or error
        """
        try:
            # Step 1: Idempotency check
            existing = await self.usage_repo.get_by_execution_id(command.execution_id)
            if existing:
                return Return.ok(to_usage_event_dto(existing, duplicate=True))

            # Step 2: Subscription whose counter is incremented
            subscription = await self.subscription_repo.get_current_for_tenant(
                command.tenant_id, METERED_STATUSES
            )
            if not subscription:
                logger.warning(f"Usage recorded for tenant {command.tenant_id} without a metered subscription")

            # Step 3: Append to ledger
            occurred_at = to_naive_utc(command.occurred_at) if command.occurred_at else self.clock.now()
            event = await self.usage_repo.create(
                UsageEvent.record(
                    tenant_id=command.tenant_id,
                    agent_id=command.agent_id,
                    execution_id=command.execution_id,
                    occurred_at=occurred_at,
                    cost=command.cost,
                    charged_amount=command.charged_amount,
                    tokens_used=command.tokens_used,
                    execution_time_ms=command.execution_time_ms,
                    subscription_id=subscription.id if subscription else None,
                )
            )

            # Step 4: Atomic counter increment
            if subscription:
                await self.subscription_repo.increment_executions_used(subscription.id)

            # Step 5: Commit
            await self.uow.commit()

            return Return.ok(to_usage_event_dto(event))

        except IntegrityError as e:
            # Lost the race against a concurrent insert of the same execution_id
            await self.uow.rollback()
            existing = await self.usage_repo.get_by_execution_id(command.execution_id)
            if existing:
                return Return.ok(to_usage_event_dto(existing, duplicate=True))
            return await self._failed(command, "RECORD_USAGE_FAILED", "Failed to record usage", str(e))

        except BillingError as e:
            await self.uow.rollback()
            return await self._failed(command, e.code, e.message, e.reason)

        except Exception as e:
            await self.uow.rollback()
            return await self._failed(command, "RECORD_USAGE_FAILED", "Failed to record usage", str(e))

    async def _failed(
        self, command: RecordUsageCommandDTO, code: str, message: str, reason: Optional[str]
    ) -> Result[UsageEventResponseDTO]:
        logger.error(
            f"Metering failed for tenant {command.tenant_id}, execution {command.execution_id}: "
            f"{message} ({reason})"
        )
        if self.notification_service:
            await self.notification_service.send_billing_alert(
                "metering_failure",
                message,
                {"tenant_id": command.tenant_id, "execution_id": command.execution_id, "reason": reason},
            )
        return Return.err(Error(code=code, message=message, reason=reason))
