"""Billing Cycle Scheduler Background Worker

Drives time-based subscription transitions: trial expiry, renewals,
deferred cancellations, past-due marking and agent add-on renewals, then
creates payment links for the invoices it produced.
Can be run as a standalone script or integrated with a scheduler.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from config import ApplicationConfig
from libs.result import Result
from src.adapter.repositories.agent_subscription_repository import SqlAlchemyAgentSubscriptionRepository
from src.adapter.repositories.invoice_line_item_repository import SqlAlchemyInvoiceLineItemRepository
from src.adapter.repositories.invoice_repository import SqlAlchemyInvoiceRepository
from src.adapter.repositories.subscription_plan_repository import SqlAlchemySubscriptionPlanRepository
from src.adapter.repositories.subscription_repository import SqlAlchemySubscriptionRepository
from src.adapter.services.clock import SystemClock
from src.adapter.services.notification_service import create_notification_service
from src.adapter.services.tenant_directory import create_tenant_directory
from src.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from src.app.services.clock import Clock
from src.app.services.notification_service import NotificationService
from src.app.services.payment_gateway import PaymentGateway
from src.app.services.tenant_directory import TenantDirectory
from src.app.use_cases.billing import (
    ExpireTrial,
    FinalizeCancellation,
    GeneratePaymentLink,
    InvoiceComposer,
    MarkPastDue,
    RenewAgentSubscription,
    RenewSubscription,
    SchedulerRunResultDTO,
)

logger = logging.getLogger(__name__)


class BillingCycleScheduler:
    """
    Background worker for subscription billing cycles

    Features:
    - Each subscription is processed in its own session and transaction
    - One failure is logged and counted; the batch continues
    - Idempotent: an invoice existing for the period short-circuits
      composition and the period advance is compare-and-swap
    - Payment links are best-effort and never fail a transition

    Usage:
        # Run once (cron)
        scheduler = BillingCycleScheduler()
        result = await scheduler.run_once()

        # Run continuously
        await scheduler.run_forever()
    """

    def __init__(
        self,
        db_uri: Optional[str] = None,
        clock: Optional[Clock] = None,
        gateway: Optional[PaymentGateway] = None,
        tenant_directory: Optional[TenantDirectory] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        """
        Initialize the scheduler

        Args:
            db_uri: Database URI (defaults to ApplicationConfig.DB_URI)
            clock: Time source (defaults to SystemClock)
            gateway: Payment gateway for payment links (None disables them)
            tenant_directory: Tenant lookup for invoices and payment links
            notification_service: Billing alert channel
        """
        self.db_uri = db_uri or ApplicationConfig.DB_URI
        self.clock = clock or SystemClock()
        self.gateway = gateway
        self.tenant_directory = tenant_directory or create_tenant_directory(ApplicationConfig.TENANT_SERVICE_URL)
        self.notification_service = notification_service or create_notification_service(
            ApplicationConfig.BILLING_ALERT_WEBHOOK
        )

        # Create engine and session factory
        self.engine = create_async_engine(self.db_uri, echo=False, future=True)
        self.async_session_factory = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

        logger.info("BillingCycleScheduler initialized")

    def _composer(self, session: AsyncSession) -> InvoiceComposer:
        return InvoiceComposer(
            plan_repo=SqlAlchemySubscriptionPlanRepository(session),
            invoice_repo=SqlAlchemyInvoiceRepository(session),
            line_item_repo=SqlAlchemyInvoiceLineItemRepository(session),
            agent_subscription_repo=SqlAlchemyAgentSubscriptionRepository(session),
            tenant_directory=self.tenant_directory,
            currency=ApplicationConfig.INVOICE_CURRENCY,
            due_days=ApplicationConfig.INVOICE_DUE_DAYS,
        )

    def _expire_trial(self, session: AsyncSession) -> ExpireTrial:
        return ExpireTrial(
            uow=SqlAlchemyUnitOfWork(session),
            subscription_repo=SqlAlchemySubscriptionRepository(session),
            plan_repo=SqlAlchemySubscriptionPlanRepository(session),
            composer=self._composer(session),
            clock=self.clock,
            notification_service=self.notification_service,
        )

    def _renew(self, session: AsyncSession) -> RenewSubscription:
        return RenewSubscription(
            uow=SqlAlchemyUnitOfWork(session),
            subscription_repo=SqlAlchemySubscriptionRepository(session),
            composer=self._composer(session),
            clock=self.clock,
            notification_service=self.notification_service,
        )

    def _finalize_cancellation(self, session: AsyncSession) -> FinalizeCancellation:
        return FinalizeCancellation(
            uow=SqlAlchemyUnitOfWork(session),
            subscription_repo=SqlAlchemySubscriptionRepository(session),
            composer=self._composer(session),
            clock=self.clock,
        )

    def _mark_past_due(self, session: AsyncSession) -> MarkPastDue:
        return MarkPastDue(
            uow=SqlAlchemyUnitOfWork(session),
            subscription_repo=SqlAlchemySubscriptionRepository(session),
            clock=self.clock,
            notification_service=self.notification_service,
        )

    def _renew_agent_subscription(self, session: AsyncSession) -> RenewAgentSubscription:
        return RenewAgentSubscription(
            uow=SqlAlchemyUnitOfWork(session),
            agent_subscription_repo=SqlAlchemyAgentSubscriptionRepository(session),
            clock=self.clock,
        )

    def _payment_link(self, session: AsyncSession) -> GeneratePaymentLink:
        return GeneratePaymentLink(
            uow=SqlAlchemyUnitOfWork(session),
            invoice_repo=SqlAlchemyInvoiceRepository(session),
            line_item_repo=SqlAlchemyInvoiceLineItemRepository(session),
            gateway=self.gateway,
            tenant_directory=self.tenant_directory,
            clock=self.clock,
        )

    async def _process(
        self,
        label: str,
        target_id: int,
        build: Callable[[AsyncSession], object],
        result: SchedulerRunResultDTO,
    ) -> Optional[Result]:
        """Run one use case for one target in a fresh session"""
        try:
            async with self.async_session_factory() as session:
                outcome = await build(session).execute(target_id)
        except Exception as e:
            error = str(e)
        else:
            if outcome.is_ok():
                return outcome
            error = f"{outcome.error.code}: {outcome.error.message}"

        result.failures += 1
        result.errors.append(f"{label} {target_id}: {error}")
        logger.error(f"{label} failed for {target_id}: {error}")
        return None

    async def _list_candidates(self):
        now = self.clock.now()
        async with self.async_session_factory() as session:
            subscription_repo = SqlAlchemySubscriptionRepository(session)
            agent_subscription_repo = SqlAlchemyAgentSubscriptionRepository(session)
            return {
                "trials": [s.id for s in await subscription_repo.list_trials_expiring(now)],
                "renewals": [s.id for s in await subscription_repo.list_due_for_renewal(now)],
                "cancellations": [s.id for s in await subscription_repo.list_cancellations_due(now)],
                "overdue": [s.id for s in await subscription_repo.list_with_overdue_invoices(now)],
                "agent_subscriptions": [a.id for a in await agent_subscription_repo.list_due(now)],
            }

    async def run_once(self) -> SchedulerRunResultDTO:
        """
        Run one billing cycle pass

        Returns:
            SchedulerRunResultDTO with counts and timing
        """
        start_time = time.time()
        started_at = self.clock.now()
        result = SchedulerRunResultDTO(started_at=started_at, finished_at=started_at, execution_time_ms=0)
        created_invoice_ids: List[int] = []

        candidates = await self._list_candidates()
        logger.info(
            f"Billing cycle run: {len(candidates['trials'])} trials, "
            f"{len(candidates['renewals'])} renewals, "
            f"{len(candidates['cancellations'])} cancellations, "
            f"{len(candidates['overdue'])} overdue, "
            f"{len(candidates['agent_subscriptions'])} agent add-ons"
        )

        # (a) Trial expirations
        for subscription_id in candidates["trials"]:
            outcome = await self._process("Trial expiry", subscription_id, self._expire_trial, result)
            if outcome and outcome.value.action == "activated":
                result.trials_activated += 1
            elif outcome and outcome.value.action == "cancelled":
                result.cancellations_finalized += 1
            if outcome and outcome.value.invoice_id:
                result.invoices_created += 1
                created_invoice_ids.append(outcome.value.invoice_id)

        # (b) Renewals
        for subscription_id in candidates["renewals"]:
            outcome = await self._process("Renewal", subscription_id, self._renew, result)
            if not outcome:
                continue
            if outcome.value.action == "renewed":
                result.subscriptions_renewed += 1
            elif outcome.value.action == "already_processed":
                result.already_processed += 1
            if outcome.value.invoice_id:
                result.invoices_created += 1
                created_invoice_ids.append(outcome.value.invoice_id)

        # (c) Deferred cancellations
        for subscription_id in candidates["cancellations"]:
            outcome = await self._process(
                "Cancellation", subscription_id, self._finalize_cancellation, result
            )
            if not outcome:
                continue
            if outcome.value.action == "cancelled":
                result.cancellations_finalized += 1
            if outcome.value.invoice_id:
                result.invoices_created += 1
                created_invoice_ids.append(outcome.value.invoice_id)

        # (d) Past due
        for subscription_id in candidates["overdue"]:
            outcome = await self._process("Past due", subscription_id, self._mark_past_due, result)
            if outcome and outcome.value.action == "past_due":
                result.marked_past_due += 1

        # (e) Agent add-ons
        for agent_subscription_id in candidates["agent_subscriptions"]:
            outcome = await self._process(
                "Agent add-on renewal", agent_subscription_id, self._renew_agent_subscription, result
            )
            if outcome and outcome.value.action == "renewed":
                result.agent_subscriptions_renewed += 1
            elif outcome and outcome.value.action == "cancelled":
                result.agent_subscriptions_cancelled += 1

        # (f) Payment links, best effort
        if self.gateway:
            for invoice_id in created_invoice_ids:
                await self._generate_payment_link(invoice_id, result)

        result.finished_at = self.clock.now()
        result.execution_time_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"Billing cycle complete: "
            f"{result.trials_activated} trials activated, "
            f"{result.subscriptions_renewed} renewed, "
            f"{result.invoices_created} invoices created, "
            f"{result.failures} failures, "
            f"{result.execution_time_ms}ms"
        )

        return result

    async def _generate_payment_link(self, invoice_id: int, result: SchedulerRunResultDTO) -> None:
        try:
            async with self.async_session_factory() as session:
                outcome = await self._payment_link(session).execute(invoice_id)
        except Exception as e:
            logger.warning(f"Payment link for invoice {invoice_id} failed: {e}")
            result.payment_links_failed += 1
            return

        if outcome.is_err():
            logger.warning(f"Payment link for invoice {invoice_id} failed: {outcome.error.message}")
            result.payment_links_failed += 1
        elif not outcome.value.skipped:
            result.payment_links_generated += 1

    async def run_forever(self, interval_seconds: Optional[int] = None):
        """
        Run billing cycles continuously

        Args:
            interval_seconds: Seconds between runs (default: SCHEDULER_INTERVAL_SECONDS)
        """
        interval_seconds = interval_seconds or ApplicationConfig.SCHEDULER_INTERVAL_SECONDS
        logger.info(f"Starting continuous billing cycle scheduler with {interval_seconds}s interval")

        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Billing cycle run failed: {e}")

            await asyncio.sleep(interval_seconds)

    async def shutdown(self):
        """Cleanup resources"""
        await self.engine.dispose()
        logger.info("BillingCycleScheduler shutdown complete")


async def main():
    """
    Entry point for running the scheduler as a standalone script

    Usage:
        # Run once
        python -m src.worker.billing_cycle_scheduler --once

        # Run continuously
        python -m src.worker.billing_cycle_scheduler
    """
    import argparse
    from src.depends import build_payment_gateway

    logging.basicConfig(
        level=getattr(logging, ApplicationConfig.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Billing Cycle Scheduler")
    parser.add_argument("--once", action="store_true", help="Run a single billing cycle and exit")
    parser.add_argument("--interval", type=int, help="Seconds between runs")
    args = parser.parse_args()

    if not ApplicationConfig.SCHEDULER_ENABLED and not args.once:
        logger.info("Scheduler disabled by SCHEDULER_ENABLED")
        return

    scheduler = BillingCycleScheduler(gateway=build_payment_gateway())

    try:
        if args.once:
            result = await scheduler.run_once()
            print(f"Billing cycle complete:")
            print(f"  Trials activated: {result.trials_activated}")
            print(f"  Subscriptions renewed: {result.subscriptions_renewed}")
            print(f"  Invoices created: {result.invoices_created}")
            print(f"  Already processed: {result.already_processed}")
            print(f"  Cancellations finalized: {result.cancellations_finalized}")
            print(f"  Marked past due: {result.marked_past_due}")
            print(f"  Payment links: {result.payment_links_generated} generated, {result.payment_links_failed} failed")
            print(f"  Failures: {result.failures}")
            print(f"  Execution time: {result.execution_time_ms}ms")
        else:
            await scheduler.run_forever(args.interval)
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    finally:
        await scheduler.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
