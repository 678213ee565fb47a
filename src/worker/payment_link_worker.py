"""Payment Link Background Worker

Retries payment links for invoices whose link is still pending or failed.
"""

import asyncio
import logging
import time
from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from config import ApplicationConfig
from src.adapter.repositories.invoice_line_item_repository import SqlAlchemyInvoiceLineItemRepository
from src.adapter.repositories.invoice_repository import SqlAlchemyInvoiceRepository
from src.adapter.services.clock import SystemClock
from src.adapter.services.tenant_directory import create_tenant_directory
from src.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from src.app.services.clock import Clock
from src.app.services.payment_gateway import PaymentGateway
from src.app.services.tenant_directory import TenantDirectory
from src.app.use_cases.billing import GeneratePaymentLink, PaymentLinkRunResultDTO

logger = logging.getLogger(__name__)


class PaymentLinkWorker:
    """
    Background worker for payment link generation

    Features:
    - Picks pending/failed links of unpaid, non-zero invoices
    - Stops retrying an invoice after PAYMENT_LINK_MAX_ATTEMPTS
    - Each invoice in its own session; one failure never stops the batch
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        db_uri: Optional[str] = None,
        clock: Optional[Clock] = None,
        tenant_directory: Optional[TenantDirectory] = None,
        max_attempts: Optional[int] = None,
        batch_size: int = 100,
    ):
        self.gateway = gateway
        self.db_uri = db_uri or ApplicationConfig.DB_URI
        self.clock = clock or SystemClock()
        self.tenant_directory = tenant_directory or create_tenant_directory(ApplicationConfig.TENANT_SERVICE_URL)
        self.max_attempts = max_attempts or ApplicationConfig.PAYMENT_LINK_MAX_ATTEMPTS
        self.batch_size = batch_size

        # Create engine and session factory
        self.engine = create_async_engine(self.db_uri, echo=False, future=True)
        self.async_session_factory = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

        logger.info("PaymentLinkWorker initialized")

    async def run_once(self) -> PaymentLinkRunResultDTO:
        start_time = time.time()
        result = PaymentLinkRunResultDTO()

        async with self.async_session_factory() as session:
            invoice_repo = SqlAlchemyInvoiceRepository(session)
            invoices = await invoice_repo.list_needing_payment_link(self.max_attempts, limit=self.batch_size)
            invoice_ids = [invoice.id for invoice in invoices]

        logger.info(f"Found {len(invoice_ids)} invoices needing a payment link")

        for invoice_id in invoice_ids:
            result.processed += 1
            try:
                async with self.async_session_factory() as invoice_session:
                    use_case = GeneratePaymentLink(
                        uow=SqlAlchemyUnitOfWork(invoice_session),
                        invoice_repo=SqlAlchemyInvoiceRepository(invoice_session),
                        line_item_repo=SqlAlchemyInvoiceLineItemRepository(invoice_session),
                        gateway=self.gateway,
                        tenant_directory=self.tenant_directory,
                        clock=self.clock,
                    )
                    outcome = await use_case.execute(invoice_id)

                if outcome.is_err():
                    result.failed += 1
                    logger.warning(f"Payment link for invoice {invoice_id} failed: {outcome.error.message}")
                elif outcome.value.skipped:
                    result.skipped += 1
                else:
                    result.generated += 1

            except Exception as e:
                logger.error(f"Unexpected error generating payment link for invoice {invoice_id}: {e}")
                result.failed += 1

        result.execution_time_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"Payment link run complete: {result.generated} generated, "
            f"{result.failed} failed, {result.skipped} skipped, {result.execution_time_ms}ms"
        )
        return result

    async def run_forever(self, interval_seconds: Optional[int] = None):
        interval_seconds = interval_seconds or ApplicationConfig.PAYMENT_LINK_RETRY_INTERVAL_SECONDS
        logger.info(f"Starting continuous payment link worker with {interval_seconds}s interval")

        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Payment link run failed: {e}")

            await asyncio.sleep(interval_seconds)

    async def shutdown(self):
        """Cleanup resources"""
        await self.engine.dispose()
        logger.info("PaymentLinkWorker shutdown complete")


async def main():
    """
    Entry point for running the worker as a standalone script

    Usage:
        python -m src.worker.payment_link_worker --once
        python -m src.worker.payment_link_worker
    """
    import argparse
    from src.depends import build_payment_gateway

    logging.basicConfig(
        level=getattr(logging, ApplicationConfig.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Payment Link Worker")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument("--interval", type=int, help="Seconds between passes")
    args = parser.parse_args()

    worker = PaymentLinkWorker(gateway=build_payment_gateway())

    try:
        if args.once:
            result = await worker.run_once()
            print(f"Payment links: {result.generated} generated, {result.failed} failed, {result.skipped} skipped")
        else:
            await worker.run_forever(args.interval)
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    finally:
        await worker.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
