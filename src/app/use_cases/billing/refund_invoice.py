"""RefundInvoice Use Case"""

import json
import logging
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.services.payment_gateway import PaymentGateway
from src.app.repositories.invoice_repository import InvoiceRepository
from src.app.repositories.payment_transaction_repository import PaymentTransactionRepository
from src.domain.errors import BillingError, GatewayError
from src.domain.payment_transaction import PaymentTransaction, PaymentTransactionStatus
from .dtos import RefundInvoiceCommandDTO, RefundResultDTO

logger = logging.getLogger(__name__)


class RefundInvoice:
    """
    Use Case: Refund a paid invoice through the gateway

    Business Rules:
    1. Only paid invoices with a recorded payment transaction
    2. Gateway failure -> GATEWAY_ERROR, nothing changes
    3. Success -> refund transaction linked to the payment, payment and
       invoice marked refunded, reason kept in invoice metadata
    """

    def __init__(
        self,
        uow: UnitOfWork,
        invoice_repo: InvoiceRepository,
        transaction_repo: PaymentTransactionRepository,
        gateway: PaymentGateway,
        clock: Clock,
    ):
        self.uow = uow
        self.invoice_repo = invoice_repo
        self.transaction_repo = transaction_repo
        self.gateway = gateway
        self.clock = clock

    async def execute(self, command: RefundInvoiceCommandDTO) -> Result[RefundResultDTO]:
        try:
            # Step 1: Validate invoice and payment
            invoice = await self.invoice_repo.get_by_id(command.invoice_id, for_update=True)
            if not invoice:
                return Return.err(
                    Error(code="INVOICE_NOT_FOUND", message=f"Invoice {command.invoice_id} not found")
                )
            if not invoice.is_paid() or not invoice.payment_transaction_id:
                return Return.err(
                    Error(
                        code="VALIDATION_ERROR",
                        message=f"Invoice {invoice.invoice_number} is {invoice.status.value}; only paid invoices can be refunded",
                    )
                )

            payment = await self.transaction_repo.get_by_id(invoice.payment_transaction_id)
            if not payment:
                return Return.err(
                    Error(
                        code="NOT_FOUND",
                        message=f"Payment transaction {invoice.payment_transaction_id} not found",
                    )
                )

            # Step 2: Gateway refund
            try:
                refund = await self.gateway.refund(payment.gateway_transaction_id, invoice.amount_cents)
            except GatewayError as e:
                await self.uow.rollback()
                logger.error(f"Refund of invoice {invoice.invoice_number} failed at gateway: {e.message}")
                return Return.err(Error(code="GATEWAY_ERROR", message=e.message, reason=e.reason))

            if not refund.success:
                await self.uow.rollback()
                return Return.err(
                    Error(
                        code="GATEWAY_ERROR",
                        message=f"Gateway declined refund of invoice {invoice.invoice_number}",
                    )
                )

            # Step 3: Record refund
            now = self.clock.now()
            refund_transaction = await self.transaction_repo.create(
                PaymentTransaction(
                    invoice_id=invoice.id,
                    tenant_id=invoice.tenant_id,
                    gateway_transaction_id=refund.gateway_transaction_id,
                    gateway_order_id=payment.gateway_order_id,
                    parent_transaction_id=payment.id,
                    status=PaymentTransactionStatus.REFUNDED,
                    amount=invoice.total_amount,
                    currency=invoice.currency,
                    payment_method=payment.payment_method,
                    refunded_at=now,
                    raw_gateway_response=json.dumps(refund.raw, default=str),
                )
            )
            payment.mark_refunded(now)
            await self.transaction_repo.update(payment)

            invoice.mark_refunded(now)
            invoice.merge_metadata({"refund_reason": command.reason, "refunded_at": now.isoformat()})
            await self.invoice_repo.update(invoice)

            await self.uow.commit()

            logger.info(f"Invoice {invoice.invoice_number} refunded ({refund.gateway_transaction_id})")
            return Return.ok(
                RefundResultDTO(
                    invoice_id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    invoice_status=invoice.status.value,
                    refund_transaction_id=refund_transaction.gateway_transaction_id,
                    amount=invoice.total_amount,
                )
            )

        except BillingError as e:
            await self.uow.rollback()
            return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

        except Exception as e:
            await self.uow.rollback()
            return Return.err(
                Error(
                    code="REFUND_FAILED",
                    message=f"Failed to refund invoice {command.invoice_id}",
                    reason=str(e),
                )
            )
