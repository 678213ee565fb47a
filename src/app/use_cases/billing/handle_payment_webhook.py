"""HandlePaymentWebhook Use Case

Applies a payment gateway notification to the invoice it refers to.
"""

import json
import logging
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy.exc import IntegrityError
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.services.payment_gateway import GatewayCallback, PaymentGateway
from src.app.repositories.invoice_repository import InvoiceRepository
from src.app.repositories.payment_transaction_repository import PaymentTransactionRepository
from src.app.repositories.subscription_repository import SubscriptionRepository
from src.domain.errors import BillingError, InvalidSignatureError, MalformedPayloadError
from src.domain.invoice import Invoice, PAYABLE_STATUSES
from src.domain.payment_transaction import PaymentTransaction, PaymentTransactionStatus
from src.domain.subscription import SubscriptionStatus
from .dtos import WebhookResultDTO

logger = logging.getLogger(__name__)


def _outcome(callback: GatewayCallback) -> str:
    if callback.is_refund:
        return "refunded"
    if callback.pending:
        return "pending"
    if callback.success and not callback.error_occured:
        return "paid"
    return "failed"


class HandlePaymentWebhook:
    """
    Use Case: Reconcile a gateway callback

    Business Rules:
    1. The HMAC must verify before anything is read or written
    2. Invoice is found by merchant_order_id (invoice number), falling back
       to the stored gateway order id
    3. A gateway_transaction_id already recorded as terminal is a duplicate
       and changes nothing
    4. Success -> invoice paid, transaction completed, past_due subscription
       back to active
    5. Failure -> invoice failed, transaction failed
    6. Refund -> invoice refunded, refund transaction linked to its parent
    7. Invoice and transaction writes commit together
    """

    def __init__(
        self,
        uow: UnitOfWork,
        invoice_repo: InvoiceRepository,
        transaction_repo: PaymentTransactionRepository,
        subscription_repo: SubscriptionRepository,
        gateway: PaymentGateway,
        clock: Clock,
    ):
        self.uow = uow
        self.invoice_repo = invoice_repo
        self.transaction_repo = transaction_repo
        self.subscription_repo = subscription_repo
        self.gateway = gateway
        self.clock = clock

    async def execute(
        self, payload: Dict[str, Any], received_hmac: Optional[str] = None
    ) -> Result[WebhookResultDTO]:
        # Step 1: Authenticate and normalize
        try:
            callback = self.gateway.parse_callback(payload, received_hmac)
        except (MalformedPayloadError, InvalidSignatureError) as e:
            logger.warning(f"Rejected payment callback: {e.message}")
            return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

        outcome = _outcome(callback)

        try:
            now = self.clock.now()

            # Step 2: Resolve invoice
            invoice = await self._find_invoice(callback)
            if not invoice:
                logger.warning(
                    f"Payment callback {callback.transaction_id} for unknown order "
                    f"{callback.merchant_order_id or callback.gateway_order_id}"
                )
                return Return.err(
                    Error(
                        code="INVOICE_NOT_FOUND",
                        message="No invoice matches the payment notification",
                    )
                )

            # Step 3: Idempotency
            existing = await self.transaction_repo.get_by_gateway_transaction_id(callback.transaction_id)
            if existing and existing.is_terminal():
                if not (callback.is_refund and existing.status == PaymentTransactionStatus.COMPLETED):
                    return Return.ok(self._result(invoice, callback, outcome, duplicate=True))

            # Step 4: Apply
            if callback.is_refund:
                await self._apply_refund(invoice, callback, existing, now)
            elif outcome == "paid":
                await self._apply_success(invoice, callback, existing, now)
            elif outcome == "pending":
                if not existing:
                    await self.transaction_repo.create(self._new_transaction(invoice, callback))
            else:
                await self._apply_failure(invoice, callback, existing, now)

            # Step 5: Commit
            await self.uow.commit()

            logger.info(
                f"Payment callback {callback.transaction_id} applied to invoice "
                f"{invoice.invoice_number}: {outcome}"
            )
            return Return.ok(self._result(invoice, callback, outcome))

        except IntegrityError:
            # Concurrent delivery of the same notification won the insert
            await self.uow.rollback()
            invoice = await self._find_invoice(callback)
            if not invoice:
                return Return.err(
                    Error(code="INVOICE_NOT_FOUND", message="No invoice matches the payment notification")
                )
            return Return.ok(self._result(invoice, callback, outcome, duplicate=True))

        except BillingError as e:
            await self.uow.rollback()
            return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

        except Exception as e:
            await self.uow.rollback()
            logger.error(f"Failed to apply payment callback {callback.transaction_id}: {e}")
            return Return.err(
                Error(
                    code="WEBHOOK_PROCESSING_FAILED",
                    message="Failed to process payment notification",
                    reason=str(e),
                )
            )

    async def _find_invoice(self, callback: GatewayCallback) -> Optional[Invoice]:
        invoice = None
        if callback.merchant_order_id:
            invoice = await self.invoice_repo.get_by_invoice_number(callback.merchant_order_id, for_update=True)
        if not invoice:
            invoice = await self.invoice_repo.get_by_gateway_order_id(callback.gateway_order_id, for_update=True)
        return invoice

    def _new_transaction(
        self, invoice: Invoice, callback: GatewayCallback, parent_id: Optional[int] = None
    ) -> PaymentTransaction:
        return PaymentTransaction(
            invoice_id=invoice.id,
            tenant_id=invoice.tenant_id,
            gateway_transaction_id=callback.transaction_id,
            gateway_order_id=callback.gateway_order_id,
            parent_transaction_id=parent_id,
            status=PaymentTransactionStatus.PENDING,
            amount=Decimal(callback.amount_cents) / 100,
            currency=callback.currency,
            payment_method=callback.payment_method,
            raw_gateway_response=json.dumps(callback.raw, default=str),
        )

    async def _apply_success(
        self,
        invoice: Invoice,
        callback: GatewayCallback,
        existing: Optional[PaymentTransaction],
        now,
    ) -> None:
        transaction = existing or await self.transaction_repo.create(self._new_transaction(invoice, callback))
        transaction.mark_completed(now)
        await self.transaction_repo.update(transaction)

        if invoice.is_paid():
            logger.warning(
                f"Invoice {invoice.invoice_number} already paid; extra payment "
                f"{callback.transaction_id} recorded for manual review"
            )
            return

        invoice.mark_paid(transaction.id, now)
        await self.invoice_repo.update(invoice)

        if invoice.subscription_id:
            subscription = await self.subscription_repo.get_by_id(invoice.subscription_id, for_update=True)
            if subscription and subscription.status == SubscriptionStatus.PAST_DUE:
                subscription.activate(now)
                await self.subscription_repo.save_transition(subscription, SubscriptionStatus.PAST_DUE)
                logger.info(f"Subscription {subscription.id} back to active after payment")

    async def _apply_failure(
        self,
        invoice: Invoice,
        callback: GatewayCallback,
        existing: Optional[PaymentTransaction],
        now,
    ) -> None:
        transaction = existing or await self.transaction_repo.create(self._new_transaction(invoice, callback))
        transaction.mark_failed(now)
        await self.transaction_repo.update(transaction)

        if invoice.status in PAYABLE_STATUSES:
            invoice.mark_failed(now)
            await self.invoice_repo.update(invoice)

    async def _apply_refund(
        self,
        invoice: Invoice,
        callback: GatewayCallback,
        existing: Optional[PaymentTransaction],
        now,
    ) -> None:
        if existing and existing.status == PaymentTransactionStatus.COMPLETED:
            # Gateway flagged the original payment itself as refunded
            parent, refund = existing, existing
        else:
            parent = None
            if callback.parent_transaction_id:
                parent = await self.transaction_repo.get_by_gateway_transaction_id(callback.parent_transaction_id)
            if not parent and invoice.payment_transaction_id:
                parent = await self.transaction_repo.get_by_id(invoice.payment_transaction_id)
            refund = existing or await self.transaction_repo.create(
                self._new_transaction(invoice, callback, parent.id if parent else None)
            )

        refund.mark_refunded(now)
        await self.transaction_repo.update(refund)
        if parent and parent is not refund and parent.status == PaymentTransactionStatus.COMPLETED:
            parent.mark_refunded(now)
            await self.transaction_repo.update(parent)

        if invoice.is_paid():
            invoice.mark_refunded(now)
            await self.invoice_repo.update(invoice)

    @staticmethod
    def _result(
        invoice: Invoice, callback: GatewayCallback, outcome: str, duplicate: bool = False
    ) -> WebhookResultDTO:
        return WebhookResultDTO(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            gateway_transaction_id=callback.transaction_id,
            outcome=outcome,
            invoice_status=invoice.status.value,
            duplicate=duplicate,
        )
