"""GeneratePaymentLink Use Case

Creates the hosted-checkout link for an invoice. Runs after the invoice is
committed; a gateway failure never invalidates the invoice.
"""

import logging
from decimal import Decimal
from typing import Optional
from libs.result import Result, Return, Error
from src.app.services.unit_of_work import UnitOfWork
from src.app.services.clock import Clock
from src.app.services.payment_gateway import BillingData, GatewayLineItem, PaymentGateway
from src.app.services.tenant_directory import TenantDirectory, TenantInfo
from src.app.repositories.invoice_repository import InvoiceRepository
from src.app.repositories.invoice_line_item_repository import InvoiceLineItemRepository
from src.domain.errors import GatewayError
from src.domain.invoice import Invoice, PaymentLinkStatus
from src.domain.invoice_line_item import InvoiceLineItem, LineItemType, to_money
from .dtos import PaymentLinkResultDTO

logger = logging.getLogger(__name__)


def to_cents(amount: Decimal) -> int:
    return int(to_money(amount) * 100)


def build_billing_data(tenant: TenantInfo) -> BillingData:
    first_name, _, last_name = tenant.name.partition(" ")
    return BillingData(
        first_name=first_name or "NA",
        last_name=last_name or "NA",
        email=tenant.email or "NA",
        phone_number=tenant.phone or "NA",
        country=tenant.country or "NA",
    )


def build_gateway_items(line_items: list[InvoiceLineItem]) -> list[GatewayLineItem]:
    """Positive line items in cents; discounts are already netted into the order amount"""
    return [
        GatewayLineItem(
            name=item.description[:50],
            amount_cents=to_cents(item.unit_price),
            description=item.description,
            quantity=item.quantity,
        )
        for item in line_items
        if item.item_type != LineItemType.DISCOUNT and item.total_price > 0
    ]


def _result(invoice: Invoice, skipped: bool = False, reason: Optional[str] = None) -> PaymentLinkResultDTO:
    return PaymentLinkResultDTO(
        invoice_id=invoice.id,
        invoice_number=invoice.invoice_number,
        payment_link_status=invoice.payment_link_status.value,
        payment_url=invoice.payment_url,
        attempts=invoice.payment_link_attempts,
        skipped=skipped,
        reason=reason,
    )


class GeneratePaymentLink:
    """
    Use Case: Create a payment link for an invoice

    Business Rules:
    1. Paid, zero-total and not_required invoices are skipped
    2. merchant_order_id is the invoice number
    3. Success stores gateway_order_id, payment_key and payment_url in
       invoice metadata and marks the link generated
    4. Gateway errors, timeouts and an open circuit mark the link failed
       and count the attempt
    """

    def __init__(
        self,
        uow: UnitOfWork,
        invoice_repo: InvoiceRepository,
        line_item_repo: InvoiceLineItemRepository,
        gateway: PaymentGateway,
        tenant_directory: TenantDirectory,
        clock: Clock,
    ):
        self.uow = uow
        self.invoice_repo = invoice_repo
        self.line_item_repo = line_item_repo
        self.gateway = gateway
        self.tenant_directory = tenant_directory
        self.clock = clock

    async def execute(self, invoice_id: int) -> Result[PaymentLinkResultDTO]:
        try:
            now = self.clock.now()

            # Step 1: Load and filter
            invoice = await self.invoice_repo.get_by_id(invoice_id, for_update=True)
            if not invoice:
                return Return.err(
                    Error(code="INVOICE_NOT_FOUND", message=f"Invoice {invoice_id} not found")
                )
            if invoice.is_paid():
                return Return.ok(_result(invoice, skipped=True, reason="paid"))
            if invoice.is_zero_total() or invoice.payment_link_status == PaymentLinkStatus.NOT_REQUIRED:
                return Return.ok(_result(invoice, skipped=True, reason="not_required"))

            # Step 2: Gateway inputs
            tenant = await self.tenant_directory.get_tenant(invoice.tenant_id)
            if not tenant:
                return Return.err(
                    Error(code="NOT_FOUND", message=f"Tenant {invoice.tenant_id} not found")
                )
            line_items = await self.line_item_repo.list_by_invoice(invoice.id)

            # Step 3: Gateway handshake
            try:
                link = await self.gateway.create_payment_link(
                    amount_cents=invoice.amount_cents,
                    merchant_order_id=invoice.invoice_number,
                    items=build_gateway_items(line_items),
                    billing_data=build_billing_data(tenant),
                    currency=invoice.currency,
                )
            except GatewayError as e:
                invoice.record_payment_link_failure(e.message if not e.reason else f"{e.message}: {e.reason}", now)
                await self.invoice_repo.update(invoice)
                await self.uow.commit()
                logger.warning(
                    f"Payment link for invoice {invoice.invoice_number} failed "
                    f"(attempt {invoice.payment_link_attempts}): {e.message}"
                )
                return Return.err(Error(code=e.code, message=e.message, reason=e.reason))

            # Step 4: Persist link
            invoice.record_payment_link(link.gateway_order_id, link.payment_key, link.payment_url, now)
            invoice = await self.invoice_repo.update(invoice)
            await self.uow.commit()

            logger.info(f"Payment link generated for invoice {invoice.invoice_number}")
            return Return.ok(_result(invoice))

        except Exception as e:
            await self.uow.rollback()
            return Return.err(
                Error(
                    code="PAYMENT_LINK_FAILED",
                    message=f"Failed to generate payment link for invoice {invoice_id}",
                    reason=str(e),
                )
            )
