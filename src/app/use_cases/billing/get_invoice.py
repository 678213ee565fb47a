"""GetInvoice Use Case"""

from typing import List, Optional
from libs.result import Result, Return, Error
from src.app.repositories.invoice_repository import InvoiceRepository
from src.app.repositories.invoice_line_item_repository import InvoiceLineItemRepository
from src.domain.invoice import InvoiceStatus
from .dtos import InvoiceResponseDTO
from .mappers import to_invoice_dto


class GetInvoice:
    """Use Case: Invoice with its line items"""

    def __init__(self, invoice_repo: InvoiceRepository, line_item_repo: InvoiceLineItemRepository):
        self.invoice_repo = invoice_repo
        self.line_item_repo = line_item_repo

    async def execute(self, invoice_id: int) -> Result[InvoiceResponseDTO]:
        try:
            invoice = await self.invoice_repo.get_by_id(invoice_id)
            if not invoice:
                return Return.err(
                    Error(code="INVOICE_NOT_FOUND", message=f"Invoice with ID {invoice_id} not found")
                )
            line_items = await self.line_item_repo.list_by_invoice(invoice.id)
            return Return.ok(to_invoice_dto(invoice, line_items))
        except Exception as e:
            return Return.err(
                Error(code="GET_INVOICE_FAILED", message="Failed to load invoice", reason=str(e))
            )


class ListTenantInvoices:
    """Use Case: A tenant's invoices, newest first, without line items"""

    def __init__(self, invoice_repo: InvoiceRepository):
        self.invoice_repo = invoice_repo

    async def execute(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Result[List[InvoiceResponseDTO]]:
        try:
            invoice_status = InvoiceStatus(status) if status else None
        except ValueError:
            return Return.err(Error(code="VALIDATION_ERROR", message=f"Unknown invoice status {status}"))
        try:
            invoices = await self.invoice_repo.get_by_tenant_id(
                tenant_id, status=invoice_status, limit=limit, offset=offset
            )
            return Return.ok([to_invoice_dto(invoice, []) for invoice in invoices])
        except Exception as e:
            return Return.err(
                Error(code="LIST_INVOICES_FAILED", message="Failed to list invoices", reason=str(e))
            )
