"""GenerateInvoicePdf Use Case

Renders an invoice as PDF for download.
"""

import base64
from libs.result import Result, Return, Error
from src.app.repositories.invoice_repository import InvoiceRepository
from src.app.repositories.invoice_line_item_repository import InvoiceLineItemRepository
from src.app.services.pdf_service import PdfService
from .dtos import InvoicePdfDTO
from .mappers import to_line_item_dto


class GenerateInvoicePdf:
    """
    Use Case: Generate invoice PDF

    Flow:
    1. Retrieve invoice by ID
    2. Retrieve its line items
    3. Render PDF with the PDF service
    4. Return PDF as base64 with the line items
    """

    def __init__(
        self,
        invoice_repo: InvoiceRepository,
        line_item_repo: InvoiceLineItemRepository,
        pdf_service: PdfService,
        company_name: str,
        company_address: str,
    ):
        self.invoice_repo = invoice_repo
        self.line_item_repo = line_item_repo
        self.pdf_service = pdf_service
        self.company_name = company_name
        self.company_address = company_address

    async def execute(self, invoice_id: int) -> Result[InvoicePdfDTO]:
        try:
            # Step 1: Retrieve invoice
            invoice = await self.invoice_repo.get_by_id(invoice_id)
            if not invoice:
                return Return.err(
                    Error(
                        code="INVOICE_NOT_FOUND",
                        message=f"Invoice with ID {invoice_id} not found",
                        reason="Invoice does not exist",
                    )
                )

            # Step 2: Line items
            line_items = await self.line_item_repo.list_by_invoice(invoice.id)

            # Step 3: Render
            pdf_bytes = self.pdf_service.generate_invoice(
                invoice=invoice,
                line_items=line_items,
                company_name=self.company_name,
                company_address=self.company_address,
            )

            # Step 4: Response
            return Return.ok(
                InvoicePdfDTO(
                    invoice_id=invoice.id,
                    invoice_number=invoice.invoice_number,
                    pdf_base64=base64.b64encode(pdf_bytes).decode("utf-8"),
                    line_items=[to_line_item_dto(item) for item in line_items],
                )
            )

        except Exception as e:
            return Return.err(
                Error(
                    code="PDF_GENERATION_FAILED",
                    message="Failed to generate invoice PDF",
                    reason=str(e),
                )
            )
