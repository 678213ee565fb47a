"""Invoice API Routes

Invoice lookup, PDF download, payment links and refunds.
"""

import base64
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlmodel.ext.asyncio.session import AsyncSession

from config import ApplicationConfig
from src.api.schemas.billing_request import RefundInvoiceRequestSchema
from src.app.use_cases.billing.dtos import (
    InvoicePdfDTO,
    InvoiceResponseDTO,
    PaymentLinkResultDTO,
    RefundInvoiceCommandDTO,
    RefundResultDTO,
)
from src.app.use_cases.billing.get_invoice import GetInvoice, ListTenantInvoices
from src.app.use_cases.billing.generate_invoice_pdf import GenerateInvoicePdf
from src.app.use_cases.billing.generate_payment_link import GeneratePaymentLink
from src.app.use_cases.billing.refund_invoice import RefundInvoice
from src.adapter.repositories.invoice_repository import SqlAlchemyInvoiceRepository
from src.adapter.repositories.invoice_line_item_repository import SqlAlchemyInvoiceLineItemRepository
from src.adapter.repositories.payment_transaction_repository import SqlAlchemyPaymentTransactionRepository
from src.adapter.services.unit_of_work import SqlAlchemyUnitOfWork
from src.app.services.clock import Clock
from src.app.services.payment_gateway import PaymentGateway
from src.app.services.pdf_service import PdfService
from src.app.services.tenant_directory import TenantDirectory
from src.depends import (
    get_clock,
    get_payment_gateway,
    get_pdf_service,
    get_session,
    get_tenant_directory,
)
from src.api.error import ClientError

router = APIRouter(prefix="/billing/invoices", tags=["Invoices"])

NOT_FOUND_EXAMPLE = {
    "description": "Invoice not found",
    "content": {
        "application/json": {
            "example": {
                "error": {
                    "code": "INVOICE_NOT_FOUND",
                    "message": "Invoice with ID 123 not found"
                }
            }
        }
    }
}


@router.get(
    "/tenant/{tenant_id}",
    response_model=List[InvoiceResponseDTO],
    status_code=status.HTTP_200_OK,
)
async def list_invoices(
    tenant_id: str,
    invoice_status: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    """A tenant's invoices, newest first (line items omitted)."""
    use_case = ListTenantInvoices(SqlAlchemyInvoiceRepository(session))
    result = await use_case.execute(tenant_id, status=invoice_status, limit=limit, offset=offset)

    if result.is_err():
        raise ClientError(result.error)

    return result.value


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponseDTO,
    status_code=status.HTTP_200_OK,
    responses={404: NOT_FOUND_EXAMPLE},
)
async def get_invoice(
    invoice_id: int,
    session: AsyncSession = Depends(get_session),
):
    """Invoice with its line items."""
    use_case = GetInvoice(
        SqlAlchemyInvoiceRepository(session),
        SqlAlchemyInvoiceLineItemRepository(session),
    )
    result = await use_case.execute(invoice_id)

    if result.is_err():
        raise ClientError(result.error)

    return result.value


def _pdf_use_case(session: AsyncSession, pdf_service: PdfService) -> GenerateInvoicePdf:
    return GenerateInvoicePdf(
        SqlAlchemyInvoiceRepository(session),
        SqlAlchemyInvoiceLineItemRepository(session),
        pdf_service,
        company_name=ApplicationConfig.COMPANY_NAME,
        company_address=ApplicationConfig.COMPANY_ADDRESS,
    )


@router.get(
    "/{invoice_id}/pdf",
    responses={
        200: {
            "content": {"application/pdf": {}},
            "description": "PDF document"
        },
        404: NOT_FOUND_EXAMPLE,
    }
)
async def download_invoice_pdf(
    invoice_id: int,
    session: AsyncSession = Depends(get_session),
    pdf_service: PdfService = Depends(get_pdf_service),
):
    """
    Download the invoice as a PDF file.

    **Returns:**
    - 200: PDF file (Content-Type: application/pdf)
    - 404: Invoice not found
    """
    result = await _pdf_use_case(session, pdf_service).execute(invoice_id)

    if result.is_err():
        raise ClientError(result.error)

    pdf_bytes = base64.b64decode(result.value.pdf_base64)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"attachment; filename=invoice_{result.value.invoice_number}.pdf"
        },
    )


@router.get(
    "/{invoice_id}/pdf/base64",
    response_model=InvoicePdfDTO,
    status_code=status.HTTP_200_OK,
    responses={404: NOT_FOUND_EXAMPLE},
)
async def get_invoice_pdf_base64(
    invoice_id: int,
    session: AsyncSession = Depends(get_session),
    pdf_service: PdfService = Depends(get_pdf_service),
):
    """Invoice PDF as base64 together with its line items."""
    result = await _pdf_use_case(session, pdf_service).execute(invoice_id)

    if result.is_err():
        raise ClientError(result.error)

    return result.value


@router.post(
    "/{invoice_id}/payment-link",
    response_model=PaymentLinkResultDTO,
    status_code=status.HTTP_200_OK,
    responses={
        404: NOT_FOUND_EXAMPLE,
        502: {"description": "Payment gateway failed; the attempt is recorded"},
        503: {"description": "Payment gateway circuit is open"},
    }
)
async def create_payment_link(
    invoice_id: int,
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    tenant_directory: TenantDirectory = Depends(get_tenant_directory),
    clock: Clock = Depends(get_clock),
):
    """
    Create (or retry) the hosted-checkout link of an invoice.

    Paid and zero-total invoices are returned with `skipped: true`.
    """
    use_case = GeneratePaymentLink(
        SqlAlchemyUnitOfWork(session),
        SqlAlchemyInvoiceRepository(session),
        SqlAlchemyInvoiceLineItemRepository(session),
        gateway,
        tenant_directory,
        clock,
    )
    result = await use_case.execute(invoice_id)

    if result.is_err():
        raise ClientError(result.error)

    return result.value


@router.post(
    "/{invoice_id}/refund",
    response_model=RefundResultDTO,
    status_code=status.HTTP_200_OK,
    responses={
        404: NOT_FOUND_EXAMPLE,
        502: {"description": "Gateway refused or failed the refund; nothing changed"},
    }
)
async def refund_invoice(
    invoice_id: int,
    request: RefundInvoiceRequestSchema,
    session: AsyncSession = Depends(get_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
):
    """Refund a paid invoice through the payment gateway."""
    use_case = RefundInvoice(
        SqlAlchemyUnitOfWork(session),
        SqlAlchemyInvoiceRepository(session),
        SqlAlchemyPaymentTransactionRepository(session),
        gateway,
        clock,
    )
    result = await use_case.execute(RefundInvoiceCommandDTO(invoice_id=invoice_id, reason=request.reason))

    if result.is_err():
        raise ClientError(result.error)

    return result.value
