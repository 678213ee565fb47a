"""Invoice document rendering interface"""

from abc import ABC, abstractmethod
from typing import List
from src.domain.invoice import Invoice
from src.domain.invoice_line_item import InvoiceLineItem


class PdfService(ABC):
    @abstractmethod
    def generate_invoice(
        self,
        invoice: Invoice,
        line_items: List[InvoiceLineItem],
        company_name: str,
        company_address: str,
    ) -> bytes:
        """
        Render an invoice as a PDF document

        Rendering is synchronous and pure: the same invoice, lines and issuer
        always produce an equivalent document. Nothing is persisted.

        Returns:
            PDF bytes, starting with the %PDF magic
        """
        pass
