"""Invoice Line Item Repository Interface"""

from abc import ABC, abstractmethod
from typing import List
from src.domain.invoice_line_item import InvoiceLineItem


class InvoiceLineItemRepository(ABC):
    """
    Repository interface for InvoiceLineItem persistence

    Line items are append-only.
    """

    @abstractmethod
    async def create(self, line_item: InvoiceLineItem) -> InvoiceLineItem:
        """
        Append a line item to its invoice

        Args:
            line_item: InvoiceLineItem with invoice_id set

        Returns:
            Created InvoiceLineItem with generated ID
        """
        pass

    @abstractmethod
    async def list_by_invoice(self, invoice_id: int) -> List[InvoiceLineItem]:
        """
        Line items of an invoice in insertion order

        Args:
            invoice_id: Invoice ID

        Returns:
            List of line items
        """
        pass
