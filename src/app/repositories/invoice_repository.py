"""Invoice Repository Interface"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional, List
from src.domain.invoice import Invoice, InvoiceKind, InvoiceStatus


class InvoiceRepository(ABC):
    """
    Persistence contract for invoices

    Lookups that feed a state change take ``for_update`` so the row stays
    locked until the surrounding unit of work commits.
    """

    @abstractmethod
    async def create(self, invoice: Invoice) -> Invoice:
        """
        Insert a new invoice

        Raises:
            InvoiceNumberTakenError: another transaction committed the same
                invoice number first. The current transaction is unusable and
                must be rolled back.
        """
        pass

    @abstractmethod
    async def update(self, invoice: Invoice) -> Invoice:
        pass

    @abstractmethod
    async def get_by_id(self, invoice_id: int, for_update: bool = False) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def get_by_invoice_number(self, invoice_number: str, for_update: bool = False) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def get_by_gateway_order_id(self, gateway_order_id: str, for_update: bool = False) -> Optional[Invoice]:
        """Invoice whose payment link was registered under this gateway order"""
        pass

    @abstractmethod
    async def get_by_tenant_id(
        self,
        tenant_id: str,
        status: Optional[InvoiceStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Invoice]:
        """Newest first, optionally filtered by status"""
        pass

    @abstractmethod
    async def get_for_period(
        self,
        tenant_id: str,
        billing_period_start: datetime,
        billing_period_end: datetime,
        kind: InvoiceKind = InvoiceKind.PERIOD,
    ) -> Optional[Invoice]:
        pass

    @abstractmethod
    async def exists_for_period(
        self,
        tenant_id: str,
        billing_period_start: datetime,
        billing_period_end: datetime,
        kind: InvoiceKind = InvoiceKind.PERIOD,
    ) -> bool:
        """
        Check whether the tenant was already invoiced for this exact period

        The composer calls this before numbering a new invoice so a billing
        period is never charged twice for the same kind of charges.
        """
        pass

    @abstractmethod
    async def generate_invoice_number(self, today: date) -> str:
        """
        Next free number for the day

        Format: INV-YYYYMMDD-NNNNN, e.g. INV-20240131-00001. The sequence
        restarts every day.
        """
        pass

    @abstractmethod
    async def list_needing_payment_link(self, max_attempts: int, limit: int = 100) -> List[Invoice]:
        """
        Unpaid invoices with an amount due whose link is pending or failed

        Args:
            max_attempts: Invoices that already used this many attempts are left out
            limit: Batch size

        Returns:
            Oldest first
        """
        pass
