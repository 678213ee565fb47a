"""SQLAlchemy Invoice Repository Implementation"""

import json
from typing import Optional, List
from datetime import date, datetime
from sqlalchemy.exc import IntegrityError
from sqlmodel import select, func
from sqlmodel.ext.asyncio.session import AsyncSession
from src.app.repositories.invoice_repository import InvoiceRepository
from src.domain.errors import InvoiceNumberTakenError
from src.domain.invoice import Invoice, InvoiceKind, InvoiceStatus, PaymentLinkStatus

UNPAID = [InvoiceStatus.PENDING, InvoiceStatus.FAILED]
LINK_RETRYABLE = [PaymentLinkStatus.PENDING, PaymentLinkStatus.FAILED]


class SqlAlchemyInvoiceRepository(InvoiceRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _first(self, statement, for_update: bool = False) -> Optional[Invoice]:
        if for_update:
            statement = statement.with_for_update()
        result = await self.session.execute(statement)
        return result.scalars().first()

    async def _save(self, invoice: Invoice) -> Invoice:
        self.session.add(invoice)
        await self.session.flush()
        await self.session.refresh(invoice)
        return invoice

    async def create(self, invoice: Invoice) -> Invoice:
        try:
            return await self._save(invoice)
        except IntegrityError as e:
            # Both PostgreSQL and SQLite name the violated column or index in the message
            if "invoice_number" in str(e.orig):
                raise InvoiceNumberTakenError(
                    f"Invoice number {invoice.invoice_number} was taken concurrently",
                    reason=str(e.orig),
                ) from e
            raise

    async def update(self, invoice: Invoice) -> Invoice:
        return await self._save(invoice)

    async def get_by_id(self, invoice_id: int, for_update: bool = False) -> Optional[Invoice]:
        return await self._first(select(Invoice).where(Invoice.id == invoice_id), for_update)

    async def get_by_invoice_number(self, invoice_number: str, for_update: bool = False) -> Optional[Invoice]:
        return await self._first(select(Invoice).where(Invoice.invoice_number == invoice_number), for_update)

    async def get_by_gateway_order_id(self, gateway_order_id: str, for_update: bool = False) -> Optional[Invoice]:
        # Matches the "key": "value" pair json.dumps writes in Invoice.merge_metadata
        fragment = json.dumps({"gateway_order_id": str(gateway_order_id)})[1:-1]
        return await self._first(select(Invoice).where(Invoice.metadata_json.contains(fragment)), for_update)

    async def get_by_tenant_id(
        self,
        tenant_id: str,
        status: Optional[InvoiceStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Invoice]:
        statement = select(Invoice).where(Invoice.tenant_id == tenant_id)
        if status:
            statement = statement.where(Invoice.status == status)

        result = await self.session.execute(
            statement.order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    def _period_filter(self, statement, tenant_id: str, start: datetime, end: datetime, kind: InvoiceKind):
        return statement.where(
            Invoice.tenant_id == tenant_id,
            Invoice.kind == kind,
            Invoice.billing_period_start == start,
            Invoice.billing_period_end == end,
        )

    async def get_for_period(
        self,
        tenant_id: str,
        billing_period_start: datetime,
        billing_period_end: datetime,
        kind: InvoiceKind = InvoiceKind.PERIOD,
    ) -> Optional[Invoice]:
        statement = self._period_filter(select(Invoice), tenant_id, billing_period_start, billing_period_end, kind)
        return await self._first(statement)

    async def exists_for_period(
        self,
        tenant_id: str,
        billing_period_start: datetime,
        billing_period_end: datetime,
        kind: InvoiceKind = InvoiceKind.PERIOD,
    ) -> bool:
        statement = self._period_filter(
            select(func.count(Invoice.id)), tenant_id, billing_period_start, billing_period_end, kind
        )
        result = await self.session.execute(statement)
        return result.scalar_one() > 0

    async def generate_invoice_number(self, today: date) -> str:
        prefix = f"INV-{today:%Y%m%d}-"
        # Longest first so sequences past 99999 still sort after shorter ones
        result = await self.session.execute(
            select(Invoice.invoice_number)
            .where(Invoice.invoice_number.like(f"{prefix}%"))
            .order_by(func.length(Invoice.invoice_number).desc(), Invoice.invoice_number.desc())
            .limit(1)
        )
        highest = result.scalars().first()
        sequence = int(highest.rsplit("-", 1)[1]) + 1 if highest else 1

        while await self.get_by_invoice_number(f"{prefix}{sequence:05d}"):
            sequence += 1
        return f"{prefix}{sequence:05d}"

    async def list_needing_payment_link(self, max_attempts: int, limit: int = 100) -> List[Invoice]:
        statement = (
            select(Invoice)
            .where(
                Invoice.status.in_(UNPAID),
                Invoice.payment_link_status.in_(LINK_RETRYABLE),
                Invoice.payment_link_attempts < max_attempts,
                Invoice.total_amount > 0,
            )
            .order_by(Invoice.created_at, Invoice.id)
            .limit(limit)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())
