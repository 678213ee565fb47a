from typing import List
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from src.app.repositories.invoice_line_item_repository import InvoiceLineItemRepository
from src.domain.invoice_line_item import InvoiceLineItem


class SqlAlchemyInvoiceLineItemRepository(InvoiceLineItemRepository):
    """SQLAlchemy implementation of InvoiceLineItemRepository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, line_item: InvoiceLineItem) -> InvoiceLineItem:
        self.session.add(line_item)
        await self.session.flush()
        await self.session.refresh(line_item)
        return line_item

    async def list_by_invoice(self, invoice_id: int) -> List[InvoiceLineItem]:
        stmt = (
            select(InvoiceLineItem)
            .where(InvoiceLineItem.invoice_id == invoice_id)
            .order_by(InvoiceLineItem.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
