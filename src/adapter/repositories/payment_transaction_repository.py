"""SQLAlchemy Payment Transaction Repository Implementation"""

from typing import Optional
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from src.app.repositories.payment_transaction_repository import PaymentTransactionRepository
from src.domain.payment_transaction import PaymentTransaction


class SqlAlchemyPaymentTransactionRepository(PaymentTransactionRepository):
    """
    SQLAlchemy implementation of PaymentTransactionRepository

    The unique index on gateway_transaction_id turns a concurrent duplicate
    insert into an IntegrityError on flush.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, transaction: PaymentTransaction) -> PaymentTransaction:
        self.session.add(transaction)
        await self.session.flush()
        await self.session.refresh(transaction)
        return transaction

    async def get_by_id(self, transaction_id: int) -> Optional[PaymentTransaction]:
        stmt = select(PaymentTransaction).where(PaymentTransaction.id == transaction_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_gateway_transaction_id(self, gateway_transaction_id: str) -> Optional[PaymentTransaction]:
        stmt = select(PaymentTransaction).where(
            PaymentTransaction.gateway_transaction_id == gateway_transaction_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def update(self, transaction: PaymentTransaction) -> PaymentTransaction:
        self.session.add(transaction)
        await self.session.flush()
        await self.session.refresh(transaction)
        return transaction
