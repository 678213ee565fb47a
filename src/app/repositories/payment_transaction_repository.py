"""Payment Transaction Repository Interface"""

from abc import ABC, abstractmethod
from typing import Optional
from src.domain.payment_transaction import PaymentTransaction


class PaymentTransactionRepository(ABC):
    """
    Repository interface for PaymentTransaction persistence

    gateway_transaction_id is the idempotency key of gateway notifications.
    """

    @abstractmethod
    async def create(self, transaction: PaymentTransaction) -> PaymentTransaction:
        """
        Create a new payment transaction

        Raises:
            sqlalchemy.exc.IntegrityError: gateway_transaction_id already recorded
        """
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: int) -> Optional[PaymentTransaction]:
        pass

    @abstractmethod
    async def get_by_gateway_transaction_id(self, gateway_transaction_id: str) -> Optional[PaymentTransaction]:
        """
        Retrieve transaction by gateway id

        Args:
            gateway_transaction_id: Transaction id assigned by the gateway

        Returns:
            PaymentTransaction if found, None otherwise
        """
        pass

    @abstractmethod
    async def update(self, transaction: PaymentTransaction) -> PaymentTransaction:
        pass
