"""Payment Transaction Domain Entity

One gateway transaction applied to an invoice.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import ForeignKey, Numeric, String, Text
from src.domain.base import BaseModel, BigIntId


class PaymentTransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


TERMINAL_STATUSES = (
    PaymentTransactionStatus.COMPLETED,
    PaymentTransactionStatus.FAILED,
    PaymentTransactionStatus.REFUNDED,
)


class PaymentTransaction(BaseModel, table=True):
    """
    Payment Transaction - Gateway outcome recorded against an invoice

    Domain Rules:
    - gateway_transaction_id is unique: a gateway notification is applied once
    - A terminal transaction (completed, failed, refunded) is never re-applied
    - Refunds are recorded as their own row linked by parent_transaction_id
    """

    __tablename__ = "payment_transactions"
    __table_args__ = (
        Index('ix_payment_transactions_invoice_id', 'invoice_id'),
        Index('ix_payment_transactions_tenant_id', 'tenant_id'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, primary_key=True, autoincrement=True),
        description="Unique payment transaction identifier (auto-increment)"
    )

    invoice_id: int = Field(
        sa_column=Column(BigIntId, ForeignKey("invoices.id"), nullable=False),
        description="Foreign key to Invoice"
    )

    tenant_id: str = Field(description="Tenant ID")

    gateway_transaction_id: str = Field(
        sa_column=Column(String(100), nullable=False, unique=True),
        description="Transaction id assigned by the payment gateway"
    )

    gateway_order_id: Optional[str] = Field(
        default=None,
        sa_column=Column(String(100), nullable=True),
    )

    parent_transaction_id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, ForeignKey("payment_transactions.id"), nullable=True),
        description="Original payment of a refund"
    )

    status: PaymentTransactionStatus = Field(default=PaymentTransactionStatus.PENDING)

    amount: Decimal = Field(
        sa_column=Column(Numeric(18, 6), nullable=False),
        description="Transaction amount (precision: 18,6)"
    )

    currency: str = Field(
        default="USD",
        sa_column=Column(String(3), nullable=False),
    )

    payment_method: Optional[str] = Field(default=None)

    paid_at: Optional[datetime] = Field(default=None)
    failed_at: Optional[datetime] = Field(default=None)
    refunded_at: Optional[datetime] = Field(default=None)

    raw_gateway_response: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )

    created_at: datetime = Field(default_factory=datetime.utcnow)

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def mark_completed(self, now: datetime) -> None:
        self.status = PaymentTransactionStatus.COMPLETED
        self.paid_at = now

    def mark_failed(self, now: datetime) -> None:
        self.status = PaymentTransactionStatus.FAILED
        self.failed_at = now

    def mark_refunded(self, now: datetime) -> None:
        self.status = PaymentTransactionStatus.REFUNDED
        self.refunded_at = now
