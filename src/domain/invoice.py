"""Invoice Domain Entity

Tracks billing invoices, their totals and payment status.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import ForeignKey, Numeric, String, Text
from src.domain.base import BaseModel, BigIntId
from src.domain.errors import InvalidTransitionError, InvariantViolation
from src.domain.invoice_line_item import InvoiceLineItem, LineItemType, to_money


class InvoiceStatus(str, Enum):
    """Invoice status types"""
    DRAFT = "draft"
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"
    VOID = "void"


class PaymentLinkStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    GENERATED = "generated"
    FAILED = "failed"


class InvoiceKind(str, Enum):
    """Which charges of a billing period an invoice carries"""
    PERIOD = "period"  # base plan, add-ons and overage, billed when the period closes
    ADVANCE = "advance"  # base plan only, billed up front when a trial converts
    USAGE = "usage"  # add-ons and overage of a period whose base plan was billed in advance


# Invoices that can still receive a successful payment
PAYABLE_STATUSES = (InvoiceStatus.PENDING, InvoiceStatus.FAILED)


class Invoice(BaseModel, table=True):
    """
    Invoice - Charges of one tenant for one billing period

    Domain Rules:
    - invoice_number is unique and never changes (INV-YYYYMMDD-NNNNN)
    - One invoice per (tenant_id, kind, billing_period_start, billing_period_end)
    - total_amount is only set by recalculate_total() and always equals
      the sum of the line items' total_price
    - Status transitions: pending -> paid -> refunded, pending -> failed -> paid,
      pending/failed -> cancelled
    """

    __tablename__ = "invoices"
    __table_args__ = (
        Index('ix_invoices_tenant_id', 'tenant_id'),
        Index('ix_invoices_status', 'status'),
        Index('ix_invoices_invoice_number', 'invoice_number', unique=True),
        Index(
            'ux_invoices_tenant_period',
            'tenant_id', 'kind', 'billing_period_start', 'billing_period_end',
            unique=True,
        ),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, primary_key=True, autoincrement=True),
        description="Unique invoice identifier (auto-increment)"
    )

    tenant_id: str = Field(
        description="Tenant ID"
    )

    subscription_id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, ForeignKey("subscriptions.id"), nullable=True),
        description="Subscription the invoice bills"
    )

    invoice_number: str = Field(
        sa_column=Column(String(50), nullable=False),
        description="Unique invoice number (e.g., INV-20240131-00001)"
    )

    billing_period_start: datetime = Field(
        description="Billing period start"
    )

    billing_period_end: datetime = Field(
        description="Billing period end"
    )

    due_date: datetime = Field(
        description="Payment due date"
    )

    status: InvoiceStatus = Field(
        default=InvoiceStatus.PENDING,
        description="Invoice status (draft, pending, paid, failed, refunded, cancelled, void)"
    )

    kind: InvoiceKind = Field(
        default=InvoiceKind.PERIOD,
        description="Charges carried for the billing period (period, advance, usage)"
    )

    base_subscription_amount: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(18, 6), nullable=False),
    )

    agent_addons_amount: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(18, 6), nullable=False),
    )

    usage_overage_amount: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(18, 6), nullable=False),
    )

    discount_amount: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(18, 6), nullable=False),
        description="Absolute value of all discount lines"
    )

    tax_amount: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(18, 6), nullable=False),
    )

    total_amount: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(18, 6), nullable=False),
        description="Total invoice amount (precision: 18,6)"
    )

    currency: str = Field(
        default="USD",
        sa_column=Column(String(3), nullable=False),
        description="Currency code (ISO 4217)"
    )

    paid_at: Optional[datetime] = Field(
        default=None,
        description="Timestamp when invoice was paid"
    )

    payment_transaction_id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, nullable=True),
        description="PaymentTransaction that settled the invoice"
    )

    payment_link_status: PaymentLinkStatus = Field(
        default=PaymentLinkStatus.PENDING,
        description="Progress of payment link generation"
    )

    payment_link_attempts: int = Field(default=0)

    metadata_json: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Gateway order id, payment url and other JSON metadata"
    )

    notes: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
    )

    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Invoice creation timestamp"
    )

    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Last update timestamp"
    )

    def get_metadata(self) -> Dict[str, Any]:
        if not self.metadata_json:
            return {}
        return json.loads(self.metadata_json)

    def merge_metadata(self, values: Dict[str, Any]) -> None:
        data = self.get_metadata()
        data.update(values)
        self.metadata_json = json.dumps(data, default=str)

    @property
    def gateway_order_id(self) -> Optional[str]:
        value = self.get_metadata().get("gateway_order_id")
        return str(value) if value is not None else None

    @property
    def payment_url(self) -> Optional[str]:
        return self.get_metadata().get("payment_url")

    @property
    def amount_cents(self) -> int:
        return int(to_money(self.total_amount) * 100)

    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    def is_zero_total(self) -> bool:
        return Decimal(self.total_amount) == 0

    def is_overdue(self, now: datetime) -> bool:
        return self.status == InvoiceStatus.PENDING and self.due_date < now

    def needs_payment_link(self) -> bool:
        if self.is_paid() or self.is_zero_total():
            return False
        return self.payment_link_status in (PaymentLinkStatus.PENDING, PaymentLinkStatus.FAILED)

    def recalculate_total(self, line_items: Iterable[InvoiceLineItem]) -> Decimal:
        """
        Recompute the per-type amounts and total from line items.

        Discount lines are negative, so the total equals the plain sum of
        total_price. Any disagreement between the two is an invariant
        violation and is never corrected silently.
        """
        sums = {item_type: Decimal("0") for item_type in LineItemType}
        line_sum = Decimal("0")
        for item in line_items:
            sums[LineItemType(item.item_type)] += Decimal(item.total_price)
            line_sum += Decimal(item.total_price)

        self.base_subscription_amount = sums[LineItemType.BASE_PLAN]
        self.agent_addons_amount = sums[LineItemType.AGENT_ADDON]
        self.usage_overage_amount = sums[LineItemType.USAGE_OVERAGE]
        self.discount_amount = abs(sums[LineItemType.DISCOUNT])
        self.tax_amount = sums[LineItemType.TAX]

        total = (
            self.base_subscription_amount
            + self.agent_addons_amount
            + self.usage_overage_amount
            - self.discount_amount
            + self.tax_amount
        )
        if total != line_sum:
            raise InvariantViolation(
                f"Invoice {self.invoice_number} total {total} does not match line items sum {line_sum}",
                reason="discount lines must be stored with a negative total_price",
            )
        self.total_amount = total
        if total == 0:
            self.payment_link_status = PaymentLinkStatus.NOT_REQUIRED
        return total

    def mark_paid(self, payment_transaction_id: int, now: datetime) -> None:
        if self.status not in PAYABLE_STATUSES:
            raise InvalidTransitionError(
                f"Invoice {self.invoice_number} cannot be paid from {self.status.value}"
            )
        self.status = InvoiceStatus.PAID
        self.paid_at = now
        self.payment_transaction_id = payment_transaction_id
        self.updated_at = now

    def mark_failed(self, now: datetime) -> None:
        if self.status not in PAYABLE_STATUSES:
            raise InvalidTransitionError(
                f"Invoice {self.invoice_number} cannot fail from {self.status.value}"
            )
        self.status = InvoiceStatus.FAILED
        self.updated_at = now

    def mark_refunded(self, now: datetime) -> None:
        if self.status != InvoiceStatus.PAID:
            raise InvalidTransitionError(
                f"Only paid invoices can be refunded (invoice {self.invoice_number} is {self.status.value})"
            )
        self.status = InvoiceStatus.REFUNDED
        self.updated_at = now

    def cancel(self, now: datetime) -> None:
        if self.status not in (InvoiceStatus.DRAFT,) + PAYABLE_STATUSES:
            raise InvalidTransitionError(
                f"Invoice {self.invoice_number} cannot be cancelled from {self.status.value}"
            )
        self.status = InvoiceStatus.CANCELLED
        self.updated_at = now

    def record_payment_link(self, gateway_order_id: str, payment_key: str, payment_url: str, now: datetime) -> None:
        self.merge_metadata({
            "gateway_order_id": gateway_order_id,
            "payment_key": payment_key,
            "payment_url": payment_url,
            "payment_link_generated_at": now.isoformat(),
        })
        self.payment_link_status = PaymentLinkStatus.GENERATED
        self.payment_link_attempts += 1
        self.updated_at = now

    def record_payment_link_failure(self, error: str, now: datetime) -> None:
        self.merge_metadata({
            "payment_link_error": error,
            "payment_link_failed_at": now.isoformat(),
        })
        self.payment_link_status = PaymentLinkStatus.FAILED
        self.payment_link_attempts += 1
        self.updated_at = now
