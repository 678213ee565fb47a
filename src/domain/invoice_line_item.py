"""Invoice Line Item Domain Entity

Append-only charge lines of an invoice. Each line type carries its own
typed details payload, stored as JSON in metadata_json.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel as PydanticModel, Field as PydanticField, TypeAdapter
from sqlmodel import Field, Column, Index
from sqlalchemy import ForeignKey, Numeric, String, Text
from src.domain.base import BaseModel, BigIntId

CENT = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class LineItemType(str, Enum):
    BASE_PLAN = "base_plan"
    AGENT_ADDON = "agent_addon"
    USAGE_OVERAGE = "usage_overage"
    DISCOUNT = "discount"
    TAX = "tax"


class BasePlanDetails(PydanticModel):
    item_type: Literal["base_plan"] = "base_plan"
    plan_id: int
    plan_name: str
    billing_cycle: str
    monthly_equivalent: Decimal


class AgentAddonDetails(PydanticModel):
    item_type: Literal["agent_addon"] = "agent_addon"
    agent_subscription_id: Optional[int] = None
    agent_name: str


class UsageOverageDetails(PydanticModel):
    item_type: Literal["usage_overage"] = "usage_overage"
    execution_quota: int
    executions_used: int
    overage_executions: int


class DiscountDetails(PydanticModel):
    item_type: Literal["discount"] = "discount"
    reason: str
    discount_code: Optional[str] = None


class TaxDetails(PydanticModel):
    item_type: Literal["tax"] = "tax"
    tax_rate: Decimal
    taxable_amount: Decimal


LineItemDetails = Annotated[
    Union[BasePlanDetails, AgentAddonDetails, UsageOverageDetails, DiscountDetails, TaxDetails],
    PydanticField(discriminator="item_type"),
]

_details_adapter = TypeAdapter(LineItemDetails)


class InvoiceLineItem(BaseModel, table=True):
    """
    Invoice Line Item - One charge on an invoice

    Domain Rules:
    - Each line item belongs to exactly one invoice
    - total_price = quantity * unit_price, rounded to cents
    - Discounts are stored with negative unit_price and total_price
    - Never updated or deleted once written
    """

    __tablename__ = "invoice_line_items"
    __table_args__ = (
        Index('ix_invoice_line_items_invoice_id', 'invoice_id'),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, primary_key=True, autoincrement=True),
        description="Unique line item identifier (auto-increment)"
    )

    invoice_id: Optional[int] = Field(
        default=None,
        sa_column=Column(BigIntId, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        description="Foreign key to Invoice"
    )

    item_type: LineItemType = Field(
        description="Charge source (base_plan, agent_addon, usage_overage, discount, tax)"
    )

    description: str = Field(
        sa_column=Column(String(255), nullable=False),
        description="Human readable line description"
    )

    quantity: int = Field(
        default=1,
        description="Number of units"
    )

    unit_price: Decimal = Field(
        sa_column=Column(Numeric(18, 6), nullable=False),
        description="Price per unit (precision: 18,6)"
    )

    total_price: Decimal = Field(
        sa_column=Column(Numeric(18, 6), nullable=False),
        description="quantity * unit_price, rounded to cents"
    )

    agent_id: Optional[str] = Field(default=None)

    metadata_json: Optional[str] = Field(
        default=None,
        sa_column=Column(Text, nullable=True),
        description="Typed details for the line type, JSON encoded"
    )

    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Line item creation timestamp"
    )

    @property
    def details(self) -> Optional[LineItemDetails]:
        if not self.metadata_json:
            return None
        return _details_adapter.validate_json(self.metadata_json)

    @classmethod
    def _build(
        cls,
        item_type: LineItemType,
        description: str,
        quantity: int,
        unit_price: Decimal,
        details: PydanticModel,
        agent_id: Optional[str] = None,
    ) -> "InvoiceLineItem":
        unit_price = Decimal(unit_price)
        return cls(
            item_type=item_type,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            total_price=to_money(unit_price * quantity),
            agent_id=agent_id,
            metadata_json=details.model_dump_json(),
        )

    @classmethod
    def base_plan(cls, plan) -> "InvoiceLineItem":
        return cls._build(
            LineItemType.BASE_PLAN,
            f"{plan.name} Plan ({plan.billing_cycle.label})",
            1,
            plan.final_price,
            BasePlanDetails(
                plan_id=plan.id,
                plan_name=plan.name,
                billing_cycle=plan.billing_cycle.value,
                monthly_equivalent=plan.monthly_equivalent_price(),
            ),
        )

    @classmethod
    def agent_addon(cls, agent_subscription) -> "InvoiceLineItem":
        return cls._build(
            LineItemType.AGENT_ADDON,
            f"{agent_subscription.agent_name} (Agent Add-on)",
            1,
            agent_subscription.monthly_price,
            AgentAddonDetails(
                agent_subscription_id=agent_subscription.id,
                agent_name=agent_subscription.agent_name,
            ),
            agent_id=agent_subscription.agent_id,
        )

    @classmethod
    def usage_overage(
        cls,
        overage_executions: int,
        price_per_execution: Decimal,
        execution_quota: int,
        executions_used: int,
    ) -> "InvoiceLineItem":
        return cls._build(
            LineItemType.USAGE_OVERAGE,
            f"Execution Overage: {overage_executions} executions @ ${Decimal(price_per_execution)} each",
            overage_executions,
            price_per_execution,
            UsageOverageDetails(
                execution_quota=execution_quota,
                executions_used=executions_used,
                overage_executions=overage_executions,
            ),
        )

    @classmethod
    def discount(cls, amount: Decimal, reason: str, discount_code: Optional[str] = None) -> "InvoiceLineItem":
        return cls._build(
            LineItemType.DISCOUNT,
            f"Discount: {reason}",
            1,
            -abs(Decimal(amount)),
            DiscountDetails(reason=reason, discount_code=discount_code),
        )

    @classmethod
    def tax(cls, taxable_amount: Decimal, tax_rate: Decimal) -> "InvoiceLineItem":
        amount = to_money(Decimal(taxable_amount) * Decimal(tax_rate))
        return cls._build(
            LineItemType.TAX,
            f"Tax ({Decimal(tax_rate) * 100:.2f}%)",
            1,
            amount,
            TaxDetails(tax_rate=tax_rate, taxable_amount=taxable_amount),
        )
