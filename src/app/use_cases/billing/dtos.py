"""Data Transfer Objects for Billing Use Cases

Pydantic models for command inputs and response outputs.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class RecordUsageCommandDTO(BaseModel):
    """
    Command DTO for recording one billable execution

    Used as input to RecordUsage use case.
    """

    tenant_id: str = Field(
        ...,
        description="Tenant identifier"
    )

    agent_id: str = Field(
        ...,
        description="Agent that performed the execution"
    )

    execution_id: str = Field(
        ...,
        min_length=1,
        description="Unique execution identifier (idempotency key)"
    )

    cost: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Internal cost of the execution"
    )

    charged_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Amount charged to the tenant"
    )

    occurred_at: Optional[datetime] = Field(
        default=None,
        description="When the execution happened (defaults to now)"
    )

    tokens_used: int = Field(
        default=0,
        ge=0,
        description="LLM tokens consumed"
    )

    execution_time_ms: Optional[int] = Field(
        default=None,
        ge=0,
        description="Execution time in milliseconds"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "tenant_id": "tenant_xyz789",
                "agent_id": "agent_seo_writer",
                "execution_id": "exec_01HZX5",
                "cost": "0.004200",
                "charged_amount": "0.010000",
                "tokens_used": 1500,
                "execution_time_ms": 3200
            }
        }


class UsageEventResponseDTO(BaseModel):
    """Response DTO for a recorded (or replayed) usage event"""

    event_id: int
    tenant_id: str
    agent_id: str
    execution_id: str
    subscription_id: Optional[int] = None
    cost: Decimal
    charged_amount: Decimal
    tokens_used: int
    execution_time_ms: Optional[int] = None
    occurred_at: datetime
    billing_cycle_month: date
    duplicate: bool = Field(
        default=False,
        description="True if execution_id was already recorded and nothing changed"
    )


class AgentUsageDTO(BaseModel):
    agent_id: str
    executions: int
    cost: Decimal
    charged: Decimal


class UsageSummaryDTO(BaseModel):
    """Monthly usage totals of a tenant"""

    tenant_id: str
    billing_cycle_month: date
    executions: int
    total_cost: Decimal
    total_charged: Decimal
    avg_execution_time_ms: Optional[float] = None
    total_tokens: int
    agents: List[AgentUsageDTO] = Field(default_factory=list)


class DailyUsageDTO(BaseModel):
    date: str
    executions: int
    charged: Decimal


class DailyTrendDTO(BaseModel):
    tenant_id: str
    days: int
    points: List[DailyUsageDTO]


class QuotaCheckDTO(BaseModel):
    """
    Admission decision for a tenant's next execution

    allowed=False with reason quota_exceeded carries action_required.
    """

    tenant_id: str
    allowed: bool
    reason: Optional[str] = Field(
        default=None,
        description="no_subscription, quota_exceeded or overage_billed"
    )
    subscription_id: Optional[int] = None
    quota: int = 0
    used: int = 0
    remaining: int = 0
    overage_executions: int = 0
    action_required: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "tenant_id": "tenant_xyz789",
                "allowed": False,
                "reason": "quota_exceeded",
                "subscription_id": 12,
                "quota": 1000,
                "used": 1000,
                "remaining": 0,
                "overage_executions": 0,
                "action_required": "upgrade_plan"
            }
        }


class CreateSubscriptionCommandDTO(BaseModel):
    tenant_id: str = Field(..., description="Tenant identifier")
    plan_id: int = Field(..., description="SubscriptionPlan to subscribe to")


class CancelSubscriptionCommandDTO(BaseModel):
    subscription_id: int
    immediate: bool = Field(
        default=False,
        description="Cancel now instead of at the end of the current period"
    )


class SubscriptionResponseDTO(BaseModel):
    """Response DTO for subscription state"""

    subscription_id: int
    tenant_id: str
    plan_id: int
    status: str
    billing_cycle: str
    current_period_start: datetime
    current_period_end: datetime
    next_billing_date: datetime
    execution_quota: int
    executions_used: int
    trial_ends_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    auto_renew: bool

    class Config:
        json_schema_extra = {
            "example": {
                "subscription_id": 12,
                "tenant_id": "tenant_xyz789",
                "plan_id": 3,
                "status": "active",
                "billing_cycle": "monthly",
                "current_period_start": "2024-01-01T00:00:00",
                "current_period_end": "2024-02-01T00:00:00",
                "next_billing_date": "2024-02-01T00:00:00",
                "execution_quota": 1000,
                "executions_used": 250,
                "trial_ends_at": None,
                "cancelled_at": None,
                "auto_renew": True
            }
        }


class SubscriptionTransitionDTO(BaseModel):
    """Outcome of a scheduler-driven transition"""

    subscription_id: int
    tenant_id: str
    action: str = Field(
        ...,
        description="activated, renewed, already_processed, cancelled, past_due or skipped"
    )
    status: str
    invoice_id: Optional[int] = None
    invoice_number: Optional[str] = None


class AgentSubscriptionRenewalDTO(BaseModel):
    agent_subscription_id: int
    tenant_id: str
    agent_id: str
    action: str = Field(..., description="renewed, cancelled or skipped")
    status: str
    next_billing_date: datetime


class LineItemDTO(BaseModel):
    line_item_id: int
    item_type: str
    description: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    agent_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class InvoiceResponseDTO(BaseModel):
    """Response DTO for an invoice with its line items"""

    invoice_id: int
    tenant_id: str
    subscription_id: Optional[int] = None
    invoice_number: str
    status: str
    kind: str = "period"
    billing_period_start: datetime
    billing_period_end: datetime
    due_date: datetime
    base_subscription_amount: Decimal
    agent_addons_amount: Decimal
    usage_overage_amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    currency: str
    paid_at: Optional[datetime] = None
    payment_link_status: str
    payment_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    line_items: List[LineItemDTO] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "invoice_id": 1,
                "tenant_id": "tenant_xyz789",
                "subscription_id": 12,
                "invoice_number": "INV-20240201-00001",
                "status": "pending",
                "billing_period_start": "2024-01-01T00:00:00",
                "billing_period_end": "2024-02-01T00:00:00",
                "due_date": "2024-02-08T00:00:00",
                "base_subscription_amount": "49.00",
                "agent_addons_amount": "10.00",
                "usage_overage_amount": "2.00",
                "discount_amount": "0",
                "tax_amount": "0",
                "total_amount": "61.00",
                "currency": "USD",
                "paid_at": None,
                "payment_link_status": "generated",
                "payment_url": "https://accept.paymob.com/api/acceptance/iframes/1?payment_token=...",
                "created_at": "2024-02-01T00:00:05",
                "line_items": []
            }
        }


class PaymentLinkResultDTO(BaseModel):
    invoice_id: int
    invoice_number: str
    payment_link_status: str
    payment_url: Optional[str] = None
    attempts: int
    skipped: bool = False
    reason: Optional[str] = None


class WebhookResultDTO(BaseModel):
    """Outcome of applying one gateway notification"""

    invoice_id: int
    invoice_number: str
    gateway_transaction_id: str
    outcome: str = Field(..., description="paid, failed, refunded or pending")
    invoice_status: str
    duplicate: bool = False


class RefundInvoiceCommandDTO(BaseModel):
    invoice_id: int
    reason: Optional[str] = Field(default=None, max_length=500)


class RefundResultDTO(BaseModel):
    invoice_id: int
    invoice_number: str
    invoice_status: str
    refund_transaction_id: str
    amount: Decimal


class InvoicePdfDTO(BaseModel):
    invoice_id: int
    invoice_number: str
    pdf_base64: str
    line_items: List[LineItemDTO]


class SchedulerRunResultDTO(BaseModel):
    """Summary of one billing cycle scheduler run"""

    started_at: datetime
    finished_at: datetime
    execution_time_ms: int
    trials_activated: int = 0
    subscriptions_renewed: int = 0
    invoices_created: int = 0
    already_processed: int = 0
    cancellations_finalized: int = 0
    marked_past_due: int = 0
    agent_subscriptions_renewed: int = 0
    agent_subscriptions_cancelled: int = 0
    payment_links_generated: int = 0
    payment_links_failed: int = 0
    failures: int = 0
    errors: List[str] = Field(default_factory=list)


class PaymentLinkRunResultDTO(BaseModel):
    processed: int = 0
    generated: int = 0
    failed: int = 0
    skipped: int = 0
    execution_time_ms: int = 0
