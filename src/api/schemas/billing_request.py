"""Request schemas for Billing API

Pydantic models for validating incoming HTTP requests.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, field_validator


class RecordUsageRequestSchema(BaseModel):
    """
    Request schema for recording one execution

    Used for POST /billing/usage endpoint.
    """

    tenant_id: str = Field(
        ...,
        min_length=1,
        description="Tenant identifier (required, non-empty)"
    )

    agent_id: str = Field(
        ...,
        min_length=1,
        description="Agent that ran the execution"
    )

    execution_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Unique execution identifier, used as idempotency key"
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
        description="Execution time (defaults to now)"
    )

    tokens_used: int = Field(default=0, ge=0)

    execution_time_ms: Optional[int] = Field(default=None, ge=0)

    @field_validator('cost', 'charged_amount')
    @classmethod
    def validate_precision(cls, v):
        """Amounts are stored with 6 decimal places"""
        if v.as_tuple().exponent < -6:
            raise ValueError("Amount supports at most 6 decimal places")
        return v

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


class CreateSubscriptionRequestSchema(BaseModel):
    """Used for POST /billing/subscriptions endpoint."""

    tenant_id: str = Field(..., min_length=1)
    plan_id: int = Field(..., gt=0)


class CancelSubscriptionRequestSchema(BaseModel):
    immediate: bool = Field(
        default=False,
        description="Cancel now instead of at the end of the current period"
    )


class RefundInvoiceRequestSchema(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)
