"""Entity to DTO conversions shared by billing use cases"""

from typing import List, Optional
from src.domain.invoice import Invoice
from src.domain.invoice_line_item import InvoiceLineItem
from src.domain.subscription import Subscription
from src.domain.usage_event import UsageEvent
from .dtos import (
    InvoiceResponseDTO,
    LineItemDTO,
    SubscriptionResponseDTO,
    SubscriptionTransitionDTO,
    UsageEventResponseDTO,
)


def to_usage_event_dto(event: UsageEvent, duplicate: bool = False) -> UsageEventResponseDTO:
    return UsageEventResponseDTO(
        event_id=event.id,
        tenant_id=event.tenant_id,
        agent_id=event.agent_id,
        execution_id=event.execution_id,
        subscription_id=event.subscription_id,
        cost=event.cost,
        charged_amount=event.charged_amount,
        tokens_used=event.tokens_used,
        execution_time_ms=event.execution_time_ms,
        occurred_at=event.occurred_at,
        billing_cycle_month=event.billing_cycle_month,
        duplicate=duplicate,
    )


def to_subscription_dto(subscription: Subscription) -> SubscriptionResponseDTO:
    return SubscriptionResponseDTO(
        subscription_id=subscription.id,
        tenant_id=subscription.tenant_id,
        plan_id=subscription.plan_id,
        status=subscription.status.value,
        billing_cycle=subscription.billing_cycle.value,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        next_billing_date=subscription.next_billing_date,
        execution_quota=subscription.execution_quota,
        executions_used=subscription.executions_used,
        trial_ends_at=subscription.trial_ends_at,
        cancelled_at=subscription.cancelled_at,
        auto_renew=subscription.auto_renew,
    )


def to_transition_dto(
    subscription: Subscription, action: str, invoice: Optional[Invoice] = None
) -> SubscriptionTransitionDTO:
    return SubscriptionTransitionDTO(
        subscription_id=subscription.id,
        tenant_id=subscription.tenant_id,
        action=action,
        status=subscription.status.value,
        invoice_id=invoice.id if invoice else None,
        invoice_number=invoice.invoice_number if invoice else None,
    )


def to_line_item_dto(item: InvoiceLineItem) -> LineItemDTO:
    details = item.details
    return LineItemDTO(
        line_item_id=item.id,
        item_type=item.item_type.value,
        description=item.description,
        quantity=item.quantity,
        unit_price=item.unit_price,
        total_price=item.total_price,
        agent_id=item.agent_id,
        details=details.model_dump(mode="json") if details else None,
    )


def to_invoice_dto(invoice: Invoice, line_items: List[InvoiceLineItem]) -> InvoiceResponseDTO:
    return InvoiceResponseDTO(
        invoice_id=invoice.id,
        tenant_id=invoice.tenant_id,
        subscription_id=invoice.subscription_id,
        invoice_number=invoice.invoice_number,
        status=invoice.status.value,
        kind=invoice.kind.value,
        billing_period_start=invoice.billing_period_start,
        billing_period_end=invoice.billing_period_end,
        due_date=invoice.due_date,
        base_subscription_amount=invoice.base_subscription_amount,
        agent_addons_amount=invoice.agent_addons_amount,
        usage_overage_amount=invoice.usage_overage_amount,
        discount_amount=invoice.discount_amount,
        tax_amount=invoice.tax_amount,
        total_amount=invoice.total_amount,
        currency=invoice.currency,
        paid_at=invoice.paid_at,
        payment_link_status=invoice.payment_link_status.value,
        payment_url=invoice.payment_url,
        notes=invoice.notes,
        created_at=invoice.created_at,
        line_items=[to_line_item_dto(item) for item in line_items],
    )
