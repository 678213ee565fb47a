from .base import BaseModel
from .billing_cycle import BillingCycle
from .subscription_plan import SubscriptionPlan, AgentTier
from .subscription import Subscription, SubscriptionStatus
from .agent_subscription import AgentSubscription, AgentSubscriptionStatus
from .usage_event import UsageEvent
from .invoice import Invoice, InvoiceKind, InvoiceStatus, PaymentLinkStatus
from .invoice_line_item import InvoiceLineItem, LineItemType
from .payment_transaction import PaymentTransaction, PaymentTransactionStatus

__all__ = [
    "BaseModel",
    "BillingCycle",
    "SubscriptionPlan",
    "AgentTier",
    "Subscription",
    "SubscriptionStatus",
    "AgentSubscription",
    "AgentSubscriptionStatus",
    "UsageEvent",
    "Invoice",
    "InvoiceKind",
    "InvoiceStatus",
    "PaymentLinkStatus",
    "InvoiceLineItem",
    "LineItemType",
    "PaymentTransaction",
    "PaymentTransactionStatus",
]
