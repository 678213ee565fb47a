from .usage_event_repository import UsageEventRepository
from .subscription_plan_repository import SubscriptionPlanRepository
from .subscription_repository import SubscriptionRepository
from .agent_subscription_repository import AgentSubscriptionRepository
from .invoice_repository import InvoiceRepository
from .invoice_line_item_repository import InvoiceLineItemRepository
from .payment_transaction_repository import PaymentTransactionRepository

__all__ = [
    "UsageEventRepository",
    "SubscriptionPlanRepository",
    "SubscriptionRepository",
    "AgentSubscriptionRepository",
    "InvoiceRepository",
    "InvoiceLineItemRepository",
    "PaymentTransactionRepository",
]
