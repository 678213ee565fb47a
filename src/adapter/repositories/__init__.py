from .usage_event_repository import SqlAlchemyUsageEventRepository
from .subscription_plan_repository import SqlAlchemySubscriptionPlanRepository
from .subscription_repository import SqlAlchemySubscriptionRepository
from .agent_subscription_repository import SqlAlchemyAgentSubscriptionRepository
from .invoice_repository import SqlAlchemyInvoiceRepository
from .invoice_line_item_repository import SqlAlchemyInvoiceLineItemRepository
from .payment_transaction_repository import SqlAlchemyPaymentTransactionRepository

__all__ = [
    "SqlAlchemyUsageEventRepository",
    "SqlAlchemySubscriptionPlanRepository",
    "SqlAlchemySubscriptionRepository",
    "SqlAlchemyAgentSubscriptionRepository",
    "SqlAlchemyInvoiceRepository",
    "SqlAlchemyInvoiceLineItemRepository",
    "SqlAlchemyPaymentTransactionRepository",
]
