"""Billing domain use cases"""
from .record_usage import RecordUsage
from .get_usage_summary import GetUsageSummary
from .get_daily_usage import GetDailyUsage
from .check_quota import CheckQuota
from .create_subscription import CreateSubscription
from .cancel_subscription import CancelSubscription
from .reactivate_subscription import ReactivateSubscription
from .compose_invoice import InvoiceComposer
from .expire_trial import ExpireTrial
from .renew_subscription import RenewSubscription
from .finalize_cancellation import FinalizeCancellation
from .mark_past_due import MarkPastDue
from .renew_agent_subscription import RenewAgentSubscription
from .generate_payment_link import GeneratePaymentLink
from .handle_payment_webhook import HandlePaymentWebhook
from .refund_invoice import RefundInvoice
from .generate_invoice_pdf import GenerateInvoicePdf
from .get_invoice import GetInvoice, ListTenantInvoices
from .dtos import (
    RecordUsageCommandDTO,
    UsageEventResponseDTO,
    AgentUsageDTO,
    UsageSummaryDTO,
    DailyUsageDTO,
    DailyTrendDTO,
    QuotaCheckDTO,
    CreateSubscriptionCommandDTO,
    CancelSubscriptionCommandDTO,
    SubscriptionResponseDTO,
    SubscriptionTransitionDTO,
    AgentSubscriptionRenewalDTO,
    LineItemDTO,
    InvoiceResponseDTO,
    PaymentLinkResultDTO,
    WebhookResultDTO,
    RefundInvoiceCommandDTO,
    RefundResultDTO,
    InvoicePdfDTO,
    SchedulerRunResultDTO,
    PaymentLinkRunResultDTO,
)

__all__ = [
    # Use Cases
    "RecordUsage",
    "GetUsageSummary",
    "GetDailyUsage",
    "CheckQuota",
    "CreateSubscription",
    "CancelSubscription",
    "ReactivateSubscription",
    "InvoiceComposer",
    "ExpireTrial",
    "RenewSubscription",
    "FinalizeCancellation",
    "MarkPastDue",
    "RenewAgentSubscription",
    "GeneratePaymentLink",
    "HandlePaymentWebhook",
    "RefundInvoice",
    "GenerateInvoicePdf",
    "GetInvoice",
    "ListTenantInvoices",
    # DTOs
    "RecordUsageCommandDTO",
    "UsageEventResponseDTO",
    "AgentUsageDTO",
    "UsageSummaryDTO",
    "DailyUsageDTO",
    "DailyTrendDTO",
    "QuotaCheckDTO",
    "CreateSubscriptionCommandDTO",
    "CancelSubscriptionCommandDTO",
    "SubscriptionResponseDTO",
    "SubscriptionTransitionDTO",
    "AgentSubscriptionRenewalDTO",
    "LineItemDTO",
    "InvoiceResponseDTO",
    "PaymentLinkResultDTO",
    "WebhookResultDTO",
    "RefundInvoiceCommandDTO",
    "RefundResultDTO",
    "InvoicePdfDTO",
    "SchedulerRunResultDTO",
    "PaymentLinkRunResultDTO",
]
