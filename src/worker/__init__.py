"""Background workers for billing service"""
from .billing_cycle_scheduler import BillingCycleScheduler
from .payment_link_worker import PaymentLinkWorker

__all__ = ["BillingCycleScheduler", "PaymentLinkWorker"]
