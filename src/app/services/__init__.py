from .unit_of_work import UnitOfWork
from .clock import Clock
from .notification_service import NotificationService
from .payment_gateway import PaymentGateway
from .tenant_directory import TenantDirectory, TenantInfo
from .pdf_service import PdfService

__all__ = [
    "UnitOfWork",
    "Clock",
    "NotificationService",
    "PaymentGateway",
    "TenantDirectory",
    "TenantInfo",
    "PdfService",
]
