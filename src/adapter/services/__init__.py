from .unit_of_work import SqlAlchemyUnitOfWork
from .clock import SystemClock
from .circuit_breaker import CircuitBreaker, CircuitState
from .paymob_gateway import PaymobGateway
from .tenant_directory import HttpTenantDirectory, StaticTenantDirectory, create_tenant_directory
from .notification_service import (
    LoggingNotificationService,
    WebhookNotificationService,
    CompositeNotificationService,
    create_notification_service,
)
from .pdf_service import ReportLabPdfService

__all__ = [
    "SqlAlchemyUnitOfWork",
    "SystemClock",
    "CircuitBreaker",
    "CircuitState",
    "PaymobGateway",
    "HttpTenantDirectory",
    "StaticTenantDirectory",
    "create_tenant_directory",
    "LoggingNotificationService",
    "WebhookNotificationService",
    "CompositeNotificationService",
    "create_notification_service",
    "ReportLabPdfService",
]
