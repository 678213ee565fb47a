from functools import lru_cache
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession
from config import ApplicationConfig
from src.adapter.services.circuit_breaker import CircuitBreaker
from src.adapter.services.clock import SystemClock
from src.adapter.services.notification_service import create_notification_service
from src.adapter.services.paymob_gateway import PaymobGateway
from src.adapter.services.pdf_service import ReportLabPdfService
from src.adapter.services.tenant_directory import create_tenant_directory
from src.app.services.clock import Clock
from src.app.services.notification_service import NotificationService
from src.app.services.payment_gateway import PaymentGateway
from src.app.services.pdf_service import PdfService
from src.app.services.tenant_directory import TenantDirectory

engine = create_async_engine(ApplicationConfig.DB_URI, echo=False, future=True)

AsyncSessionLocal = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


async def get_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


def build_payment_gateway(config=ApplicationConfig) -> PaymentGateway:
    return PaymobGateway(
        base_url=config.GATEWAY_BASE_URL,
        api_key=config.GATEWAY_API_KEY,
        integration_id=config.GATEWAY_INTEGRATION_ID,
        hmac_secret=config.GATEWAY_HMAC_SECRET,
        iframe_id=config.GATEWAY_IFRAME_ID,
        timeout=config.GATEWAY_TIMEOUT_SECONDS,
        circuit_breaker=CircuitBreaker(
            "paymob",
            failure_threshold=config.GATEWAY_CIRCUIT_FAILURE_THRESHOLD,
            success_threshold=config.GATEWAY_CIRCUIT_SUCCESS_THRESHOLD,
            recovery_timeout=config.GATEWAY_CIRCUIT_RECOVERY_SECONDS,
        ),
    )


# One gateway per process so the circuit breaker state is shared
@lru_cache
def get_payment_gateway() -> PaymentGateway:
    return build_payment_gateway()


def get_clock() -> Clock:
    return SystemClock()


@lru_cache
def get_tenant_directory() -> TenantDirectory:
    return create_tenant_directory(ApplicationConfig.TENANT_SERVICE_URL)


@lru_cache
def get_notification_service() -> NotificationService:
    return create_notification_service(ApplicationConfig.BILLING_ALERT_WEBHOOK)


def get_pdf_service() -> PdfService:
    return ReportLabPdfService()
