import pytest
import pytest_asyncio
from datetime import datetime
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import src.domain  # noqa: F401  registers every table on SQLModel.metadata
from src.adapter.services.notification_service import LoggingNotificationService
from src.adapter.services.tenant_directory import StaticTenantDirectory
from src.depends import (
    get_clock,
    get_notification_service,
    get_payment_gateway,
    get_session,
    get_tenant_directory,
)
from tests.fixtures.billing_seed import add_plan
from tests.fixtures.clock import FixedClock
from tests.fixtures.paymob_callbacks import make_gateway


@pytest.fixture
def db_uri(tmp_path):
    """File database so workers with their own engine see the same data"""
    return f"sqlite+aiosqlite:///{tmp_path}/billing_test.db"


@pytest_asyncio.fixture(scope="function")
async def engine(db_uri):
    engine = create_async_engine(db_uri, echo=False, future=True)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 2, 1))


@pytest.fixture
def gateway():
    return make_gateway()


@pytest.fixture
def tenant_directory():
    return StaticTenantDirectory()


@pytest.fixture
def notification_service():
    return LoggingNotificationService()


@pytest_asyncio.fixture
async def client(session_factory, clock, gateway, tenant_directory, notification_service):
    """Test client where every request gets its own session, like production"""
    from src.api.app import create_app
    from config import ApplicationConfig

    app = create_app(ApplicationConfig)

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_tenant_directory] = lambda: tenant_directory
    app.dependency_overrides[get_notification_service] = lambda: notification_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def pro_plan(session_factory):
    async with session_factory() as session:
        return await add_plan(session)
