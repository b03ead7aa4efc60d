# Shared pytest configuration and fixtures for all test types
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

# Create test limiter with no limits and in-memory storage
test_limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri="memory://",
)

# Patch the limiter before importing the app so decorators use test limiter
with patch("common.providers.rate_limiter.limiter.limiter", test_limiter):
    from api.main import app

from common.db.base import Base
from common.db.session import get_db
from packages.audit.models.database.audit_log import AuditLogEntity  # noqa: F401
from packages.billing.models.database import AutoPaymentConfigEntity
from packages.billing.models.domain.auto_payment import AutoPaymentConfig
from packages.billing.models.domain.enums import (
    InvoiceStatus,
    PaymentProvider,
    SubscriptionStatus,
)
from packages.billing.services.notification_service import NotificationService
from tests.factories.billing_factory import BillingFactory

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine and initialize schema."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_connection(test_engine):
    """Create test connection with outer transaction for rollback isolation."""
    async with test_engine.connect() as connection:
        trans = await connection.begin()
        yield connection
        await trans.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_connection):
    """Create session factory bound to test connection.

    Using join_transaction_mode="create_savepoint" so every transaction()
    and get_session() block becomes a savepoint on the shared connection.
    """
    return async_sessionmaker(
        bind=test_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function", autouse=True)
async def patch_lazy_sessions(test_session_factory, monkeypatch):
    """
    Patch session factories to use test database.

    This allows real transaction() and get_session() to run with proper
    commit/rollback/ContextVar semantics while using the test database.
    """
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", test_session_factory)
    monkeypatch.setattr(
        "common.db.scoped.AsyncSessionLocalReadonly", test_session_factory
    )


@pytest_asyncio.fixture(scope="function")
async def client(test_db: AsyncSession):
    """Create a test client."""

    async def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def mock_notification_sender():
    """Sender that accepts every notification and records the calls."""
    sender = AsyncMock()
    sender.send = AsyncMock(return_value=True)
    sender.close = AsyncMock(return_value=None)
    return sender


@pytest.fixture
def notification_service(mock_notification_sender):
    return NotificationService(sender=mock_notification_sender)


@pytest_asyncio.fixture(scope="function")
async def sample_plan(test_db: AsyncSession):
    """Monthly 1000.00 plan with 1000 included tokens."""
    return await BillingFactory.create_plan(test_db, name="basic")


@pytest_asyncio.fixture(scope="function")
async def premium_plan(test_db: AsyncSession):
    """Monthly 2000.00 plan with 5000 included tokens."""
    return await BillingFactory.create_plan(
        test_db,
        name="premium",
        monthly_price=Decimal("2000.00"),
        annual_price=Decimal("20000.00"),
        included_tokens_monthly=5000,
    )


@pytest_asyncio.fixture(scope="function")
async def retired_plan(test_db: AsyncSession):
    return await BillingFactory.create_plan(
        test_db,
        name="legacy",
        monthly_price=Decimal("500.00"),
        annual_price=None,
        included_tokens_monthly=100,
        is_active=False,
    )


@pytest_asyncio.fixture(scope="function")
async def sample_subscription(test_db: AsyncSession, sample_plan):
    """Active monthly subscription with 100 included and 50 purchased tokens."""
    return await BillingFactory.create_subscription(
        test_db, sample_plan, owner_id=1, included=100, purchased=50
    )


@pytest_asyncio.fixture(scope="function")
async def canceled_subscription(test_db: AsyncSession, sample_plan):
    return await BillingFactory.create_subscription(
        test_db,
        sample_plan,
        owner_id=2,
        status=SubscriptionStatus.CANCELED,
        included=500,
    )


@pytest_asyncio.fixture(scope="function")
async def open_invoice(test_db: AsyncSession, sample_subscription):
    """OPEN invoice of 1000.00 + 21% tax = 1210.00, already due."""
    return await BillingFactory.create_invoice(
        test_db, sample_subscription, "INV-202401-0001"
    )


@pytest_asyncio.fixture(scope="function")
async def draft_invoice(test_db: AsyncSession, sample_subscription):
    return await BillingFactory.create_invoice(
        test_db, sample_subscription, "INV-202401-0002", status=InvoiceStatus.DRAFT
    )


@pytest_asyncio.fixture(scope="function")
async def percent_coupon(test_db: AsyncSession):
    """20% off, no restrictions."""
    return await BillingFactory.create_coupon(test_db, "SAVE20")


@pytest_asyncio.fixture(scope="function")
async def auto_payment_config(test_db: AsyncSession, sample_subscription):
    """Enabled Stripe card on file for sample_subscription."""
    entity = AutoPaymentConfigEntity(
        subscription_id=sample_subscription.id,
        provider=PaymentProvider.STRIPE.value,
        payment_method_ref="pm_card_visa",
        customer_ref="cus_test123",
        card_brand="visa",
        card_last4="4242",
        card_exp_month=12,
        card_exp_year=2030,
        is_enabled=True,
        failed_attempts=0,
    )
    test_db.add(entity)
    await test_db.commit()
    await test_db.refresh(entity)
    return AutoPaymentConfig.model_validate(entity)
