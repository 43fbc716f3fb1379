"""Pytest configuration and fixtures for signup tests.

Every test gets a fresh in-memory SQLite database (aiosqlite), so the
suite needs no PostgreSQL or Redis server. Rate limiting and the reaper
loop are switched off through the environment before the app is imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("REAPER_ENABLED", "false")
os.environ.setdefault("SMTP_HOST", "")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from signup.database import Base, get_db
from signup.main import app
from signup.models.account import Account
from signup.models.welcome_order import WelcomeOrder
from signup.schemas.signup import WelcomeOrderCreate
from signup.services import accounts, notifier, progress
from signup.services.payment_processor import PaymentIntent, get_payment_processor


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session, fake_processor, sent_notifications) -> AsyncGenerator[AsyncClient, None]:
    """Test client sharing the test session, with request commit/rollback semantics."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_processor] = lambda: fake_processor

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Collaborator fakes ───────────────────────────────────────────

class FakePaymentProcessor:
    """Records intent requests; can be told to fail."""

    def __init__(self):
        self.calls: list[tuple[float, str, dict]] = []
        self.error: Exception | None = None

    async def create_payment_intent(self, amount, currency, metadata):
        if self.error:
            raise self.error
        self.calls.append((amount, currency, metadata))
        return PaymentIntent(
            id=f"pi_test_{len(self.calls)}",
            client_secret=f"pi_test_{len(self.calls)}_secret",
            amount=amount,
            currency=currency,
            status="requires_payment_method",
        )


@pytest.fixture
def fake_processor() -> FakePaymentProcessor:
    return FakePaymentProcessor()


@pytest.fixture
def sent_notifications(monkeypatch) -> list:
    """Capture notifications instead of dispatching them."""
    sent: list = []
    monkeypatch.setattr(notifier, "dispatch", sent.append)
    return sent


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def welcome_order(db_session: AsyncSession) -> WelcomeOrder:
    order = await progress.create_welcome_order(
        db_session,
        WelcomeOrderCreate(
            email="Jane.Doe@Example.com",
            total_amount=199.0,
            discount_amount=20.0,
            final_amount=179.0,
        ),
    )
    return order


@pytest_asyncio.fixture
async def test_account(db_session: AsyncSession) -> Account:
    return await accounts.create_account(
        db_session,
        {"email": "existing@example.com", "first_name": "Eve", "last_name": "Existing"},
        accounts.hash_password("existing-pass-1"),
    )


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "integration: Integration tests")
