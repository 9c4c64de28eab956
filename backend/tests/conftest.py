"""Pytest configuration and fixtures for the onboarding tests.

The API tests run against an in-memory SQLite database (aiosqlite) with the
Redis cache switched off and the payment provider replaced by a fake.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.models.onboarding import OnboardingInvite
from app.services import onboarding as service
from app.services.payment_gateway import get_payment_gateway


# ── Test Database Setup ──────────────────────────────────────────

@pytest.fixture(autouse=True)
def _no_cache(monkeypatch):
    """Session reads go straight to the database."""
    monkeypatch.setattr(settings, "cache_enabled", False)


@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test; StaticPool keeps one connection."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging data directly in tests."""
    async with session_factory() as session:
        yield session


# ── Payment provider fake ────────────────────────────────────────

class FakePaymentGateway:
    """Stands in for the Stripe adapter; flip `charges_enabled` per test."""

    def __init__(self):
        self.charges_enabled = False
        self.accounts: list[str] = []
        self.links: list[dict] = []

    async def create_account(self, email, campground_name):
        account_id = f"acct_{len(self.accounts) + 1}"
        self.accounts.append(account_id)
        return account_id

    async def create_account_link(self, account_id, refresh_url, return_url):
        self.links.append({"account": account_id, "refresh_url": refresh_url, "return_url": return_url})
        return f"https://connect.stripe.test/setup/{account_id}"

    async def account_connected(self, account_id):
        return self.charges_enabled


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


# ── Session store fake (wizard engine side) ──────────────────────

class FakeSessionStore:
    """In-memory SessionStore.

    `session` is returned by start/get, and get_session counts `reads`.
    save_step records each call and echoes the session back, or raises
    `fail_with` when set.
    """

    def __init__(self, session: dict | None = None):
        self.session = session or {"id": "sess_1", "currentStep": "park_profile", "completedSteps": [], "data": {}}
        self.saves: list[dict] = []
        self.reads = 0
        self.status_answers: list = []
        self.fail_with: Exception | None = None
        self.link_error: Exception | None = None
        self.launched = False

    def envelope(self) -> dict:
        return {"session": self.session, "progress": {}}

    async def start_session(self, token):
        return self.envelope()

    async def get_session(self, session_id, token):
        self.reads += 1
        return self.envelope()

    async def save_step(self, session_id, token, step, payload, idempotency_key, current_step=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.saves.append({
            "step": step,
            "payload": payload,
            "idempotency_key": idempotency_key,
            "current_step": current_step,
        })
        return self.envelope()

    async def connect_account(self, session_id, token):
        if self.link_error is not None:
            raise self.link_error
        return "https://connect.stripe.test/setup/acct_1"

    async def account_status(self, session_id, token):
        answer = self.status_answers.pop(0) if self.status_answers else False
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def launch(self, session_id, token):
        self.launched = True
        return {"success": True, "campgroundId": "cg_1", "slug": "pine-ridge", "redirectUrl": "/dashboard"}


@pytest.fixture
def session_store() -> FakeSessionStore:
    return FakeSessionStore()


@pytest_asyncio.fixture
async def client(session_factory, payment_gateway) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the database and payment provider overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def invite(session_factory) -> OnboardingInvite:
    """A fresh, unredeemed invitation."""
    async with session_factory() as session:
        created = await service.create_invite(session, "owner@pineridge.test")
        await session.commit()
    return created


@pytest_asyncio.fixture
async def started(client: AsyncClient, invite: OnboardingInvite) -> dict:
    """Session envelope after the invite has been redeemed."""
    resp = await client.post("/api/onboarding/session/start", json={"token": invite.token})
    assert resp.status_code == 200
    return resp.json()


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "cache: Redis cache tests")
