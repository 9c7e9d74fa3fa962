"""Shared test fixtures."""

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.audit.logger import FlowAuditTrail
from app.engine.coordinator import FlowPolicy
from app.ledger.client import OrderLedgerClient
from app.models.audit import Base
from app.models.order import Buyer

from tests.support import LEDGER_URL, FakeLedger, FlowHarness


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest_asyncio.fixture
async def ledger(fake_ledger: FakeLedger):
    client = httpx.AsyncClient(base_url=LEDGER_URL, transport=httpx.MockTransport(fake_ledger.handler))
    yield OrderLedgerClient(client=client)
    await client.aclose()


@pytest_asyncio.fixture
async def audit_sessions():
    """Fresh in-memory audit database for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def policy() -> FlowPolicy:
    """One status check right after ready, then none for a minute. Polling tests shorten the interval."""
    return FlowPolicy(
        poll_interval_ms=60_000,
        poll_max_attempts=60,
        retry_base_delay_s=0,
        provider_key_id="rzp_test_key",
        confirmation_url="/orderconfirm",
    )


@pytest.fixture
def buyer() -> Buyer:
    return Buyer(name="Asha Rao", email="asha@example.com", phone="9876543210")


@pytest_asyncio.fixture
async def flow(ledger, policy, audit_sessions):
    harness = FlowHarness(ledger, policy, FlowAuditTrail(audit_sessions))
    yield harness
    await harness.coordinator.aclose()


@pytest_asyncio.fixture
async def polling_flow(ledger, policy, audit_sessions):
    """Harness whose poller ticks without delay."""
    policy.poll_interval_ms = 0
    harness = FlowHarness(ledger, policy, FlowAuditTrail(audit_sessions))
    yield harness
    await harness.coordinator.aclose()
