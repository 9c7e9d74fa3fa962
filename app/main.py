"""
Checkout Flow - hosted-widget payment coordination API.

Creates orders at a remote ledger service, hands the buyer to a hosted
payment widget, and reconciles the outcome from two independent channels
(widget callbacks forwarded by the browser, and server-side status
polling) into exactly one success or failure per order.

Start the server:
    uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.checkouts import router as checkouts_router
from app.api.health import router as health_router
from app.audit.logger import FlowAuditTrail
from app.config import settings
from app.database import async_session, init_db
from app.engine.coordinator import FlowPolicy
from app.engine.registry import CheckoutRegistry
from app.ledger.client import OrderLedgerClient

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the audit database, ledger client and checkout registry."""
    await init_db()
    ledger = OrderLedgerClient()
    app.state.registry = CheckoutRegistry(
        ledger,
        FlowPolicy.from_settings(settings),
        FlowAuditTrail(async_session),
    )
    yield
    await app.state.registry.aclose()
    await ledger.aclose()


app = FastAPI(
    title="Checkout Flow",
    description=(
        "Payment-flow coordination for hosted checkout widgets. Creates ledger orders, "
        "reconciles widget callbacks with server-side status polling, and settles each "
        "order exactly once with an immutable audit trail."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(checkouts_router, prefix="/api")
