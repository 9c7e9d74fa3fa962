"""
Checkout endpoints.

POST /checkouts                 - Submit billing details and start a payment.
GET  /checkouts/{id}            - Current checkout state and widget options.
POST /checkouts/{id}/events     - Forward a widget event from the browser.
POST /checkouts/{id}/submit     - Start over with a fresh order after a result.
POST /checkouts/{id}/reset      - Return to the billing form.
"""

import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from app.engine.coordinator import PaymentFlowCoordinator
from app.engine.errors import FlowBusyError, RegistryFullError
from app.engine.registry import CheckoutRegistry
from app.models.order import Buyer, CoordinatorState
from app.providers.hosted_widget import HostedWidgetSession

logger = logging.getLogger("checkout_flow.api")

router = APIRouter(prefix="/checkouts", tags=["checkouts"])


class BillingDetails(BaseModel):
    name: str
    email: str
    phone: str
    amount: Optional[int] = None


class WidgetEvent(BaseModel):
    event: Literal["ready", "completed", "failed", "dismissed"]
    data: Optional[dict[str, Any]] = None


class OrderView(BaseModel):
    order_id: str
    amount: int
    currency: str
    email: str


class CheckoutView(BaseModel):
    id: str
    phase: str
    order: Optional[OrderView] = None
    widget_options: Optional[dict[str, Any]] = None
    poll_attempts: int
    failure_code: Optional[str] = None
    failure_description: Optional[str] = None
    notice: Optional[str] = None
    confirmation_url: Optional[str] = None


def get_registry(request: Request) -> CheckoutRegistry:
    return request.app.state.registry


def _to_view(checkout_id: str, coordinator: PaymentFlowCoordinator) -> CheckoutView:
    state: CoordinatorState = coordinator.state
    order = state.active_order
    session = coordinator.session

    widget_options = None
    if isinstance(session, HostedWidgetSession) and session.is_open:
        widget_options = session.widget_options

    return CheckoutView(
        id=checkout_id,
        phase=state.phase.value,
        order=OrderView(
            order_id=order.order_id,
            amount=order.amount,
            currency=order.currency,
            email=order.buyer.email,
        ) if order else None,
        widget_options=widget_options,
        poll_attempts=state.poll_attempts,
        failure_code=state.failure_code,
        failure_description=state.failure_description,
        notice=state.notice,
        confirmation_url=state.confirmation_url,
    )


def _lookup(registry: CheckoutRegistry, checkout_id: str) -> PaymentFlowCoordinator:
    coordinator = registry.get(checkout_id)
    if coordinator is None:
        raise HTTPException(status_code=404, detail=f"Checkout not found: {checkout_id}")
    return coordinator


@router.post("", response_model=CheckoutView, status_code=201)
async def create_checkout(body: BillingDetails, registry: CheckoutRegistry = Depends(get_registry)):
    """
    Submit billing details.

    Creates the order at the ledger and opens a widget session. When the
    ledger refuses, the checkout stays idle and ``notice`` explains why.
    """
    try:
        checkout_id, coordinator = await registry.create()
    except RegistryFullError as e:
        raise HTTPException(status_code=503, detail=str(e))
    buyer = Buyer(name=body.name, email=body.email, phone=body.phone)
    await coordinator.submit(buyer, body.amount)
    return _to_view(checkout_id, coordinator)


@router.get("/{checkout_id}", response_model=CheckoutView)
async def get_checkout(checkout_id: str, registry: CheckoutRegistry = Depends(get_registry)):
    return _to_view(checkout_id, _lookup(registry, checkout_id))


@router.post("/{checkout_id}/events", response_model=CheckoutView)
async def forward_event(
    checkout_id: str,
    body: WidgetEvent,
    registry: CheckoutRegistry = Depends(get_registry),
):
    """Hand a widget callback to the checkout and return the resulting state."""
    coordinator = _lookup(registry, checkout_id)
    session = coordinator.session
    if not isinstance(session, HostedWidgetSession) or not session.is_open:
        raise HTTPException(status_code=409, detail="No payment session is open for this checkout")

    session.dispatch(body.event, body.data)
    await coordinator.drain()
    return _to_view(checkout_id, coordinator)


@router.post("/{checkout_id}/submit", response_model=CheckoutView)
async def resubmit_checkout(
    checkout_id: str,
    body: BillingDetails,
    registry: CheckoutRegistry = Depends(get_registry),
):
    coordinator = _lookup(registry, checkout_id)
    buyer = Buyer(name=body.name, email=body.email, phone=body.phone)
    try:
        await coordinator.submit(buyer, body.amount)
    except FlowBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _to_view(checkout_id, coordinator)


@router.post("/{checkout_id}/reset", response_model=CheckoutView)
async def reset_checkout(checkout_id: str, registry: CheckoutRegistry = Depends(get_registry)):
    coordinator = _lookup(registry, checkout_id)
    try:
        await coordinator.reset()
    except FlowBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _to_view(checkout_id, coordinator)
