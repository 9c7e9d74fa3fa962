"""
Order ledger client.

Thin request/response wrapper around the remote order service. Four calls:

  POST /api/create-order    {amount, name, email, phone}
  POST /api/verify-payment  {razorpay_order_id, razorpay_payment_id, razorpay_signature}
  POST /api/payment-failed  {orderId, error: {code, description}}
  GET  /api/payments?orderId=...

Every response is JSON with a boolean ``success``. Transport failures and
timeouts become LedgerUnreachable; success=false, non-2xx statuses and
unparseable bodies become LedgerRejected. The ledger, not this client,
keeps repeated verify/report calls from corrupting its state.
"""

import logging
from typing import Any, Optional

import httpx

from app.config import settings
from app.engine.errors import LedgerRejected, LedgerUnreachable
from app.models.enums import OrderStatus
from app.models.order import Buyer, Order, VerificationResult

logger = logging.getLogger("checkout_flow.ledger")


class OrderLedgerClient:
    """Async client for the order ledger service."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.ledger_base_url,
            timeout=timeout_s if timeout_s is not None else settings.ledger_timeout_s,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "OrderLedgerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.TransportError as e:
            raise LedgerUnreachable(f"{method} {path} failed: {e!r}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            message = data.get("message") if isinstance(data, dict) else None
            raise LedgerRejected(
                message or f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not isinstance(data, dict):
            raise LedgerRejected(f"{method} {path} returned a non-JSON body", status_code=response.status_code)
        return data

    async def create_order(self, amount: int, buyer: Buyer) -> Order:
        """
        Ask the ledger to open a new order in ``pending`` status.

        Raises:
            LedgerRejected: The service reported failure.
            LedgerUnreachable: Transport failure.
        """
        data = await self._request("POST", "/api/create-order", json={
            "amount": amount,
            "name": buyer.name,
            "email": buyer.email,
            "phone": buyer.phone,
        })
        if not data.get("success"):
            raise LedgerRejected(data.get("message") or "Order creation rejected")
        try:
            order = Order(
                order_id=str(data["orderId"]),
                amount=data["amount"],
                currency=data["currency"],
                buyer=buyer,
            )
        except KeyError as e:
            raise LedgerRejected(f"create-order response missing {e}") from e

        logger.info("Order %s created (%s %s)", order.order_id, order.currency, order.amount)
        return order

    async def verify_payment(self, order_id: str, signature_payload: dict[str, Any]) -> VerificationResult:
        """
        Forward the provider's completion payload for server-side verification.

        The payload is opaque here and sent as-is; only the order id is filled
        in when the provider left it out. ``success:false`` is a negative
        verification, not an error.
        """
        body = dict(signature_payload)
        body.setdefault("razorpay_order_id", order_id)
        try:
            data = await self._request("POST", "/api/verify-payment", json=body)
        except LedgerRejected as e:
            if e.status_code is not None and 400 <= e.status_code < 500:
                return VerificationResult(verified=False, message=str(e))
            raise

        if data.get("success"):
            return VerificationResult(verified=True)
        return VerificationResult(verified=False, message=data.get("message") or "")

    async def report_failure(self, order_id: str, reason_code: str, reason_text: str) -> None:
        """Mark the order failed at the ledger. Callers treat this as best-effort."""
        data = await self._request("POST", "/api/payment-failed", json={
            "orderId": order_id,
            "error": {"code": reason_code, "description": reason_text},
        })
        if not data.get("success"):
            raise LedgerRejected(data.get("message") or "Failure report rejected")

    async def fetch_status(self, order_id: str) -> OrderStatus:
        """
        Read the ledger's current status for an order.

        Statuses other than success/failed (e.g. "created", "authorized") are
        reported as pending.
        """
        data = await self._request("GET", "/api/payments", params={"orderId": order_id})
        payment = data.get("payment")
        if not data.get("success") or not isinstance(payment, dict):
            raise LedgerRejected(data.get("message") or f"No payment record for order {order_id}")

        raw = str(payment.get("status", "")).lower()
        try:
            return OrderStatus(raw)
        except ValueError:
            return OrderStatus.PENDING
