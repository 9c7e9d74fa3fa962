"""Test doubles and helpers shared across test modules."""

import asyncio
import json
from typing import Any, Optional

import httpx

from app.audit.logger import FlowAuditTrail
from app.engine.coordinator import FlowPolicy, PaymentFlowCoordinator
from app.ledger.client import OrderLedgerClient
from app.models.enums import CoordinatorPhase
from app.providers.mock_provider import MockProviderSession

LEDGER_URL = "http://ledger.test"


class FakeLedger:
    """
    In-process stand-in for the order ledger service.

    Served through httpx.MockTransport so the real client's wire format is
    exercised. Status responses are consumed from ``statuses`` in order;
    an Exception entry is raised instead (e.g. httpx.ConnectError).
    """

    def __init__(self):
        self.requests: list[dict[str, Any]] = []
        self.create_status = 200
        self.create_response: dict[str, Any] = {
            "success": True,
            "orderId": "o1",
            "amount": 19900,
            "currency": "INR",
        }
        self.verify_response: dict[str, Any] = {"success": True}
        self.verify_error: Optional[Exception] = None
        self.report_response: dict[str, Any] = {"success": True}
        self.report_status = 200
        self.report_errors: list[Exception] = []
        self.statuses: list[Any] = []
        self.default_status = "pending"

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        path = request.url.path
        self.requests.append({
            "method": request.method,
            "path": path,
            "params": dict(request.url.params),
            "body": body,
        })

        if path == "/api/create-order":
            return httpx.Response(self.create_status, json=self.create_response)

        if path == "/api/verify-payment":
            if self.verify_error is not None:
                raise self.verify_error
            return httpx.Response(200, json=self.verify_response)

        if path == "/api/payment-failed":
            if self.report_errors:
                raise self.report_errors.pop(0)
            return httpx.Response(self.report_status, json=self.report_response)

        if path == "/api/payments":
            item = self.statuses.pop(0) if self.statuses else self.default_status
            if isinstance(item, Exception):
                raise item
            return httpx.Response(200, json={"success": True, "payment": {"status": item}})

        return httpx.Response(404, json={"success": False, "message": "Not found"})

    def calls(self, path: str) -> list[dict[str, Any]]:
        return [r for r in self.requests if r["path"] == path]


class FlowHarness:
    """A coordinator wired to mock provider sessions, recording what it did."""

    def __init__(self, ledger: OrderLedgerClient, policy: FlowPolicy, audit: FlowAuditTrail):
        self.sessions: list[MockProviderSession] = []
        self.navigations: list[str] = []
        self.phases: list[CoordinatorPhase] = []
        self.script: tuple = ()
        self.fail_on_open = False
        self.coordinator = PaymentFlowCoordinator(
            ledger,
            self._new_session,
            policy,
            navigator=self.navigations.append,
            audit=audit,
        )
        self.coordinator.add_listener(lambda state: self.phases.append(state.phase))

    def _new_session(self) -> MockProviderSession:
        session = MockProviderSession(script=self.script, latency_ms=0, fail_on_open=self.fail_on_open)
        self.sessions.append(session)
        return session

    @property
    def session(self) -> MockProviderSession:
        return self.sessions[-1]


async def wait_for_phase(coordinator: PaymentFlowCoordinator, phase: CoordinatorPhase, timeout: float = 2.0):
    """Wait until the coordinator reaches ``phase`` and has settled."""

    async def _poll():
        while coordinator.phase is not phase:
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)
    await settle(coordinator)


async def settle(coordinator: PaymentFlowCoordinator):
    """Wait for queued signals and any failure reports they triggered."""
    await coordinator.drain()
    await coordinator.wait_for_reports()
