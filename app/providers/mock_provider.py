"""
Mock payment provider session for demonstration and tests.

Simulates the hosted widget's behavior:
  - Optional script of events played on a timer the session owns
    (e.g. ready -> completed), with configurable latency (default 100ms)
  - Manual triggers for each event, so tests control exact ordering
  - Simulated launch failure (the widget's script failed to load)
  - Realistic payment ids and signature payloads

In production, this would be replaced by a session bound to a real hosted
widget (see HostedWidgetSession).
"""

import asyncio
import logging
import uuid
from typing import Any, Optional, Sequence

from app.config import settings
from app.engine.errors import ProviderError
from app.providers.base import CheckoutOptions, PaymentProviderSession

logger = logging.getLogger("checkout_flow.provider")

# Script steps: ("ready",), ("completed",), ("completed", payload),
# ("failed", code, description), ("dismissed",)
ScriptStep = tuple


class MockProviderSession(PaymentProviderSession):
    """Scriptable stand-in for a hosted payment widget."""

    def __init__(
        self,
        script: Sequence[ScriptStep] = (),
        latency_ms: Optional[int] = None,
        fail_on_open: bool = False,
    ):
        super().__init__()
        self._script = list(script)
        self._latency_ms = latency_ms if latency_ms is not None else settings.mock_latency_ms
        self._fail_on_open = fail_on_open
        self._timer: Optional[asyncio.Task] = None
        self.options: Optional[CheckoutOptions] = None
        self.close_count = 0

    @property
    def name(self) -> str:
        return "mock_provider"

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def _launch(self, options: CheckoutOptions) -> None:
        if self._fail_on_open:
            raise ProviderError("SDK_LOAD_FAILED", "Mock widget failed to load")
        self.options = options
        if self._script:
            self._timer = asyncio.get_running_loop().create_task(self._play())

    def _teardown(self) -> None:
        self.close_count += 1
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()

    async def _play(self) -> None:
        for step in self._script:
            if self._latency_ms > 0:
                await asyncio.sleep(self._latency_ms / 1000)
            self._apply(step)

    def _apply(self, step: ScriptStep) -> None:
        event, *args = step
        if event == "ready":
            self.ready()
        elif event == "completed":
            self.complete(args[0] if args else None)
        elif event == "failed":
            self.fail(*args)
        elif event == "dismissed":
            self.dismiss()
        else:
            raise ValueError(f"Unknown mock provider event: {event}")

    # Manual triggers

    def ready(self) -> None:
        self._emit_ready()

    def complete(self, payload: Optional[dict[str, Any]] = None) -> None:
        if payload is None:
            order_id = self.options.order_id if self.options else ""
            payload = {
                "razorpay_order_id": order_id,
                "razorpay_payment_id": f"pay_{uuid.uuid4().hex[:14]}",
                "razorpay_signature": uuid.uuid4().hex,
            }
        self._emit_completed(payload)

    def fail(self, code: str = "BAD_REQUEST_ERROR", description: str = "Payment declined") -> None:
        self._emit_failed(code, description)

    def dismiss(self) -> None:
        self._emit_dismissed()
