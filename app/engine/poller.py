"""
Bounded, cancellable status polling.

Catches terminal outcomes the provider's own events can miss, such as QR or
other asynchronous payment methods completed out-of-band. Each tick asks the
ledger for the order's status:

  - transport or ledger error      -> log, keep polling
  - status success / failed        -> on_update(status), stop
  - max_attempts ticks, no outcome -> on_timeout(), stop

Ticks run at a fixed rate: tick n fires at start + (n - 1) * interval,
however long earlier requests took, and every request is cut off at the
overall deadline of start + interval * max_attempts. A request cut off by
the deadline counts as an errored attempt. The poller therefore never
issues more than max_attempts requests and always stops within
interval_ms * max_attempts. A zero interval polls back to back with no
deadline.
"""

import asyncio
import logging
from typing import Callable, Optional

from app.engine.errors import LedgerError
from app.ledger.client import OrderLedgerClient
from app.models.enums import OrderStatus

logger = logging.getLogger("checkout_flow.poller")


class StatusPoller:
    """Periodic fetch-status task for a single order."""

    def __init__(self, ledger: OrderLedgerClient):
        self._ledger = ledger
        self._task: Optional[asyncio.Task] = None
        self._attempts = 0
        self._stopped = False
        self.order_id: Optional[str] = None

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def start(
        self,
        order_id: str,
        interval_ms: int,
        max_attempts: int,
        on_update: Callable[[OrderStatus], None],
        on_timeout: Callable[[], None],
    ) -> None:
        """Begin polling. A poller serves one order and can only be started once."""
        if self._task is not None:
            raise RuntimeError(f"Poller already started for order {self.order_id}")
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")

        self.order_id = order_id
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(
            self._run(order_id, loop.time(), interval_ms / 1000, max_attempts, on_update, on_timeout)
        )
        logger.info(
            "Polling order %s every %dms (max %d attempts)", order_id, interval_ms, max_attempts,
        )

    def stop(self) -> None:
        """Stop polling. Safe to call repeatedly and after the poller stopped itself."""
        self._stopped = True
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run(
        self,
        order_id: str,
        started_at: float,
        interval_s: float,
        max_attempts: int,
        on_update: Callable[[OrderStatus], None],
        on_timeout: Callable[[], None],
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = started_at + interval_s * max_attempts if interval_s > 0 else None

        for attempt in range(1, max_attempts + 1):
            await asyncio.sleep(max(started_at + (attempt - 1) * interval_s - loop.time(), 0))
            if self._stopped:
                return

            budget = None
            if deadline is not None:
                budget = deadline - loop.time()
                if budget <= 0:
                    break

            self._attempts = attempt
            try:
                status = await asyncio.wait_for(self._ledger.fetch_status(order_id), budget)
            except asyncio.TimeoutError:
                logger.warning(
                    "Status check %d/%d for order %s cut off at the polling deadline", attempt, max_attempts, order_id,
                )
                continue
            except LedgerError as e:
                logger.warning("Status check %d/%d for order %s failed: %s", attempt, max_attempts, order_id, e)
                continue

            logger.debug("Order %s status %s (attempt %d/%d)", order_id, status.value, attempt, max_attempts)
            if status.is_terminal:
                self._stopped = True
                on_update(status)
                return

        self._stopped = True
        logger.info("Polling timeout for order %s after %d attempts", order_id, self._attempts)
        on_timeout()
