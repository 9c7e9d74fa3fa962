"""
Payment-flow coordinator: the checkout state machine.

Owns one active order at a time and drives it to exactly one terminal
outcome. The flow:

  1. Validate billing details, ask the ledger to create an order
  2. Open a provider session for that order
  3. Start status polling once the session reports it is ready
  4. Whichever terminal signal is processed first wins:
       provider completed  -> verify with the ledger -> Succeeded / Failed
       provider failed     -> Failed (provider's code)
       provider dismissed  -> Failed (PAYMENT_CANCELLED)
       poll success/failed -> Succeeded / Failed
       poll timeout        -> Failed (PAYMENT_INCONCLUSIVE)
  5. Release session and poller, navigate once on success, report the
     failure to the ledger once on failure (in the background, so a slow
     ledger never holds up the buyer or later signals)

Provider callbacks and poll results never touch state directly. They post
Signal messages to an inbox drained by a single worker task, so transitions
run one at a time and to completion. Any signal that arrives once the flow
is no longer awaiting payment, or that belongs to an earlier order, is
discarded.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from app.audit.logger import FlowAuditTrail
from app.config import Settings, settings
from app.engine.errors import FlowBusyError, LedgerError, ProviderError
from app.engine.poller import StatusPoller
from app.engine.retry import with_retry
from app.engine.signals import (
    PollResolved,
    PollTimedOut,
    ProviderCompleted,
    ProviderDismissed,
    ProviderFailed,
    ProviderReady,
    Signal,
)
from app.engine.validation import check_billing_details
from app.ledger.client import OrderLedgerClient
from app.models.enums import CoordinatorPhase, FailureCode, OrderStatus
from app.models.order import Buyer, CoordinatorState, Order, VerificationResult
from app.providers.base import CheckoutOptions, PaymentProviderSession, SessionCallbacks

logger = logging.getLogger("checkout_flow.coordinator")

CREATE_FAILED_NOTICE = "Failed to create order. Please try again."
OPEN_FAILED_NOTICE = "Failed to initiate payment. Please try again."

IN_FLIGHT = (CoordinatorPhase.CREATING, CoordinatorPhase.AWAITING_PAYMENT, CoordinatorPhase.VERIFYING)


@dataclass
class FlowPolicy:
    """Tunables for one coordinator; defaults match the production settings."""

    poll_interval_ms: int = 5000
    poll_max_attempts: int = 60
    report_failure_retries: int = 2
    retry_base_delay_s: float = 1.0
    confirmation_url: str = "/orderconfirm"
    provider_key_id: str = ""
    merchant_name: str = "Smart Business Bookkeeping Sheet"
    product_description: str = "Product Purchase"
    theme_color: str = "#4C5FD5"
    default_amount: int = 199

    @classmethod
    def from_settings(cls, s: Settings) -> "FlowPolicy":
        return cls(
            poll_interval_ms=s.poll_interval_ms,
            poll_max_attempts=s.poll_max_attempts,
            report_failure_retries=s.report_failure_retries,
            retry_base_delay_s=s.retry_base_delay_s,
            confirmation_url=s.confirmation_url,
            provider_key_id=s.provider_key_id,
            merchant_name=s.merchant_name,
            product_description=s.product_description,
            theme_color=s.theme_color,
            default_amount=s.default_amount,
        )


class PaymentFlowCoordinator:
    """
    Single-order checkout state machine.

    Args:
        ledger: Client for the remote order ledger.
        session_factory: Builds a fresh provider session for each order.
        policy: Polling, retry and widget configuration.
        navigator: Called with the confirmation URL, at most once per order.
        audit: Audit trail writer; logs only when omitted.
    """

    def __init__(
        self,
        ledger: OrderLedgerClient,
        session_factory: Callable[[], PaymentProviderSession],
        policy: Optional[FlowPolicy] = None,
        *,
        navigator: Optional[Callable[[str], None]] = None,
        audit: Optional[FlowAuditTrail] = None,
        poller_factory: Callable[[OrderLedgerClient], StatusPoller] = StatusPoller,
    ):
        self._ledger = ledger
        self._session_factory = session_factory
        self._policy = policy or FlowPolicy.from_settings(settings)
        self._navigator = navigator
        self._audit = audit or FlowAuditTrail()
        self._poller_factory = poller_factory
        self._listeners: list[Callable[[CoordinatorState], None]] = []

        self._state = CoordinatorState()
        self._session: Optional[PaymentProviderSession] = None
        self._poller: Optional[StatusPoller] = None
        self._navigated_for: Optional[str] = None

        self._inbox: asyncio.Queue[Signal] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._reports: set[asyncio.Task] = set()

    # Public surface

    @property
    def state(self) -> CoordinatorState:
        """Snapshot of the current state."""
        attempts = self._poller.attempts if self._poller else 0
        return dataclasses.replace(self._state, poll_attempts=attempts)

    @property
    def phase(self) -> CoordinatorPhase:
        return self._state.phase

    @property
    def session(self) -> Optional[PaymentProviderSession]:
        return self._session

    def add_listener(self, listener: Callable[[CoordinatorState], None]) -> None:
        self._listeners.append(listener)

    async def submit(self, buyer: Buyer, amount: Optional[int] = None) -> CoordinatorState:
        """
        Start a payment for ``buyer``.

        Allowed from Idle, or from a terminal phase (which starts over with a
        fresh order). Create failures return to Idle with a notice.

        Raises:
            FlowBusyError: A payment is still in flight.
        """
        if self._state.phase in IN_FLIGHT:
            raise FlowBusyError(f"Cannot submit while {self._state.phase.value}")
        if self._state.phase.is_terminal:
            self._clear()

        if amount is None:
            amount = self._policy.default_amount

        check = check_billing_details(buyer, amount)
        if not check.valid:
            self._state.notice = check.message
            self._notify()
            return self.state

        self._state.notice = None
        self._set_phase(CoordinatorPhase.CREATING)

        try:
            order = await self._ledger.create_order(amount, buyer)
        except LedgerError as e:
            logger.warning("Order creation failed: %s", e)
            self._state.notice = CREATE_FAILED_NOTICE
            self._set_phase(CoordinatorPhase.IDLE)
            await self._audit.record("order_create_failed", details={
                "error": str(e),
                "status_code": e.status_code,
                "amount": amount,
            })
            return self.state

        self._state.active_order = order
        self._set_phase(CoordinatorPhase.AWAITING_PAYMENT)
        await self._audit.record("order_created", order_id=order.order_id, details={
            "amount": order.amount,
            "currency": order.currency,
        })

        self._session = self._session_factory()
        try:
            handle = self._session.open(self._checkout_options(order), self._callbacks_for(order.order_id))
        except ProviderError as e:
            logger.error("Could not open provider session for order %s: %s", order.order_id, e)
            await self._fail(FailureCode.SESSION_OPEN_FAILED.value, str(e), notice=OPEN_FAILED_NOTICE)
            return self.state

        await self._audit.record("session_opened", order_id=order.order_id, details={
            "session_id": handle.session_id,
            "provider": handle.provider,
        })
        return self.state

    async def reset(self) -> CoordinatorState:
        """
        Return to Idle after a terminal phase.

        Raises:
            FlowBusyError: A payment is still in flight.
        """
        if self._state.phase in IN_FLIGHT:
            raise FlowBusyError(f"Cannot reset while {self._state.phase.value}")
        self._clear()
        self._notify()
        return self.state

    def post(self, signal: Signal) -> None:
        """Queue a signal for the transition function. Never blocks."""
        self._ensure_worker()
        self._inbox.put_nowait(signal)

    async def drain(self) -> None:
        """Wait until every posted signal has been processed."""
        await self._inbox.join()

    async def wait_for_reports(self) -> None:
        """Wait for every failure report still in flight."""
        while self._reports:
            await asyncio.gather(*self._reports, return_exceptions=True)

    async def aclose(self) -> None:
        """Release session, poller and the signal worker, then let pending failure reports finish."""
        self._release()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        await self.wait_for_reports()

    # Signal loop

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        # Runs only while signals are queued; post() starts a new worker when needed.
        while not self._inbox.empty():
            signal = self._inbox.get_nowait()
            try:
                await self._dispatch(signal)
            except Exception as e:
                logger.exception("Unhandled error processing %s for order %s", signal.kind, signal.order_id)
                if self._state.phase in IN_FLIGHT and self._state.active_order is not None:
                    await self._fail(FailureCode.INTERNAL_ERROR.value, str(e))
            finally:
                self._inbox.task_done()

    async def _dispatch(self, signal: Signal) -> None:
        order = self._state.active_order
        if (
            order is None
            or signal.order_id != order.order_id
            or self._state.phase is not CoordinatorPhase.AWAITING_PAYMENT
        ):
            await self._discard(signal)
            return

        if isinstance(signal, ProviderReady):
            await self._start_polling(order)
        elif isinstance(signal, ProviderCompleted):
            await self._verify(order, signal.payload)
        elif isinstance(signal, ProviderFailed):
            await self._fail(signal.code or FailureCode.PAYMENT_FAILED.value, signal.description)
        elif isinstance(signal, ProviderDismissed):
            await self._fail(FailureCode.PAYMENT_CANCELLED.value, "Payment cancelled by user")
        elif isinstance(signal, PollResolved):
            if signal.status is OrderStatus.SUCCESS:
                await self._succeed(source="poller")
            else:
                await self._fail(FailureCode.PAYMENT_FAILED.value, "Payment failed (reported by ledger)")
        elif isinstance(signal, PollTimedOut):
            await self._fail(FailureCode.PAYMENT_INCONCLUSIVE.value, "inconclusive")
        else:
            raise TypeError(f"Unknown signal: {signal!r}")

    async def _discard(self, signal: Signal) -> None:
        logger.debug("Discarding %s for order %s in phase %s", signal.kind, signal.order_id, self._state.phase.value)
        await self._audit.record("signal_discarded", order_id=signal.order_id, details={
            "signal": signal.kind,
            "phase": self._state.phase.value,
        })

    # Transitions

    async def _start_polling(self, order: Order) -> None:
        if self._poller is not None:
            await self._discard(ProviderReady(order.order_id))
            return

        order_id = order.order_id
        self._poller = self._poller_factory(self._ledger)
        self._poller.start(
            order_id,
            self._policy.poll_interval_ms,
            self._policy.poll_max_attempts,
            on_update=lambda status: self.post(PollResolved(order_id, status=status)),
            on_timeout=lambda: self.post(PollTimedOut(order_id)),
        )
        await self._audit.record("polling_started", order_id=order_id, details={
            "interval_ms": self._policy.poll_interval_ms,
            "max_attempts": self._policy.poll_max_attempts,
        })

    async def _verify(self, order: Order, payload: dict) -> None:
        self._set_phase(CoordinatorPhase.VERIFYING)
        await self._audit.record("verification_started", order_id=order.order_id, details={
            "payment_id": payload.get("razorpay_payment_id"),
        })

        try:
            result = await self._ledger.verify_payment(order.order_id, payload)
        except LedgerError as e:
            logger.error("Verification request for order %s failed: %s", order.order_id, e)
            result = VerificationResult(verified=False, message=str(e))

        if result.verified:
            await self._succeed(source="provider")
        else:
            await self._fail(
                FailureCode.VERIFICATION_FAILED.value,
                result.message,
                notice=f"Payment verification failed: {result.message or 'Unknown error'}",
            )

    async def _succeed(self, source: str) -> None:
        order = self._state.active_order
        self._release()
        self._state.failure_code = None
        self._state.failure_description = None

        if self._navigated_for != order.order_id:
            self._navigated_for = order.order_id
            self._state.confirmation_url = self._policy.confirmation_url
            if self._navigator is not None:
                self._navigator(self._policy.confirmation_url)

        self._set_phase(CoordinatorPhase.SUCCEEDED)
        await self._audit.record("payment_succeeded", order_id=order.order_id, details={"source": source})

    async def _fail(self, code: str, description: str, notice: Optional[str] = None) -> None:
        if self._state.phase.is_terminal:
            return
        order = self._state.active_order
        self._release()
        self._state.failure_code = code
        self._state.failure_description = description
        if notice:
            self._state.notice = notice

        self._set_phase(CoordinatorPhase.FAILED)
        await self._audit.record("payment_failed", order_id=order.order_id, details={
            "code": code,
            "description": description,
        })
        self._spawn_report(order.order_id, code, description)

    def _spawn_report(self, order_id: str, code: str, description: str) -> None:
        task = asyncio.get_running_loop().create_task(self._report_failure(order_id, code, description))
        self._reports.add(task)
        task.add_done_callback(self._report_done)

    def _report_done(self, task: asyncio.Task) -> None:
        self._reports.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Failure report task crashed", exc_info=task.exception())

    async def _report_failure(self, order_id: str, code: str, description: str) -> None:
        try:
            await with_retry(
                self._ledger.report_failure,
                order_id,
                code,
                description,
                max_retries=self._policy.report_failure_retries,
                base_delay=self._policy.retry_base_delay_s,
            )
        except LedgerError as e:
            logger.error("Could not report failure %s for order %s: %s", code, order_id, e)
            await self._audit.record("failure_report_failed", order_id=order_id, details={
                "code": code,
                "error": str(e),
            })
            return
        await self._audit.record("failure_reported", order_id=order_id, details={"code": code})

    # Helpers

    def _checkout_options(self, order: Order) -> CheckoutOptions:
        return CheckoutOptions(
            key=self._policy.provider_key_id,
            amount=order.amount,
            currency=order.currency,
            order_id=order.order_id,
            name=self._policy.merchant_name,
            description=self._policy.product_description,
            prefill=order.buyer.prefill(),
            theme_color=self._policy.theme_color,
        )

    def _callbacks_for(self, order_id: str) -> SessionCallbacks:
        return SessionCallbacks(
            on_ready=lambda: self.post(ProviderReady(order_id)),
            on_completed=lambda payload: self.post(ProviderCompleted(order_id, payload=payload or {})),
            on_provider_failed=lambda code, text: self.post(ProviderFailed(order_id, code=code, description=text)),
            on_dismissed=lambda: self.post(ProviderDismissed(order_id)),
        )

    def _release(self) -> None:
        """Stop the poller and close the session. Safe on every exit path."""
        if self._poller is not None:
            self._poller.stop()
        if self._session is not None:
            self._session.close()

    def _clear(self) -> None:
        self._release()
        self._state = CoordinatorState()
        self._session = None
        self._poller = None

    def _set_phase(self, phase: CoordinatorPhase) -> None:
        previous = self._state.phase
        self._state.phase = phase
        order = self._state.active_order
        logger.info(
            "Order %s: %s -> %s",
            order.order_id if order else "-",
            previous.value,
            phase.value,
        )
        self._notify()

    def _notify(self) -> None:
        snapshot = self.state
        for listener in self._listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener %r failed", listener)
