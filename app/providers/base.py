"""
Abstract payment provider session interface.

A session wraps one hosted payment UI for one order and surfaces the
provider's events through a uniform set of callbacks:

  on_ready()                          UI fully loaded; status polling may start
  on_completed(payload)               buyer finished; outcome still unverified
  on_provider_failed(code, text)      provider declared failure (e.g. declined)
  on_dismissed()                      buyer closed the UI without completing

The base class owns the once-only bookkeeping: open() at most once, each
event delivered at most once, nothing delivered after close(). Concrete
sessions only implement _launch() and _teardown().
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from app.engine.errors import ProviderError

logger = logging.getLogger("checkout_flow.provider")


@dataclass
class CheckoutOptions:
    """Everything the hosted widget needs to render a payment for one order."""

    key: str
    amount: int  # Smallest currency unit
    currency: str
    order_id: str
    name: str
    description: str
    prefill: dict[str, str] = field(default_factory=dict)
    theme_color: str = "#4C5FD5"

    def to_widget_options(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "amount": self.amount,
            "currency": self.currency,
            "name": self.name,
            "description": self.description,
            "order_id": self.order_id,
            "prefill": dict(self.prefill),
            "theme": {"color": self.theme_color},
        }


@dataclass
class SessionCallbacks:
    on_ready: Callable[[], None]
    on_completed: Callable[[dict[str, Any]], None]
    on_provider_failed: Callable[[str, str], None]
    on_dismissed: Callable[[], None]


@dataclass(frozen=True)
class SessionHandle:
    session_id: str
    order_id: str
    provider: str
    widget_options: dict[str, Any]


class PaymentProviderSession(ABC):
    """Abstract base class for hosted payment sessions."""

    def __init__(self) -> None:
        self._callbacks: Optional[SessionCallbacks] = None
        self._handle: Optional[SessionHandle] = None
        self._fired: set[str] = set()
        self._closed = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g. 'mock_provider')."""
        ...

    @property
    def handle(self) -> Optional[SessionHandle]:
        return self._handle

    @property
    def is_open(self) -> bool:
        return self._handle is not None and not self._closed

    def open(self, options: CheckoutOptions, callbacks: SessionCallbacks) -> SessionHandle:
        """
        Display the provider's payment UI for ``options.order_id``.

        Raises:
            ProviderError: If this session was already opened, or the
                provider could not be launched.
        """
        if self._handle is not None or self._closed:
            raise ProviderError("SESSION_ALREADY_OPENED", f"{self.name} session can only be opened once")

        self._callbacks = callbacks
        self._handle = SessionHandle(
            session_id=f"ps_{uuid.uuid4().hex[:16]}",
            order_id=options.order_id,
            provider=self.name,
            widget_options=options.to_widget_options(),
        )
        self._launch(options)
        logger.info("Opened %s session %s for order %s", self.name, self._handle.session_id, options.order_id)
        return self._handle

    def close(self) -> None:
        """Tear down the UI and any timers the session owns. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._teardown()
        if self._handle is not None:
            logger.debug("Closed %s session %s", self.name, self._handle.session_id)

    @abstractmethod
    def _launch(self, options: CheckoutOptions) -> None:
        """Show the provider UI. Raise ProviderError if it cannot be shown."""
        ...

    @abstractmethod
    def _teardown(self) -> None:
        ...

    def _deliver(self, event: str) -> Optional[SessionCallbacks]:
        """Return the callbacks if ``event`` may still be delivered, else None."""
        if self._callbacks is None or self._closed:
            logger.debug("Dropping %s event on inactive %s session", event, self.name)
            return None
        if event in self._fired:
            logger.debug("Dropping duplicate %s event on %s session", event, self.name)
            return None
        self._fired.add(event)
        return self._callbacks

    def _emit_ready(self) -> None:
        callbacks = self._deliver("ready")
        if callbacks:
            callbacks.on_ready()

    def _emit_completed(self, payload: dict[str, Any]) -> None:
        callbacks = self._deliver("completed")
        if callbacks:
            callbacks.on_completed(payload)

    def _emit_failed(self, code: str, description: str) -> None:
        callbacks = self._deliver("failed")
        if callbacks:
            callbacks.on_provider_failed(code, description)

    def _emit_dismissed(self) -> None:
        callbacks = self._deliver("dismissed")
        if callbacks:
            callbacks.on_dismissed()
