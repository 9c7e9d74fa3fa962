"""
In-process registry of checkouts driven through the HTTP API.

Checkouts are held in memory and dropped again in two ways, both checked
whenever a new checkout is created:

  - expiry: a checkout nobody has read for ``ttl_s`` seconds is closed and
    removed, unless a ledger call is running for it (creating/verifying)
  - capacity: at ``max_checkouts``, the least recently read idle or
    finished checkouts make room; if every checkout still has a payment
    in progress, creation is refused with RegistryFullError
"""

import logging
import time
import uuid
from typing import Callable, Optional

from app.audit.logger import FlowAuditTrail
from app.config import settings
from app.engine.coordinator import FlowPolicy, PaymentFlowCoordinator
from app.engine.errors import RegistryFullError
from app.ledger.client import OrderLedgerClient
from app.models.enums import CoordinatorPhase
from app.providers.hosted_widget import HostedWidgetSession

logger = logging.getLogger("checkout_flow.registry")

MID_CALL = (CoordinatorPhase.CREATING, CoordinatorPhase.VERIFYING)
SETTLED = (CoordinatorPhase.IDLE, CoordinatorPhase.SUCCEEDED, CoordinatorPhase.FAILED)


class CheckoutRegistry:
    """
    One coordinator per checkout id, each bound to browser-hosted widget
    sessions. The ledger client is shared and owned by the caller.
    """

    def __init__(
        self,
        ledger: OrderLedgerClient,
        policy: Optional[FlowPolicy] = None,
        audit: Optional[FlowAuditTrail] = None,
        *,
        ttl_s: Optional[float] = None,
        max_checkouts: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ledger = ledger
        self._policy = policy
        self._audit = audit
        self._ttl_s = ttl_s if ttl_s is not None else settings.checkout_ttl_s
        self._max_checkouts = max_checkouts if max_checkouts is not None else settings.max_checkouts
        self._clock = clock
        self._checkouts: dict[str, PaymentFlowCoordinator] = {}
        self._last_seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._checkouts)

    async def create(self) -> tuple[str, PaymentFlowCoordinator]:
        """
        Register a new checkout.

        Raises:
            RegistryFullError: The registry is at capacity and nothing can be dropped.
        """
        await self.cleanup_expired()
        if len(self._checkouts) >= self._max_checkouts:
            await self._evict_settled(len(self._checkouts) - self._max_checkouts + 1)
        if len(self._checkouts) >= self._max_checkouts:
            raise RegistryFullError(f"{len(self._checkouts)} checkouts have a payment in progress")

        checkout_id = f"co_{uuid.uuid4().hex[:16]}"
        coordinator = PaymentFlowCoordinator(
            self._ledger,
            HostedWidgetSession,
            self._policy,
            audit=self._audit,
        )
        self._checkouts[checkout_id] = coordinator
        self._last_seen[checkout_id] = self._clock()
        logger.info("Checkout %s created", checkout_id)
        return checkout_id, coordinator

    def get(self, checkout_id: str) -> Optional[PaymentFlowCoordinator]:
        coordinator = self._checkouts.get(checkout_id)
        if coordinator is not None:
            self._last_seen[checkout_id] = self._clock()
        return coordinator

    async def cleanup_expired(self) -> int:
        """Remove checkouts unread for ``ttl_s``. Returns count of removed checkouts."""
        now = self._clock()
        expired = [
            checkout_id
            for checkout_id, seen in self._last_seen.items()
            if now - seen >= self._ttl_s and self._checkouts[checkout_id].phase not in MID_CALL
        ]
        for checkout_id in expired:
            await self._remove(checkout_id, "expired")
        return len(expired)

    async def _evict_settled(self, count: int) -> None:
        candidates = sorted(
            (seen, checkout_id)
            for checkout_id, seen in self._last_seen.items()
            if self._checkouts[checkout_id].phase in SETTLED
        )
        for _, checkout_id in candidates[:count]:
            await self._remove(checkout_id, "evicted at capacity")

    async def _remove(self, checkout_id: str, reason: str) -> None:
        coordinator = self._checkouts.pop(checkout_id, None)
        self._last_seen.pop(checkout_id, None)
        if coordinator is None:
            return
        logger.info("Checkout %s %s (phase %s)", checkout_id, reason, coordinator.phase.value)
        await coordinator.aclose()

    async def aclose(self) -> None:
        for coordinator in self._checkouts.values():
            await coordinator.aclose()
        self._checkouts.clear()
        self._last_seen.clear()
