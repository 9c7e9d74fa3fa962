"""In-memory domain objects for a single checkout attempt."""

from dataclasses import dataclass
from typing import Optional

from app.models.enums import CoordinatorPhase


@dataclass(frozen=True)
class Buyer:
    """Billing details entered by the buyer."""

    name: str
    email: str
    phone: str

    def prefill(self) -> dict[str, str]:
        """Provider prefill block (the widget calls the phone number "contact")."""
        return {"name": self.name, "email": self.email, "contact": self.phone}


@dataclass(frozen=True)
class Order:
    """
    One purchase attempt, as issued by the ledger service.

    Immutable once created: the ledger owns its status, the coordinator
    only observes it.
    """

    order_id: str
    amount: int  # Smallest currency unit, as returned by the ledger
    currency: str
    buyer: Buyer


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    message: str = ""


@dataclass
class CoordinatorState:
    """The coordinator's own view of the flow, distinct from ledger status."""

    phase: CoordinatorPhase = CoordinatorPhase.IDLE
    active_order: Optional[Order] = None
    poll_attempts: int = 0
    failure_code: Optional[str] = None
    failure_description: Optional[str] = None
    notice: Optional[str] = None  # Blocking message for the presentation layer
    confirmation_url: Optional[str] = None
