"""Enumerations for the checkout flow domain model."""

from enum import Enum


class CoordinatorPhase(str, Enum):
    """Lifecycle phases of the payment-flow coordinator."""

    IDLE = "idle"
    CREATING = "creating"
    AWAITING_PAYMENT = "awaiting_payment"
    VERIFYING = "verifying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CoordinatorPhase.SUCCEEDED, CoordinatorPhase.FAILED)


class OrderStatus(str, Enum):
    """Order status as reported by the ledger service."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class FailureCode(str, Enum):
    """Reason codes reported to the ledger when a flow fails."""

    PAYMENT_CANCELLED = "PAYMENT_CANCELLED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    PAYMENT_INCONCLUSIVE = "PAYMENT_INCONCLUSIVE"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    SESSION_OPEN_FAILED = "SESSION_OPEN_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ValidationReason(str, Enum):
    """Categorized reasons for refusing a checkout submission."""

    MISSING_NAME = "missing_name"
    MISSING_EMAIL = "missing_email"
    MISSING_PHONE = "missing_phone"
    INVALID_AMOUNT = "invalid_amount"
