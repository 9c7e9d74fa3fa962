"""
Billing-detail checks with categorized refusal reasons.

Before an order is created we verify:
  1. Name is present
  2. Email is present
  3. Phone is present
  4. Amount is a positive whole number

A failed check leaves the flow idle with a notice for the buyer; nothing
is sent to the ledger.
"""

from dataclasses import dataclass
from typing import Optional

from app.models.enums import ValidationReason
from app.models.order import Buyer

FILL_ALL_FIELDS = "Please fill all the fields"


@dataclass
class ValidationResult:
    """Result of a billing-detail check."""

    valid: bool
    reason: Optional[ValidationReason] = None
    message: str = ""


def check_billing_details(buyer: Buyer, amount: Optional[int]) -> ValidationResult:
    """
    Check whether a checkout submission may start a payment.

    Args:
        buyer: Name, email and phone entered in the billing form.
        amount: Amount to charge, in whole major currency units.

    Returns:
        ValidationResult indicating pass/fail with categorized reason.
    """
    if not (buyer.name or "").strip():
        return ValidationResult(False, ValidationReason.MISSING_NAME, FILL_ALL_FIELDS)

    if not (buyer.email or "").strip():
        return ValidationResult(False, ValidationReason.MISSING_EMAIL, FILL_ALL_FIELDS)

    if not (buyer.phone or "").strip():
        return ValidationResult(False, ValidationReason.MISSING_PHONE, FILL_ALL_FIELDS)

    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        return ValidationResult(False, ValidationReason.INVALID_AMOUNT, f"Invalid amount: {amount}")

    return ValidationResult(valid=True)
