"""
Error taxonomy for the checkout flow.

Ledger errors split into transport failures (the service could not be
reached or timed out) and rejections (the service answered, but with
success=false, a non-2xx status or a body we could not parse). Buyer
cancellation and poll timeout are not raised: they end the flow as
failure codes on the coordinator state.
"""

from typing import Optional

RETRIABLE_STATUS_CODES = {429, 502, 503, 504}


class LedgerError(Exception):
    """Base exception for order-ledger errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, retriable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retriable = retriable


class LedgerUnreachable(LedgerError):
    """Transport failure or timeout talking to the ledger service."""

    def __init__(self, message: str):
        super().__init__(message, status_code=None, retriable=True)


class LedgerRejected(LedgerError):
    """The ledger answered but reported failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(
            message,
            status_code=status_code,
            retriable=status_code in RETRIABLE_STATUS_CODES,
        )


class ProviderError(Exception):
    """The payment provider session could not be opened or was misused."""

    def __init__(self, code: str, description: str = ""):
        super().__init__(f"{code}: {description}" if description else code)
        self.code = code
        self.description = description


class FlowBusyError(Exception):
    """An operation was requested while a payment is still in flight."""


class RegistryFullError(Exception):
    """No room for another checkout: every held checkout still has a payment in progress."""
