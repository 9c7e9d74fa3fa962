"""
Exponential backoff retry logic for ledger calls.

Retries on transient failures (transport errors, 429 rate limits,
502/503/504) with exponential backoff and a bounded number of attempts.
Rejections the ledger means (success=false, 4xx) are not retried.

Only safe-to-repeat calls go through here: reporting a failure twice is
harmless to the ledger, creating an order twice is not.
"""

import asyncio
import logging
from typing import Any, Callable

from app.engine.errors import LedgerError

logger = logging.getLogger("checkout_flow.retry")

MAX_RETRIES = 2
BASE_DELAY = 1.0
MAX_DELAY = 30.0


async def with_retry(
    func: Callable[..., Any],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function with exponential backoff on retriable errors.

    Args:
        func: Async callable to execute.
        max_retries: Maximum number of retry attempts.
        base_delay: Seconds to wait before the first retry; doubles each time.

    Returns:
        The result of the function call.

    Raises:
        LedgerError: On non-retriable failure or exhausted retries.
    """
    delay = base_delay
    last_error = None

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except LedgerError as e:
            last_error = e
            if not e.retriable:
                raise

            if attempt < max_retries:
                sleep_for = min(delay, MAX_DELAY)
                logger.warning(
                    "Retriable error on attempt %d/%d: %s - sleeping %.1fs",
                    attempt + 1,
                    max_retries + 1,
                    e,
                    sleep_for,
                )
                await asyncio.sleep(sleep_for)
                delay = min(delay * 2, MAX_DELAY)
            else:
                logger.error("Exhausted %d retries for ledger call: %s", max_retries, e)
                raise

    raise last_error or LedgerError("Unknown error after retries")
