"""
Immutable audit trail for checkout flows.

Every coordinator transition gets an append-only entry with:
  - Order ID (which ledger order it concerns, if one exists yet)
  - Action (what happened)
  - Details (signal, reason codes, ledger messages)
  - Timestamp (UTC)

These records are never modified or deleted. They describe what this flow
saw and decided; the ledger remains the system of record for the order.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.audit import FlowEvent

logger = logging.getLogger("checkout_flow.audit")


async def log_event(
    session: AsyncSession,
    action: str,
    order_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> FlowEvent:
    """
    Create an immutable audit log entry.

    Args:
        session: Database session.
        action: What happened (e.g. "order_created", "payment_failed").
        order_id: The ledger order this event relates to.
        details: Arbitrary context (serialized to JSON).

    Returns:
        The created FlowEvent record.
    """
    entry = FlowEvent(
        order_id=order_id,
        action=action,
        details=json.dumps(details, default=str) if details else None,
        timestamp=datetime.now(timezone.utc),
    )
    session.add(entry)
    logger.info(
        "AUDIT | order=%s action=%s | %s",
        order_id or "-",
        action,
        json.dumps(details, default=str)[:200] if details else "",
    )
    return entry


class FlowAuditTrail:
    """Writes each audit entry in its own short transaction."""

    def __init__(self, sessions: Optional[async_sessionmaker] = None):
        self._sessions = sessions

    async def record(
        self,
        action: str,
        order_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        if self._sessions is None:
            logger.info("AUDIT | order=%s action=%s | %s", order_id or "-", action, details or "")
            return
        try:
            async with self._sessions() as session:
                await log_event(session, action, order_id=order_id, details=details)
                await session.commit()
        except SQLAlchemyError:
            # Audit failures never change the flow outcome.
            logger.exception("Failed to persist audit event %s for order %s", action, order_id)
