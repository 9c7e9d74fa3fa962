"""SQLAlchemy models for the checkout flow audit trail."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FlowEvent(Base):
    """
    Immutable audit trail entry.

    Every coordinator transition (order created, polling started, payment
    verified, failure reported, late signal discarded) gets an entry. Orders
    themselves are owned by the ledger service; these rows only record what
    this flow observed and decided. Append-only, never modified.
    """

    __tablename__ = "flow_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(100), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)
