from app.models.audit import Base, FlowEvent
from app.models.enums import CoordinatorPhase, FailureCode, OrderStatus, ValidationReason
from app.models.order import Buyer, CoordinatorState, Order, VerificationResult

__all__ = [
    "Base",
    "FlowEvent",
    "Buyer",
    "Order",
    "CoordinatorState",
    "VerificationResult",
    "CoordinatorPhase",
    "FailureCode",
    "OrderStatus",
    "ValidationReason",
]
