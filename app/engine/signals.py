"""Messages delivered to the coordinator's single transition function."""

from dataclasses import dataclass, field
from typing import Any

from app.models.enums import OrderStatus


@dataclass(frozen=True)
class Signal:
    order_id: str

    @property
    def kind(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class ProviderReady(Signal):
    pass


@dataclass(frozen=True)
class ProviderCompleted(Signal):
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderFailed(Signal):
    code: str = ""
    description: str = ""


@dataclass(frozen=True)
class ProviderDismissed(Signal):
    pass


@dataclass(frozen=True)
class PollResolved(Signal):
    status: OrderStatus = OrderStatus.PENDING


@dataclass(frozen=True)
class PollTimedOut(Signal):
    pass
