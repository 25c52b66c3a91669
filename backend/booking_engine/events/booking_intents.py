"""
Side-effect intents.

The engine never talks to a payment gateway or notification channel. Each
operation returns these records; the caller executes them after the booking
snapshot has been persisted.
"""
from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, Union

from booking_engine.core.enums import IntentType, NotificationTemplate, SpaceType


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


@dataclass(frozen=True)
class IssueRefund:
    """Return money to the customer."""

    user_id: str
    amount: int
    currency: str
    reference: str  # booking number
    booking_id: str
    reason: str

    intent_type = IntentType.ISSUE_REFUND

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.intent_type.value, **_plain(asdict(self))}


@dataclass(frozen=True)
class ChargeCustomer:
    """Collect an additional amount (overtime, damage, reprice delta)."""

    user_id: str
    amount: int
    currency: str
    reference: str
    booking_id: str
    reason: str

    intent_type = IntentType.CHARGE_CUSTOMER

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.intent_type.value, **_plain(asdict(self))}


@dataclass(frozen=True)
class ReserveCapacity:
    """Capacity the booking now holds for its interval."""

    booking_id: str
    space_type: SpaceType
    booking_date: date
    start_time: str
    end_time: str
    amount: int

    intent_type = IntentType.RESERVE_CAPACITY

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.intent_type.value, **_plain(asdict(self))}


@dataclass(frozen=True)
class ReleaseCapacity:
    """Capacity the booking no longer holds."""

    booking_id: str
    space_type: SpaceType
    booking_date: date
    start_time: str
    end_time: str
    amount: int

    intent_type = IntentType.RELEASE_CAPACITY

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.intent_type.value, **_plain(asdict(self))}


@dataclass(frozen=True)
class Notify:
    template: NotificationTemplate
    recipient: str
    payload: Dict[str, Any] = field(default_factory=dict)

    intent_type = IntentType.NOTIFY

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.intent_type.value, **_plain(asdict(self))}


SideEffectIntent = Union[IssueRefund, ChargeCustomer, ReserveCapacity, ReleaseCapacity, Notify]
