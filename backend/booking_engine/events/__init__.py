"""Side-effect intents emitted by booking operations."""

from booking_engine.events.booking_intents import (
    ChargeCustomer,
    IssueRefund,
    Notify,
    ReleaseCapacity,
    ReserveCapacity,
    SideEffectIntent,
)

__all__ = [
    "ChargeCustomer",
    "IssueRefund",
    "Notify",
    "ReleaseCapacity",
    "ReserveCapacity",
    "SideEffectIntent",
]
