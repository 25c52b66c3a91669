# backend/booking_engine/schemas/results.py
"""Structured outcome returned by every BookingService operation."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Optional, Sequence

from booking_engine.core.enums import ErrorKind
from booking_engine.core.exceptions import DomainException
from booking_engine.events.booking_intents import SideEffectIntent

from .booking import Booking

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationResult:
    ok: bool
    booking: Optional[Booking] = None
    error_kind: Optional[ErrorKind] = None
    error_detail: Dict[str, Any] = field(default_factory=dict)
    side_effect_intents: Sequence[SideEffectIntent] = ()
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(
        cls,
        booking: Optional[Booking] = None,
        intents: Sequence[SideEffectIntent] = (),
        **data: Any,
    ) -> "OperationResult":
        return cls(ok=True, booking=booking, side_effect_intents=tuple(intents), data=data)

    @classmethod
    def failure(cls, exc: DomainException) -> "OperationResult":
        return cls(ok=False, error_kind=exc.kind, error_detail=exc.to_error_detail())

    @property
    def reason_code(self) -> Optional[str]:
        """Policy reason (e.g. past_date) when there is one, else the error code."""
        if self.ok:
            return None
        details = self.error_detail.get("details") or {}
        return details.get("reason") or self.error_detail.get("code")

    @property
    def override_flag(self) -> Optional[str]:
        return self.error_detail.get("override_flag")

    def intents_of(self, intent_cls: type) -> List[SideEffectIntent]:
        return [intent for intent in self.side_effect_intents if isinstance(intent, intent_cls)]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "booking": self.booking.model_dump(mode="json") if self.booking else None,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error_detail": dict(self.error_detail),
            "side_effect_intents": [intent.to_dict() for intent in self.side_effect_intents],
            "data": self.data,
        }
