# backend/booking_engine/schemas/booking.py
"""
Booking snapshot.

A Booking is the full state of one reservation. The engine never mutates a
stored snapshot in place: each operation works on a deep copy and the copy
is only persisted once every guard has passed, so a failed operation leaves
no trace.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import Field

from booking_engine.core.enums import (
    BookingStatus,
    CheckInTiming,
    CheckoutTiming,
    PaymentStatus,
    SpaceType,
)
from booking_engine.domain.time_slot import TimeInterval, TimeOfDay, localize

from ._strict_base import StrictModel


class AuditEntry(StrictModel):
    """One append-only line of a booking's history."""

    timestamp: datetime
    actor: str
    action: str
    message: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)

    def render(self) -> str:
        line = f"[{self.timestamp.isoformat()}] {self.action.upper()} by {self.actor}"
        return f"{line}: {self.message}" if self.message else line


class Booking(StrictModel):
    # Identity
    id: str
    booking_number: str
    user_id: str

    # Resource
    space_type: SpaceType
    space_name: str
    space_location: Optional[str] = None

    # Schedule
    booking_date: date
    start_time: TimeOfDay
    end_time: TimeOfDay
    duration_hours: Decimal

    # Occupancy
    capacity_requested: int = Field(ge=1)
    actual_attendee_count: Optional[int] = None

    # Status
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_due_at: Optional[datetime] = None

    # Pricing
    hourly_rate: int = 0
    base_price: int = 0
    additional_services_cost: int = 0
    discount_amount: int = 0
    total_price: int = 0
    currency: str = "IRR"

    # Post-lifecycle financials
    cancellation_fee: int = 0
    refund_amount: int = 0
    overtime_charges: int = 0
    damage_charges: int = 0
    cleaning_charges: int = 0
    additional_charges: int = 0
    early_checkout_refund: int = 0
    net_additional_amount: int = 0

    # Customer
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    purpose: Optional[str] = None
    special_requirements: Optional[str] = None
    catering_required: bool = False

    # Lifecycle stamps
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancellation_category: Optional[str] = None
    rejection_reason: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[str] = None
    check_in_timing: Optional[CheckInTiming] = None
    verification_method: Optional[str] = None
    verification_id: Optional[str] = None
    checkin_location: Optional[str] = None
    checked_out_at: Optional[datetime] = None
    checked_out_by: Optional[str] = None
    checkout_timing: Optional[CheckoutTiming] = None
    actual_duration_hours: Optional[Decimal] = None
    customer_rating: Optional[int] = Field(default=None, ge=1, le=5)
    customer_feedback: Optional[str] = None

    # Audit
    created_at: datetime
    updated_at: datetime
    last_updated_by: Optional[str] = None
    audit_trail: List[AuditEntry] = Field(default_factory=list)
    internal_notes: List[AuditEntry] = Field(default_factory=list)
    version: int = 0

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start_time, self.end_time)

    @property
    def holds_capacity(self) -> bool:
        return self.status.holds_capacity

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def start_datetime(self, tz_name: str) -> datetime:
        return localize(self.booking_date, self.start_time, tz_name)

    def end_datetime(self, tz_name: str) -> datetime:
        return localize(self.booking_date, self.end_time, tz_name)

    def record(
        self,
        actor: str,
        action: str,
        at: datetime,
        message: str = "",
        **details: Any,
    ) -> AuditEntry:
        """Append an audit entry and stamp the update metadata."""
        entry = AuditEntry(timestamp=at, actor=actor, action=action, message=message, details=details)
        self.audit_trail = [*self.audit_trail, entry]
        self.updated_at = at
        self.last_updated_by = actor
        return entry

    def add_internal_note(self, actor: str, at: datetime, message: str, action: str = "note") -> None:
        entry = AuditEntry(timestamp=at, actor=actor, action=action, message=message)
        self.internal_notes = [*self.internal_notes, entry]

    def render_audit_trail(self) -> str:
        """Newline-delimited text rendering of the audit trail."""
        return "\n".join(entry.render() for entry in self.audit_trail)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "booking_number": self.booking_number,
            "status": self.status.value,
            "space_type": self.space_type.value,
            "booking_date": self.booking_date.isoformat(),
            "start_time": str(self.start_time),
            "end_time": str(self.end_time),
            "capacity_requested": self.capacity_requested,
        }
