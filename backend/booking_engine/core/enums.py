# backend/booking_engine/core/enums.py
"""
Core enums for the booking engine.

This module contains enumeration types used throughout the engine
for type safety and consistency. Values are the wire strings used in
payloads and persisted snapshots.
"""

from enum import Enum


class SpaceType(str, Enum):
    """Bookable space kinds. Capacity and pricing come from BookingPolicy."""

    PRIVATE_OFFICE = "private_office"
    SHARED_DESK = "shared_desk"
    MEETING_ROOM = "meeting_room"
    WORKSHOP_SPACE = "workshop_space"
    CONFERENCE_ROOM = "conference_room"
    STUDIO = "studio"


class RateUnit(str, Enum):
    HOUR = "hour"
    DAY = "day"


class BookingStatus(str, Enum):
    """
    Booking lifecycle statuses.

    pending -> confirmed -> checked_in -> completed, with cancelled,
    rejected and no_show as the alternative terminal states.
    """

    PENDING = "pending"  # Awaiting operator approval
    CONFIRMED = "confirmed"  # Approved, holds capacity
    CHECKED_IN = "checked_in"  # Customer on site, holds capacity
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    NO_SHOW = "no_show"

    @property
    def holds_capacity(self) -> bool:
        return self in CAPACITY_HOLDING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


CAPACITY_HOLDING_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN})

TERMINAL_STATUSES = frozenset(
    {
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
        BookingStatus.REJECTED,
        BookingStatus.NO_SHOW,
    }
)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"
    FAILED = "failed"


class RefundMode(str, Enum):
    """How the refund amount is chosen on cancel, reject or no-show."""

    AUTOMATIC = "automatic"  # Tiered by hours of notice
    FULL_REFUND = "full_refund"
    PARTIAL_REFUND = "partial_refund"  # Caller supplies a percentage
    CUSTOM_AMOUNT = "custom_amount"  # Caller supplies an amount, capped at total
    NO_REFUND = "no_refund"


class BookingEvent(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    MARK_NO_SHOW = "mark_no_show"


class ErrorKind(str, Enum):
    """Failure categories surfaced on OperationResult."""

    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    PAYMENT_NOT_CONFIRMED = "payment_not_confirmed"
    OUT_OF_POLICY_WINDOW = "out_of_policy_window"
    NEGATIVE_TOTAL = "negative_total"
    INVALID_REQUEST = "invalid_request"
    INFRASTRUCTURE_ERROR = "infrastructure_error"


class CheckInTiming(str, Enum):
    EARLY = "early"
    ON_TIME = "on_time"
    LATE = "late"
    VERY_LATE = "very_late"


class CheckoutTiming(str, Enum):
    EARLY = "early"
    ON_TIME = "on_time"
    OVERTIME = "overtime"
    EXTENDED = "extended"


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    PARTIALLY_BOOKED = "partially_booked"
    FULLY_BOOKED = "fully_booked"
    CLOSED = "closed"


class IntentType(str, Enum):
    """Side effects the engine asks external collaborators to perform."""

    ISSUE_REFUND = "issue_refund"
    CHARGE_CUSTOMER = "charge_customer"
    RESERVE_CAPACITY = "reserve_capacity"
    RELEASE_CAPACITY = "release_capacity"
    NOTIFY = "notify"


class NotificationTemplate(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_APPROVED = "booking_approved"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_CHECKED_IN = "booking_checked_in"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_NO_SHOW = "booking_no_show"
    BOOKING_MODIFIED = "booking_modified"
