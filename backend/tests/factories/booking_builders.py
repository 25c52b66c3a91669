"""Builders for booking snapshots and requests used across the unit tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict

from booking_engine.core.enums import BookingStatus, PaymentStatus, SpaceType
from booking_engine.core.ulid_helper import generate_booking_number, generate_ulid
from booking_engine.domain.time_slot import TimeInterval, TimeOfDay
from booking_engine.schemas.booking import Booking
from booking_engine.schemas.booking_requests import CreateBookingRequest

# Monday 2026-06-01 08:00 UTC. Tests run the engine in UTC so booking
# times and the clock line up without offsets.
FROZEN_NOW = datetime(2026, 6, 1, 8, 0, tzinfo=timezone.utc)
MONDAY = date(2026, 6, 1)
WEDNESDAY = date(2026, 6, 3)
SATURDAY = date(2026, 6, 6)
SUNDAY = date(2026, 6, 7)


class FrozenClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime = FROZEN_NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current

    def set(self, moment: datetime) -> datetime:
        self.current = moment
        return self.current


def make_booking(
    *,
    status: BookingStatus = BookingStatus.CONFIRMED,
    space_type: SpaceType = SpaceType.MEETING_ROOM,
    booking_date: date = WEDNESDAY,
    start: str = "10:00",
    end: str = "12:00",
    capacity: int = 2,
    total_price: int = 60000,
    hourly_rate: int = 30000,
    payment_status: PaymentStatus = PaymentStatus.PAID,
    **overrides: Any,
) -> Booking:
    """Booking snapshot built directly, bypassing the service."""
    interval = TimeInterval.parse(start, end)
    fields: Dict[str, Any] = {
        "id": generate_ulid(),
        "booking_number": generate_booking_number(FROZEN_NOW),
        "user_id": "user-1",
        "space_type": space_type,
        "space_name": "Meeting Room",
        "booking_date": booking_date,
        "start_time": interval.start,
        "end_time": interval.end,
        "duration_hours": interval.duration_hours,
        "capacity_requested": capacity,
        "status": status,
        "payment_status": payment_status,
        "hourly_rate": hourly_rate,
        "base_price": total_price,
        "total_price": total_price,
        "customer_name": "Sara Ahmadi",
        "customer_email": "sara@example.com",
        "created_at": FROZEN_NOW,
        "updated_at": FROZEN_NOW,
        "version": 1,
    }
    fields.update(overrides)
    return Booking(**fields)


def create_request(**overrides: Any) -> CreateBookingRequest:
    fields: Dict[str, Any] = {
        "user_id": "user-1",
        "space_type": SpaceType.MEETING_ROOM,
        "booking_date": WEDNESDAY,
        "start_time": "10:00",
        "end_time": "12:00",
        "capacity_requested": 2,
        "customer_name": "Sara Ahmadi",
        "customer_email": "sara@example.com",
    }
    fields.update(overrides)
    return CreateBookingRequest(**fields)


def at(day: date, hhmm: str, *, seconds: int = 0) -> datetime:
    """UTC datetime for a booking day and wall-clock time."""
    moment = TimeOfDay.parse(hhmm)
    return datetime(day.year, day.month, day.day, moment.hour, moment.minute, seconds, tzinfo=timezone.utc)

