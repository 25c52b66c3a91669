# backend/booking_engine/services/capacity_allocator.py
"""
Capacity Allocator Service

Answers "is there room for N more people in this space for this interval?"
by re-scanning the bookings that currently hold capacity. There is no
separate counter: a booking commits capacity simply by being in a
capacity-holding status, so this read is advisory unless the caller holds
the space/day capacity lock while it acts on the answer.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
import logging
from typing import Any, Dict, List, Optional

from booking_engine.core.enums import AvailabilityStatus, SpaceType
from booking_engine.domain.time_slot import TimeInterval
from booking_engine.repositories.booking_repository import BookingRepository
from booking_engine.schemas.booking import Booking

from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    remaining_capacity: int
    max_capacity: int
    committed_capacity: int
    capacity_requested: int
    conflicting_bookings: List[Dict[str, Any]] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "available": self.available,
            "remaining_capacity": self.remaining_capacity,
            "max_capacity": self.max_capacity,
            "committed_capacity": self.committed_capacity,
            "capacity_requested": self.capacity_requested,
            "conflicting_bookings": list(self.conflicting_bookings),
        }


def _conflict_summary(booking: Booking) -> Dict[str, Any]:
    return {
        "booking_id": booking.id,
        "booking_number": booking.booking_number,
        "start_time": str(booking.start_time),
        "end_time": str(booking.end_time),
        "capacity_requested": booking.capacity_requested,
        "status": booking.status.value,
    }


def peak_occupancy(bookings: List[Booking]) -> int:
    """Largest headcount present at any single moment across bookings."""
    edges: List[tuple] = []
    for booking in bookings:
        edges.append((booking.start_time.minutes, booking.capacity_requested))
        edges.append((booking.end_time.minutes, -booking.capacity_requested))
    # Releases sort before reservations at the same minute: intervals are half-open.
    edges.sort(key=lambda edge: (edge[0], edge[1]))
    current = peak = 0
    for _, delta in edges:
        current += delta
        peak = max(peak, current)
    return peak


class CapacityAllocator(BaseService):
    """Derives remaining capacity from overlapping capacity-holding bookings."""

    def __init__(self, repository: BookingRepository, **kwargs: Any):
        super().__init__(**kwargs)
        self.repository = repository

    @BaseService.measure_operation("check_availability")
    def check_availability(
        self,
        space_type: SpaceType,
        booking_date: date,
        interval: TimeInterval,
        capacity_needed: int,
        exclude_booking_id: Optional[str] = None,
    ) -> AvailabilityResult:
        """
        Check whether capacity_needed more people fit in the interval.

        Args:
            space_type: Space being requested
            booking_date: Day of the booking
            interval: Half-open requested interval
            capacity_needed: Headcount to place
            exclude_booking_id: Booking being updated; never counts against itself

        Returns:
            AvailabilityResult with the numbers behind the decision
        """
        max_capacity = self.policy.space(space_type).max_capacity
        holders = self.repository.find_capacity_holders(
            space_type, booking_date, exclude_booking_id=exclude_booking_id
        )
        conflicting = [
            booking
            for booking in holders
            if booking.id != exclude_booking_id and booking.interval.overlaps(interval)
        ]
        committed = sum(booking.capacity_requested for booking in conflicting)
        remaining = max_capacity - committed
        available = capacity_needed <= remaining

        if not available:
            self.logger.info(
                "capacity_unavailable",
                extra={
                    "space_type": SpaceType(space_type).value,
                    "booking_date": booking_date.isoformat(),
                    "interval": str(interval),
                    "capacity_needed": capacity_needed,
                    "remaining_capacity": remaining,
                },
            )

        return AvailabilityResult(
            available=available,
            remaining_capacity=remaining,
            max_capacity=max_capacity,
            committed_capacity=committed,
            capacity_requested=capacity_needed,
            conflicting_bookings=[_conflict_summary(booking) for booking in conflicting],
        )

    @BaseService.measure_operation("space_calendar")
    def space_calendar(
        self,
        space_type: SpaceType,
        start_date: date,
        end_date: date,
    ) -> List[Dict[str, Any]]:
        """
        Per-day occupancy summary for a space between two dates inclusive.

        Committed capacity is the peak headcount of capacity-holding
        bookings at any moment of the day.
        """
        if end_date < start_date:
            raise ValueError("end_date must not be before start_date")

        max_capacity = self.policy.space(space_type).max_capacity
        bookings = self.repository.list_for_space(space_type, start_date, end_date)
        by_day: Dict[date, List[Booking]] = {}
        for booking in bookings:
            by_day.setdefault(booking.booking_date, []).append(booking)

        days: List[Dict[str, Any]] = []
        current = start_date
        while current <= end_date:
            day_bookings = by_day.get(current, [])
            holders = [booking for booking in day_bookings if booking.holds_capacity]
            peak = peak_occupancy(holders)
            if not self.policy.is_operating_day(current):
                status = AvailabilityStatus.CLOSED
            elif peak >= max_capacity:
                status = AvailabilityStatus.FULLY_BOOKED
            elif peak > 0:
                status = AvailabilityStatus.PARTIALLY_BOOKED
            else:
                status = AvailabilityStatus.AVAILABLE
            days.append(
                {
                    "date": current.isoformat(),
                    "is_operating_day": self.policy.is_operating_day(current),
                    "max_capacity": max_capacity,
                    "committed_capacity": peak,
                    "available_capacity": max(0, max_capacity - peak),
                    "availability_status": status.value,
                    "bookings": [booking.summary() for booking in day_bookings],
                }
            )
            current += timedelta(days=1)
        return days
