# backend/booking_engine/services/booking_policy_validator.py
"""Schedule and occupancy rules applied before a booking is created or moved."""

from datetime import date, datetime, timedelta
import logging
from typing import Optional

from booking_engine.core.enums import SpaceType
from booking_engine.core.exceptions import CapacityExceededException, OutOfPolicyWindowException
from booking_engine.domain.time_slot import TimeInterval, TimeOfDay, to_timezone

from .base import BaseService

logger = logging.getLogger(__name__)


class BookingPolicyValidator(BaseService):
    """Rejects requests that fall outside the configured booking windows."""

    def parse_interval(self, start_time: str, end_time: str) -> TimeInterval:
        try:
            start = TimeOfDay.parse(start_time)
            end = TimeOfDay.parse(end_time)
        except ValueError as exc:
            raise OutOfPolicyWindowException(
                str(exc),
                reason="invalid_time_format",
                details={"start_time": start_time, "end_time": end_time},
            ) from exc
        if start >= end:
            raise OutOfPolicyWindowException(
                "End time must be after start time",
                reason="inverted_interval",
                details={"start_time": start_time, "end_time": end_time},
            )
        return TimeInterval(start, end)

    def validate_request(
        self,
        space_type: SpaceType,
        booking_date: date,
        start_time: str,
        end_time: str,
        capacity: int,
        now: Optional[datetime] = None,
    ) -> TimeInterval:
        """
        Check a requested slot against every scheduling rule.

        Returns:
            The parsed interval

        Raises:
            OutOfPolicyWindowException: time, date, day or duration rule broken
            CapacityExceededException: capacity above the space's maximum
        """
        interval = self.parse_interval(start_time, end_time)
        self.validate_schedule(booking_date, interval, now=now)
        self.validate_capacity(space_type, capacity)
        return interval

    def validate_schedule(
        self,
        booking_date: date,
        interval: TimeInterval,
        now: Optional[datetime] = None,
    ) -> None:
        policy = self.policy
        local_now = to_timezone(now or self.now(), self.tz_name)
        today = local_now.date()

        if booking_date < today:
            raise OutOfPolicyWindowException(
                "Cannot book dates in the past",
                reason="past_date",
                details={"booking_date": booking_date.isoformat(), "today": today.isoformat()},
            )
        if booking_date == today and interval.start <= TimeOfDay.from_time(local_now.time()):
            raise OutOfPolicyWindowException(
                "Start time has already passed",
                reason="past_date",
                details={"booking_date": booking_date.isoformat(), "start_time": str(interval.start)},
            )

        latest = today + timedelta(days=policy.advance_booking_days)
        if booking_date > latest:
            raise OutOfPolicyWindowException(
                f"Bookings can only be made {policy.advance_booking_days} days in advance",
                reason="date_too_far",
                details={"booking_date": booking_date.isoformat(), "latest_date": latest.isoformat()},
            )

        if not policy.is_operating_day(booking_date):
            raise OutOfPolicyWindowException(
                "Selected date is not an operating day",
                reason="non_operating_day",
                details={
                    "booking_date": booking_date.isoformat(),
                    "weekday": booking_date.weekday(),
                    "operating_days": sorted(policy.operating_days),
                },
            )

        if not interval.within(policy.operating_hours):
            raise OutOfPolicyWindowException(
                f"Booking must be within operating hours ({policy.operating_hours})",
                reason="outside_operating_hours",
                details={"requested": str(interval), "operating_hours": str(policy.operating_hours)},
            )

        hours = interval.duration_minutes / 60
        if hours < policy.min_duration_hours or hours > policy.max_duration_hours:
            raise OutOfPolicyWindowException(
                f"Booking duration must be between {policy.min_duration_hours:g} "
                f"and {policy.max_duration_hours:g} hours",
                reason="invalid_duration",
                details={
                    "duration_hours": round(hours, 2),
                    "min_duration_hours": policy.min_duration_hours,
                    "max_duration_hours": policy.max_duration_hours,
                },
            )

    def validate_capacity(self, space_type: SpaceType, capacity: int) -> None:
        space = self.policy.space(space_type)
        if capacity > space.max_capacity:
            raise CapacityExceededException(
                f"Requested capacity ({capacity}) exceeds maximum ({space.max_capacity}) "
                f"for {space.name}",
                details={
                    "space_type": SpaceType(space_type).value,
                    "capacity_requested": capacity,
                    "max_capacity": space.max_capacity,
                },
                override_flag=None,
            )
