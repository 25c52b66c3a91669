# backend/booking_engine/domain/time_slot.py
"""
Time-slot value types.

Start and end times travel as "HH:MM" strings at the edges but are held as
minutes since midnight internally, so interval comparisons are numeric and
never lexicographic. Intervals are half-open: [start, end).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
import re
from typing import Any

from pydantic_core import core_schema
import pytz

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """Wall-clock time of day with minute granularity."""

    minutes: int

    def __post_init__(self) -> None:
        if not 0 <= self.minutes < MINUTES_PER_DAY:
            raise ValueError(f"Time of day out of range: {self.minutes} minutes")

    @classmethod
    def parse(cls, value: str) -> "TimeOfDay":
        """Parse an "HH:MM" string. Single-digit hours are accepted."""
        if not isinstance(value, str):
            raise ValueError(f"Expected an HH:MM string, got {type(value).__name__}")
        match = _TIME_PATTERN.match(value.strip())
        if not match:
            raise ValueError(f"Invalid time format: {value!r} (expected HH:MM)")
        return cls(int(match.group(1)) * 60 + int(match.group(2)))

    @classmethod
    def from_time(cls, value: time) -> "TimeOfDay":
        return cls(value.hour * 60 + value.minute)

    @property
    def hour(self) -> int:
        return self.minutes // 60

    @property
    def minute(self) -> int:
        return self.minutes % 60

    def to_time(self) -> time:
        return time(self.hour, self.minute)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        def validate_time_of_day(value: Any) -> "TimeOfDay":
            if isinstance(value, cls):
                return value
            if isinstance(value, time):
                return cls.from_time(value)
            if isinstance(value, str):
                return cls.parse(value)
            raise ValueError(f"Cannot convert {type(value)} to TimeOfDay")

        return core_schema.no_info_plain_validator_function(
            validate_time_of_day,
            serialization=core_schema.plain_serializer_function_ser_schema(
                str,
                info_arg=False,
                return_schema=core_schema.str_schema(),
            ),
        )


@dataclass(frozen=True)
class TimeInterval:
    """Half-open interval [start, end) within a single day."""

    start: TimeOfDay
    end: TimeOfDay

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(f"Interval start {self.start} must be before end {self.end}")

    @classmethod
    def parse(cls, start: str, end: str) -> "TimeInterval":
        return cls(TimeOfDay.parse(start), TimeOfDay.parse(end))

    def overlaps(self, other: "TimeInterval") -> bool:
        # Touching intervals (10:00-11:00 and 11:00-12:00) do not overlap.
        return self.start < other.end and other.start < self.end

    def contains(self, moment: TimeOfDay) -> bool:
        return self.start <= moment < self.end

    def within(self, other: "TimeInterval") -> bool:
        return other.start <= self.start and self.end <= other.end

    @property
    def duration_minutes(self) -> int:
        return self.end.minutes - self.start.minutes

    @property
    def duration_hours(self) -> Decimal:
        return (Decimal(self.duration_minutes) / Decimal(60)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


def localize(booking_date: date, moment: TimeOfDay, tz_name: str) -> datetime:
    """Combine a booking date and time of day into an aware datetime."""
    tz = pytz.timezone(tz_name)
    return tz.localize(datetime.combine(booking_date, moment.to_time()))


def to_timezone(value: datetime, tz_name: str) -> datetime:
    """Normalise an aware datetime into tz_name; naive values are treated as UTC."""
    tz = pytz.timezone(tz_name)
    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return value.astimezone(tz)


def hours_between(start: datetime, end: datetime) -> float:
    """Signed number of hours from start to end."""
    return (end - start).total_seconds() / 3600


def minutes_between(start: datetime, end: datetime) -> float:
    """Signed number of minutes from start to end."""
    return (end - start).total_seconds() / 60
