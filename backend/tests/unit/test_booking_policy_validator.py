# backend/tests/unit/test_booking_policy_validator.py
"""
Unit tests for BookingPolicyValidator.

The clock is pinned to Monday 2026-06-01 08:00 UTC.
"""

from datetime import timedelta

import pytest

from booking_engine.core.enums import SpaceType
from booking_engine.core.exceptions import CapacityExceededException, OutOfPolicyWindowException
from booking_engine.services.booking_policy_validator import BookingPolicyValidator
from tests.factories.booking_builders import MONDAY, SATURDAY, SUNDAY, WEDNESDAY


@pytest.fixture
def validator(policy, clock):
    return BookingPolicyValidator(policy=policy, clock=clock, tz_name="UTC")


def _reason(exc_info) -> str:
    return exc_info.value.details["reason"]


class TestValidateRequest:
    """Each scheduling rule reports its own reason code."""

    def test_valid_request_returns_interval(self, validator):
        """A Wednesday 10:00-12:00 booking passes every rule."""
        interval = validator.validate_request(SpaceType.MEETING_ROOM, WEDNESDAY, "10:00", "12:00", 4)
        assert str(interval) == "10:00-12:00"

    def test_saturday_is_an_operating_day(self, validator):
        """Saturday is open (and discounted)."""
        validator.validate_request(SpaceType.MEETING_ROOM, SATURDAY, "10:00", "12:00", 1)

    @pytest.mark.parametrize(
        "start,end,reason",
        [
            ("25:00", "26:00", "invalid_time_format"),
            ("10:00", "ten", "invalid_time_format"),
            ("12:00", "10:00", "inverted_interval"),
            ("10:00", "10:00", "inverted_interval"),
            ("07:00", "09:00", "outside_operating_hours"),
            ("19:00", "20:30", "outside_operating_hours"),
            ("10:00", "10:30", "invalid_duration"),
        ],
    )
    def test_time_rules(self, validator, start, end, reason):
        """Malformed, inverted, out-of-hours and too-short slots are rejected."""
        with pytest.raises(OutOfPolicyWindowException) as exc_info:
            validator.validate_request(SpaceType.MEETING_ROOM, WEDNESDAY, start, end, 1)
        assert _reason(exc_info) == reason

    def test_past_date(self, validator):
        """Yesterday cannot be booked."""
        with pytest.raises(OutOfPolicyWindowException) as exc_info:
            validator.validate_request(
                SpaceType.MEETING_ROOM, MONDAY - timedelta(days=2), "10:00", "12:00", 1
            )
        assert _reason(exc_info) == "past_date"

    def test_today_after_start_has_passed(self, validator):
        """Today is bookable only for slots that have not started."""
        with pytest.raises(OutOfPolicyWindowException) as exc_info:
            validator.validate_request(SpaceType.MEETING_ROOM, MONDAY, "08:00", "09:00", 1)
        assert _reason(exc_info) == "past_date"
        validator.validate_request(SpaceType.MEETING_ROOM, MONDAY, "09:00", "10:00", 1)

    def test_date_too_far(self, validator):
        """More than 90 days ahead is rejected."""
        with pytest.raises(OutOfPolicyWindowException) as exc_info:
            validator.validate_request(
                SpaceType.MEETING_ROOM, MONDAY + timedelta(days=91), "10:00", "12:00", 1
            )
        assert _reason(exc_info) == "date_too_far"
        assert exc_info.value.override_flag is None

    def test_sunday_closed(self, validator):
        """Sunday is not an operating day."""
        with pytest.raises(OutOfPolicyWindowException) as exc_info:
            validator.validate_request(SpaceType.MEETING_ROOM, SUNDAY, "10:00", "12:00", 1)
        assert _reason(exc_info) == "non_operating_day"

    def test_maximum_duration(self, policy, clock):
        """Bookings longer than max_duration_hours are rejected."""
        short_policy = policy.model_copy(update={"max_duration_hours": 4})
        validator = BookingPolicyValidator(policy=short_policy, clock=clock, tz_name="UTC")
        with pytest.raises(OutOfPolicyWindowException) as exc_info:
            validator.validate_request(SpaceType.MEETING_ROOM, WEDNESDAY, "10:00", "15:00", 1)
        assert _reason(exc_info) == "invalid_duration"

    def test_capacity_above_space_maximum(self, validator):
        """13 people never fit a 12-person meeting room, override or not."""
        with pytest.raises(CapacityExceededException) as exc_info:
            validator.validate_request(SpaceType.MEETING_ROOM, WEDNESDAY, "10:00", "12:00", 13)
        assert exc_info.value.override_flag is None
        assert exc_info.value.details["max_capacity"] == 12

    def test_timezone_decides_today(self, clock, policy):
        """In Kolkata it is already 13:30, so a noon start today has passed."""
        validator = BookingPolicyValidator(policy=policy, clock=clock, tz_name="Asia/Kolkata")
        with pytest.raises(OutOfPolicyWindowException):
            validator.validate_request(SpaceType.MEETING_ROOM, MONDAY, "12:00", "14:00", 1)
