# backend/tests/unit/test_pricing_service.py
"""
Unit tests for PricingService.

Amounts are integers in the smallest currency unit; charges round up.
"""

from decimal import Decimal
from fractions import Fraction

from hypothesis import given, strategies as st
import pytest

from booking_engine.core.enums import SpaceType
from booking_engine.core.exceptions import NegativeTotalException
from booking_engine.domain.time_slot import TimeInterval
from booking_engine.services.pricing_service import PricingService
from tests.factories.booking_builders import MONDAY, SATURDAY, WEDNESDAY


@pytest.fixture
def pricing(policy, clock):
    return PricingService(policy=policy, clock=clock, tz_name="UTC")


class TestHourlyRate:
    """Daily rates are spread over the configured hours per day."""

    @pytest.mark.parametrize(
        "space_type,expected",
        [
            (SpaceType.MEETING_ROOM, 30000),
            (SpaceType.PRIVATE_OFFICE, 6250),
            (SpaceType.SHARED_DESK, 2500),
            (SpaceType.WORKSHOP_SPACE, 12500),
            (SpaceType.CONFERENCE_ROOM, 10000),
            (SpaceType.STUDIO, 7500),
        ],
    )
    def test_default_rates(self, pricing, space_type, expected):
        """Hourly spaces keep their rate; daily ones divide by 8."""
        assert pricing.hourly_rate(space_type) == expected

    def test_daily_rate_rounds_up(self, policy, clock):
        """A daily rate that does not divide evenly is rounded up."""
        spaces = dict(policy.spaces)
        spaces[SpaceType.SHARED_DESK] = spaces[SpaceType.SHARED_DESK].model_copy(update={"base_rate": 20001})
        custom = policy.model_copy(update={"spaces": spaces})
        assert PricingService(policy=custom, clock=clock).hourly_rate(SpaceType.SHARED_DESK) == 2501


class TestCalculatePrice:
    """Base price and weekend discount."""

    def test_weekday_price(self, pricing):
        """Two hours of meeting room on a Wednesday has no discount."""
        quote = pricing.calculate_price(SpaceType.MEETING_ROOM, WEDNESDAY, 2)
        assert quote.base_price == 60000
        assert quote.discount_amount == 0
        assert quote.total_price == 60000
        assert quote.is_weekend is False

    def test_weekend_discount(self, pricing):
        """Saturday bookings get 10% off, rounded up."""
        quote = pricing.calculate_price(SpaceType.MEETING_ROOM, SATURDAY, 2)
        assert quote.is_weekend is True
        assert quote.discount_amount == 6000
        assert quote.total_price == 54000

    def test_fractional_hours_round_up(self, pricing):
        """40 minutes of private office is ceil(6250 * 2/3)."""
        quote = pricing.calculate_price(SpaceType.PRIVATE_OFFICE, MONDAY, Fraction(2, 3))
        assert quote.base_price == 4167

    def test_float_and_decimal_hours(self, pricing):
        """1.5 hours gives the same price whatever numeric type it arrives as."""
        as_float = pricing.calculate_price(SpaceType.MEETING_ROOM, MONDAY, 1.5)
        as_decimal = pricing.calculate_price(SpaceType.MEETING_ROOM, MONDAY, Decimal("1.5"))
        assert as_float == as_decimal
        assert as_float.base_price == 45000

    def test_negative_duration_rejected(self, pricing):
        """A negative duration is never priced."""
        with pytest.raises(NegativeTotalException):
            pricing.calculate_price(SpaceType.MEETING_ROOM, MONDAY, -1)

    @given(
        st.sampled_from(list(SpaceType)),
        st.sampled_from([MONDAY, WEDNESDAY, SATURDAY]),
        st.integers(min_value=1, max_value=12 * 60),
    )
    def test_pricing_is_deterministic(self, space_type, booking_date, minutes):
        """Same inputs always give the same quote, and total = base - discount."""
        pricing = PricingService()
        first = pricing.calculate_price(space_type, booking_date, Fraction(minutes, 60))
        second = pricing.calculate_price(space_type, booking_date, Fraction(minutes, 60))
        assert first == second
        assert first.total_price == first.base_price - first.discount_amount
        assert 0 <= first.total_price <= first.base_price


class TestQuoteBooking:
    """Additional services and explicit discounts."""

    def test_catering_adds_fixed_cost(self, pricing):
        """Catering is a flat 20,000 on top of the price."""
        quote = pricing.quote_booking(
            SpaceType.MEETING_ROOM,
            WEDNESDAY,
            TimeInterval.parse("10:00", "12:00"),
            catering_required=True,
        )
        assert quote.additional_services_cost == 20000
        assert quote.total_price == 80000
        assert quote.currency == "IRR"
        assert quote.duration_hours == Decimal("2.00")

    def test_forty_minutes_is_exact(self, pricing):
        """40 minutes of studio is exactly 5,000 with no stray unit."""
        quote = pricing.quote_booking(SpaceType.STUDIO, WEDNESDAY, TimeInterval.parse("10:00", "10:40"))
        assert quote.total_price == 5000

    def test_explicit_discount_replaces_weekend_discount(self, pricing):
        """A caller discount wins over the automatic weekend one."""
        quote = pricing.quote_booking(
            SpaceType.MEETING_ROOM,
            SATURDAY,
            TimeInterval.parse("10:00", "12:00"),
            discount_amount=1000,
        )
        assert quote.discount_amount == 1000
        assert quote.total_price == 59000

    def test_negative_total_rejected(self, pricing):
        """A discount larger than the price is refused, never clamped."""
        with pytest.raises(NegativeTotalException) as exc_info:
            pricing.quote_booking(
                SpaceType.MEETING_ROOM,
                WEDNESDAY,
                TimeInterval.parse("10:00", "11:00"),
                discount_amount=30001,
            )
        assert exc_info.value.details["field"] == "total_price"

    def test_negative_additional_cost_rejected(self, pricing):
        """Additional services cannot be negative."""
        with pytest.raises(NegativeTotalException):
            pricing.quote_booking(
                SpaceType.MEETING_ROOM,
                WEDNESDAY,
                TimeInterval.parse("10:00", "11:00"),
                additional_services_cost=-1,
            )

    def test_payload(self, pricing):
        """to_payload() flattens the price breakdown."""
        payload = pricing.quote_booking(
            SpaceType.MEETING_ROOM, WEDNESDAY, TimeInterval.parse("10:00", "11:00")
        ).to_payload()
        assert payload["hourly_rate"] == 30000
        assert payload["total_price"] == 30000
        assert payload["duration_hours"] == "1.00"
