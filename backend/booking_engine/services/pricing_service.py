# backend/booking_engine/services/pricing_service.py
"""
Pricing Service

Price is a pure function of space type, the booking date's weekday and the
duration. Daily rates are converted to an hourly rate by dividing by the
configured hours-per-day and rounding up. Charges always round up; the
arithmetic is exact (fractions), so a 40-minute booking never picks up a
stray unit from a repeating decimal.
"""

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from fractions import Fraction
import logging
import math
from typing import Any, Dict, Optional, Union

from booking_engine.core.enums import RateUnit, SpaceType
from booking_engine.core.exceptions import NegativeTotalException
from booking_engine.domain.time_slot import TimeInterval

from .base import BaseService

logger = logging.getLogger(__name__)

Hours = Union[int, float, Decimal, Fraction]


def ceil_amount(value: Fraction) -> int:
    return math.ceil(value)


def exact_hours(value: Hours) -> Fraction:
    if isinstance(value, Fraction):
        return value
    if isinstance(value, float):
        # str() keeps the decimal the caller wrote, not the binary expansion.
        return Fraction(str(value))
    return Fraction(value)


@dataclass(frozen=True)
class PriceQuote:
    hourly_rate: int
    base_price: int
    discount_amount: int
    total_price: int
    is_weekend: bool

    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BookingQuote:
    """Price plus caller-side additions such as catering."""

    price: PriceQuote
    additional_services_cost: int
    discount_amount: int
    total_price: int
    currency: str
    duration_hours: Decimal

    def to_payload(self) -> Dict[str, Any]:
        return {
            **self.price.to_payload(),
            "additional_services_cost": self.additional_services_cost,
            "discount_amount": self.discount_amount,
            "total_price": self.total_price,
            "currency": self.currency,
            "duration_hours": str(self.duration_hours),
        }


class PricingService(BaseService):
    """Computes booking prices from BookingPolicy rates."""

    def hourly_rate(self, space_type: SpaceType) -> int:
        space = self.policy.space(space_type)
        if space.rate_unit == RateUnit.HOUR:
            return space.base_rate
        return ceil_amount(Fraction(space.base_rate, self.policy.hours_per_day_rate))

    def calculate_price(self, space_type: SpaceType, booking_date: date, duration_hours: Hours) -> PriceQuote:
        """
        Price a booking before any additional services.

        Args:
            space_type: Space being booked
            booking_date: Only its weekday matters
            duration_hours: Booked duration

        Returns:
            PriceQuote with hourly rate, base price, weekend discount and total

        Raises:
            NegativeTotalException: If the duration is negative
        """
        hours = exact_hours(duration_hours)
        if hours < 0:
            raise NegativeTotalException("duration_hours", duration_hours)

        hourly_rate = self.hourly_rate(space_type)
        base_price = ceil_amount(hourly_rate * hours)

        is_weekend = self.policy.is_weekend(booking_date)
        discount = 0
        if is_weekend and self.policy.weekend_discount_percent:
            discount = ceil_amount(Fraction(base_price * self.policy.weekend_discount_percent, 100))

        return PriceQuote(
            hourly_rate=hourly_rate,
            base_price=base_price,
            discount_amount=discount,
            total_price=base_price - discount,
            is_weekend=is_weekend,
        )

    def quote_booking(
        self,
        space_type: SpaceType,
        booking_date: date,
        interval: TimeInterval,
        *,
        catering_required: bool = False,
        additional_services_cost: Optional[int] = None,
        discount_amount: Optional[int] = None,
    ) -> BookingQuote:
        """
        Full booking price: calculate_price plus additional services.

        An explicit discount_amount replaces the weekend discount. A total
        below zero is rejected rather than clamped.
        """
        price = self.calculate_price(
            space_type, booking_date, Fraction(interval.duration_minutes, 60)
        )

        if additional_services_cost is None:
            additional_services_cost = self.policy.catering_cost if catering_required else 0
        if additional_services_cost < 0:
            raise NegativeTotalException("additional_services_cost", additional_services_cost)

        discount = price.discount_amount if discount_amount is None else discount_amount
        if discount < 0:
            raise NegativeTotalException("discount_amount", discount)

        total = price.base_price - discount + additional_services_cost
        if total < 0:
            self.logger.warning(
                "negative_total_rejected",
                extra={
                    "space_type": SpaceType(space_type).value,
                    "base_price": price.base_price,
                    "discount_amount": discount,
                    "additional_services_cost": additional_services_cost,
                },
            )
            raise NegativeTotalException("total_price", total)

        return BookingQuote(
            price=price,
            additional_services_cost=additional_services_cost,
            discount_amount=discount,
            total_price=total,
            currency=self.policy.currency,
            duration_hours=interval.duration_hours,
        )
