# backend/booking_engine/services/checkout_reconciliation.py
"""
Checkout reconciliation.

Compares the actual checkout time with the planned end of the booking.
Overtime is charged only for the time beyond the grace window, at the
overtime multiplier, rounded up. Early checkout is refunded at the early
multiplier, rounded down, and only once the customer leaves at least the
threshold early. At most one of the two is ever non-zero.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from fractions import Fraction
import logging
import math
from typing import Any, Dict

from booking_engine.core.enums import CheckoutTiming
from booking_engine.core.exceptions import NegativeTotalException

from .base import BaseService

logger = logging.getLogger(__name__)

_MICROSECONDS_PER_HOUR = 3_600_000_000


def _hours(delta: timedelta) -> Fraction:
    """Exact length of delta in hours."""
    return Fraction(delta // timedelta(microseconds=1), _MICROSECONDS_PER_HOUR)


@dataclass(frozen=True)
class CheckoutAdjustment:
    overtime_charge: int
    early_refund: int
    damage_charge: int
    cleaning_charge: int
    additional_charge: int
    net_additional_amount: int
    timing: CheckoutTiming
    minutes_past_planned_end: float
    overtime_waived: bool = False
    damage_waived: bool = False

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["timing"] = self.timing.value
        payload["minutes_past_planned_end"] = round(self.minutes_past_planned_end, 2)
        return payload


class CheckoutReconciliation(BaseService):
    def classify(self, minutes_past_planned_end: float) -> CheckoutTiming:
        policy = self.policy
        if minutes_past_planned_end <= -policy.checkout_early_status_minutes:
            return CheckoutTiming.EARLY
        if minutes_past_planned_end <= policy.overtime_grace_minutes:
            return CheckoutTiming.ON_TIME
        if minutes_past_planned_end <= policy.checkout_overtime_status_minutes:
            return CheckoutTiming.OVERTIME
        return CheckoutTiming.EXTENDED

    def compute_adjustment(
        self,
        planned_end: datetime,
        actual_checkout: datetime,
        hourly_rate: int,
        *,
        damage_charge: int = 0,
        cleaning_charge: int = 0,
        additional_charge: int = 0,
        waive_overtime: bool = False,
        waive_damage: bool = False,
    ) -> CheckoutAdjustment:
        """
        Work out what is owed or refunded at checkout.

        net_additional_amount > 0 means the customer must be charged,
        < 0 means they are owed a refund.
        """
        for name, amount in (
            ("hourly_rate", hourly_rate),
            ("damage_charges", damage_charge),
            ("cleaning_charges", cleaning_charge),
            ("additional_charges", additional_charge),
        ):
            if amount < 0:
                raise NegativeTotalException(name, amount)

        policy = self.policy
        past_end = actual_checkout - planned_end
        grace = timedelta(minutes=policy.overtime_grace_minutes)
        early_threshold = timedelta(minutes=policy.early_checkout_threshold_minutes)

        overtime = 0
        early_refund = 0
        if past_end > grace:
            chargeable = _hours(past_end - grace)
            overtime = math.ceil(
                chargeable * hourly_rate * Fraction(str(policy.overtime_multiplier))
            )
        elif -past_end >= early_threshold:
            early_hours = _hours(-past_end)
            early_refund = math.floor(
                early_hours * hourly_rate * Fraction(str(policy.early_checkout_refund_multiplier))
            )

        if waive_overtime:
            overtime = 0
        if waive_damage:
            damage_charge = 0

        net = overtime + damage_charge + cleaning_charge + additional_charge - early_refund
        minutes_past_end = past_end.total_seconds() / 60
        return CheckoutAdjustment(
            overtime_charge=overtime,
            early_refund=early_refund,
            damage_charge=damage_charge,
            cleaning_charge=cleaning_charge,
            additional_charge=additional_charge,
            net_additional_amount=net,
            timing=self.classify(minutes_past_end),
            minutes_past_planned_end=minutes_past_end,
            overtime_waived=waive_overtime,
            damage_waived=waive_damage,
        )
