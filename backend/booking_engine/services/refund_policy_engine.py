# backend/booking_engine/services/refund_policy_engine.py
"""Refund policy evaluation for cancellations, rejections and no-shows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from fractions import Fraction
import logging
import math
from typing import Any, Dict, Optional, Tuple

from booking_engine.core.enums import PaymentStatus, RefundMode
from booking_engine.core.exceptions import NegativeTotalException, ValidationException
from booking_engine.domain.time_slot import hours_between
from booking_engine.schemas.booking import Booking

from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundParams:
    refund_percentage: Optional[float] = None
    refund_amount: Optional[int] = None
    respect_policy: bool = True
    policy_override_reason: Optional[str] = None
    waive_fee: bool = False
    emergency: bool = False


@dataclass(frozen=True)
class RefundQuote:
    refund_amount: int
    cancellation_fee: int
    refund_percentage: float
    mode: RefundMode
    hours_until_event: float
    policy_basis: str = ""
    tier_hours: Optional[float] = None
    fee_waived: bool = False
    emergency_override: bool = False
    policy_overridden: bool = False

    @property
    def hours_notice(self) -> float:
        """Notice shown to people; post-event cancellations display as zero."""
        return max(0.0, self.hours_until_event)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "refund_amount": int(self.refund_amount),
            "cancellation_fee": int(self.cancellation_fee),
            "refund_percentage": self.refund_percentage,
            "mode": self.mode.value,
            "hours_notice": round(self.hours_notice, 2),
            "policy_basis": self.policy_basis,
            "tier_hours": self.tier_hours,
            "fee_waived": self.fee_waived,
            "emergency_override": self.emergency_override,
            "policy_overridden": self.policy_overridden,
        }


def payment_status_after_refund(
    current: PaymentStatus, total_paid: int, refund_amount: int
) -> PaymentStatus:
    if refund_amount <= 0:
        return current
    if refund_amount >= total_paid:
        return PaymentStatus.REFUNDED
    return PaymentStatus.PARTIAL_REFUND


def applied_overrides(mode: RefundMode, params: RefundParams) -> Tuple[bool, bool, bool]:
    """
    Which override flags take effect for this mode: (emergency, fee_waived, policy_overridden).

    An explicit no_refund wins over every flag. The policy override only
    matters when the schedule would otherwise be consulted, i.e. automatic
    mode or partial_refund without a percentage.
    """
    mode = RefundMode(mode)
    if mode == RefundMode.NO_REFUND:
        return False, False, False
    emergency = params.emergency
    fee_waived = params.waive_fee
    uses_schedule = mode == RefundMode.AUTOMATIC or (
        mode == RefundMode.PARTIAL_REFUND and params.refund_percentage is None
    )
    policy_overridden = (
        uses_schedule
        and not (emergency or fee_waived)
        and (not params.respect_policy or bool(params.policy_override_reason))
    )
    return emergency, fee_waived, policy_overridden


class RefundPolicyEngine(BaseService):
    """Maps notice period and refund mode to a refund amount and fee."""

    def compute_refund(
        self,
        total_paid: int,
        hours_until_event: float,
        mode: RefundMode = RefundMode.AUTOMATIC,
        params: Optional[RefundParams] = None,
    ) -> RefundQuote:
        """
        Compute refund and fee for a paid amount.

        hours_until_event is signed; a negative value (cancelling after the
        start) lands in the lowest tier. Refunds round down and
        cancellation_fee is always total_paid - refund_amount.
        """
        params = params or RefundParams()
        if total_paid < 0:
            raise NegativeTotalException("total_paid", total_paid)
        mode = RefundMode(mode)
        emergency, fee_waived, policy_overridden = applied_overrides(mode, params)

        refund: int
        percentage: float
        basis: str
        tier_hours: Optional[float] = None

        if emergency or fee_waived:
            refund, percentage = total_paid, 100.0
            basis = (
                "Emergency cancellation: full refund (policy override)"
                if emergency
                else "Cancellation fee waived: full refund (policy override)"
            )
        elif mode == RefundMode.FULL_REFUND:
            refund, percentage, basis = total_paid, 100.0, "Full refund"
        elif mode == RefundMode.NO_REFUND:
            refund, percentage, basis = 0, 0.0, "No refund"
        elif mode == RefundMode.CUSTOM_AMOUNT:
            if params.refund_amount is None:
                raise ValidationException(
                    "refund_amount is required for custom_amount refunds",
                    code="REFUND_AMOUNT_REQUIRED",
                )
            if params.refund_amount < 0:
                raise NegativeTotalException("refund_amount", params.refund_amount)
            refund = min(total_paid, params.refund_amount)
            percentage = round(refund * 100 / total_paid, 2) if total_paid else 0.0
            basis = "Custom refund amount"
        elif mode == RefundMode.PARTIAL_REFUND and params.refund_percentage is not None:
            percentage = min(100.0, max(0.0, float(params.refund_percentage)))
            refund = math.floor(total_paid * Fraction(str(percentage)) / 100)
            basis = f"Partial refund of {percentage:g}%"
        elif policy_overridden:
            refund, percentage = total_paid, 100.0
            basis = "Cancellation policy overridden: full refund"
            if params.policy_override_reason:
                basis = f"{basis} ({params.policy_override_reason})"
        else:
            tier = self.policy.refund_tier_for(hours_until_event)
            if tier is None:
                lowest = self.policy.refund_tiers[-1].min_hours if self.policy.refund_tiers else 0
                refund, percentage = 0, 0.0
                basis = f"<{lowest:g} hours notice: no refund"
            else:
                tier_hours = tier.min_hours
                percentage = float(tier.percentage)
                refund = math.floor(Fraction(total_paid * tier.percentage, 100))
                basis = f">={tier.min_hours:g} hours notice: {tier.percentage}% refund"

        if mode == RefundMode.NO_REFUND and (params.emergency or params.waive_fee):
            logger.info("refund_override_flags_ignored", extra={"refund_mode": mode.value})

        return RefundQuote(
            refund_amount=refund,
            cancellation_fee=total_paid - refund,
            refund_percentage=percentage,
            mode=mode,
            hours_until_event=hours_until_event,
            policy_basis=basis,
            tier_hours=tier_hours,
            fee_waived=fee_waived,
            emergency_override=emergency,
            policy_overridden=policy_overridden,
        )

    def compute_for_booking(
        self,
        booking: Booking,
        effective_at: datetime,
        mode: RefundMode = RefundMode.AUTOMATIC,
        params: Optional[RefundParams] = None,
    ) -> RefundQuote:
        """Refund for a booking cancelled at effective_at. Unpaid bookings refund nothing."""
        hours = hours_between(effective_at, booking.start_datetime(self.tz_name))
        if booking.payment_status != PaymentStatus.PAID:
            emergency, fee_waived, policy_overridden = applied_overrides(mode, params or RefundParams())
            return RefundQuote(
                refund_amount=0,
                cancellation_fee=0,
                refund_percentage=0.0,
                mode=RefundMode(mode),
                hours_until_event=hours,
                policy_basis=f"Payment status '{booking.payment_status.value}': nothing to refund",
                fee_waived=fee_waived,
                emergency_override=emergency,
                policy_overridden=policy_overridden,
            )
        return self.compute_refund(booking.total_price, hours, mode, params)
