# backend/tests/unit/test_refund_policy_engine.py
"""
Unit tests for RefundPolicyEngine.

Default tiers: >=48h 95%, >=24h 85%, >=12h 70%, >=2h 50%, otherwise 0%.
"""

from datetime import timedelta
import logging

from hypothesis import given, strategies as st
import pytest

from booking_engine.core.enums import PaymentStatus, RefundMode
from booking_engine.core.exceptions import NegativeTotalException, ValidationException
from booking_engine.services.refund_policy_engine import (
    RefundParams,
    RefundPolicyEngine,
    payment_status_after_refund,
)
from tests.factories.booking_builders import WEDNESDAY, at, make_booking

hours_strategy = st.floats(min_value=-200, max_value=500, allow_nan=False, allow_infinity=False)
amount_strategy = st.integers(min_value=0, max_value=50_000_000)


@pytest.fixture
def engine(policy, clock):
    return RefundPolicyEngine(policy=policy, clock=clock, tz_name="UTC")


class TestAutomaticTiers:
    """Tiered refund by hours of notice."""

    def test_thirty_hours_notice(self, engine):
        """1,000,000 paid with 30h notice lands in the 24h tier."""
        quote = engine.compute_refund(1_000_000, 30)
        assert quote.refund_amount == 850_000
        assert quote.cancellation_fee == 150_000
        assert quote.refund_percentage == 85.0
        assert quote.tier_hours == 24

    @pytest.mark.parametrize(
        "hours,percentage",
        [(100, 95), (48, 95), (47.99, 85), (24, 85), (12, 70), (11.5, 50), (2, 50), (1.99, 0), (0, 0)],
    )
    def test_tier_boundaries(self, engine, hours, percentage):
        """Each threshold is inclusive."""
        quote = engine.compute_refund(100_000, hours)
        assert quote.refund_amount == 100_000 * percentage // 100

    def test_after_start_refunds_nothing(self, engine):
        """Negative notice falls below every tier and displays as zero."""
        quote = engine.compute_refund(60_000, -3)
        assert quote.refund_amount == 0
        assert quote.cancellation_fee == 60_000
        assert quote.hours_notice == 0.0

    def test_refund_rounds_down(self, engine):
        """85% of 999 is 849.15; the customer gets 849."""
        quote = engine.compute_refund(999, 30)
        assert quote.refund_amount == 849
        assert quote.cancellation_fee == 150

    @given(amount_strategy, hours_strategy, hours_strategy)
    def test_refund_is_monotonic_in_notice(self, total, first, second):
        """More notice never yields a smaller refund."""
        engine = RefundPolicyEngine()
        low, high = sorted((first, second))
        assert engine.compute_refund(total, low).refund_amount <= engine.compute_refund(total, high).refund_amount

    @given(amount_strategy, hours_strategy, st.sampled_from(list(RefundMode)))
    def test_refund_plus_fee_is_total(self, total, hours, mode):
        """refund + fee always equals what was paid, and neither is negative."""
        engine = RefundPolicyEngine()
        params = RefundParams(refund_percentage=37.5, refund_amount=total // 3)
        quote = engine.compute_refund(total, hours, mode, params)
        assert quote.refund_amount + quote.cancellation_fee == total
        assert 0 <= quote.refund_amount <= total


class TestRefundModes:
    """Explicit refund modes chosen by the operator."""

    def test_full_refund(self, engine):
        """full_refund ignores notice."""
        quote = engine.compute_refund(50_000, 0.5, RefundMode.FULL_REFUND)
        assert quote.refund_amount == 50_000
        assert quote.cancellation_fee == 0

    def test_no_refund(self, engine):
        """no_refund ignores notice."""
        quote = engine.compute_refund(50_000, 200, RefundMode.NO_REFUND)
        assert quote.refund_amount == 0
        assert quote.cancellation_fee == 50_000

    def test_custom_amount_is_capped(self, engine):
        """A custom amount above the total refunds the total."""
        quote = engine.compute_refund(
            50_000, 10, RefundMode.CUSTOM_AMOUNT, RefundParams(refund_amount=80_000)
        )
        assert quote.refund_amount == 50_000

    def test_custom_amount_required(self, engine):
        """custom_amount without an amount is a malformed request."""
        with pytest.raises(ValidationException):
            engine.compute_refund(50_000, 10, RefundMode.CUSTOM_AMOUNT)

    def test_custom_amount_negative(self, engine):
        """A negative custom amount is refused."""
        with pytest.raises(NegativeTotalException):
            engine.compute_refund(50_000, 10, RefundMode.CUSTOM_AMOUNT, RefundParams(refund_amount=-1))

    def test_partial_percentage(self, engine):
        """partial_refund applies the given percentage, rounded down."""
        quote = engine.compute_refund(
            1_000, 1, RefundMode.PARTIAL_REFUND, RefundParams(refund_percentage=33.3)
        )
        assert quote.refund_amount == 333
        assert quote.cancellation_fee == 667

    def test_partial_percentage_is_clamped(self, engine):
        """Percentages outside 0-100 are clamped."""
        quote = engine.compute_refund(
            1_000, 1, RefundMode.PARTIAL_REFUND, RefundParams(refund_percentage=150)
        )
        assert quote.refund_amount == 1_000

    def test_partial_without_percentage_uses_tiers(self, engine):
        """No percentage falls back to the automatic schedule."""
        quote = engine.compute_refund(1_000_000, 30, RefundMode.PARTIAL_REFUND)
        assert quote.refund_amount == 850_000

    def test_emergency_overrides_schedule(self, engine):
        """Emergency cancellation is a full refund even with no notice."""
        quote = engine.compute_refund(70_000, -1, params=RefundParams(emergency=True))
        assert quote.refund_amount == 70_000
        assert quote.emergency_override is True

    def test_explicit_no_refund_beats_override_flags(self, engine):
        """An explicit no_refund keeps the whole payment as fee, whatever flags are set."""
        quote = engine.compute_refund(
            100_000, 30, RefundMode.NO_REFUND, RefundParams(emergency=True, waive_fee=True)
        )
        assert quote.refund_amount == 0
        assert quote.cancellation_fee == 100_000
        assert quote.emergency_override is False
        assert quote.fee_waived is False
        assert quote.policy_basis == "No refund"

    def test_ignored_flags_are_logged(self, engine, caplog):
        """Dropping an override flag under no_refund leaves a log record."""
        with caplog.at_level(logging.INFO, logger="booking_engine.services.refund_policy_engine"):
            engine.compute_refund(100_000, 30, RefundMode.NO_REFUND, RefundParams(emergency=True))

        messages = [r.getMessage() for r in caplog.records if r.name == "booking_engine.services.refund_policy_engine"]
        assert messages == ["refund_override_flags_ignored"]

    def test_waived_fee(self, engine):
        """Waiving the fee refunds in full."""
        quote = engine.compute_refund(70_000, 1, params=RefundParams(waive_fee=True))
        assert quote.refund_amount == 70_000
        assert quote.fee_waived is True

    def test_policy_not_respected(self, engine):
        """Ignoring the policy in automatic mode refunds in full."""
        quote = engine.compute_refund(
            70_000, 1, params=RefundParams(respect_policy=False, policy_override_reason="venue fault")
        )
        assert quote.refund_amount == 70_000
        assert quote.policy_overridden is True
        assert "venue fault" in quote.policy_basis

    def test_partial_without_percentage_honours_override(self, engine):
        """partial_refund without a percentage follows the same override as automatic mode."""
        quote = engine.compute_refund(
            100_000, 1, RefundMode.PARTIAL_REFUND, RefundParams(respect_policy=False)
        )
        assert quote.refund_amount == 100_000
        assert quote.policy_overridden is True
        assert quote.to_payload()["policy_overridden"] is True

    def test_explicit_modes_do_not_override_policy(self, engine):
        """A given percentage or full refund is not a policy override."""
        params = RefundParams(refund_percentage=40, respect_policy=False)
        partial = engine.compute_refund(100_000, 1, RefundMode.PARTIAL_REFUND, params)
        full = engine.compute_refund(100_000, 1, RefundMode.FULL_REFUND, params)

        assert partial.refund_amount == 40_000
        assert partial.policy_overridden is False
        assert full.policy_overridden is False

    def test_negative_total_paid(self, engine):
        """total_paid can never be negative."""
        with pytest.raises(NegativeTotalException):
            engine.compute_refund(-1, 10)


class TestComputeForBooking:
    """Refunds computed from a booking snapshot."""

    def test_notice_measured_from_start(self, engine):
        """Cancelling 30h before a 10:00 start refunds 85%."""
        booking = make_booking(total_price=1_000_000, start="10:00", end="12:00")
        cancelled_at = at(WEDNESDAY - timedelta(days=1), "04:00")

        quote = engine.compute_for_booking(booking, cancelled_at)

        assert quote.hours_until_event == pytest.approx(30)
        assert quote.refund_amount == 850_000

    def test_unpaid_booking_refunds_nothing(self, engine):
        """Nothing was paid, so nothing is refunded and no fee is charged."""
        booking = make_booking(payment_status=PaymentStatus.PENDING)

        quote = engine.compute_for_booking(booking, at(WEDNESDAY, "08:00"), RefundMode.FULL_REFUND)

        assert quote.refund_amount == 0
        assert quote.cancellation_fee == 0


class TestPaymentStatusAfterRefund:
    """Payment status transitions caused by refunds."""

    @pytest.mark.parametrize(
        "refund,expected",
        [(0, PaymentStatus.PAID), (10, PaymentStatus.PARTIAL_REFUND), (100, PaymentStatus.REFUNDED)],
    )
    def test_status(self, refund, expected):
        """Full refunds mark the payment refunded, partial ones partial_refund."""
        assert payment_status_after_refund(PaymentStatus.PAID, 100, refund) == expected
