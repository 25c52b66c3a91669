# backend/booking_engine/services/booking_state_machine.py
"""
Booking State Machine

Owns the booking lifecycle. Every event is looked up in TRANSITIONS; any
(status, event) pair not listed fails closed with InvalidTransitionException
naming the legal next states. Handlers never touch the snapshot they are
given: they mutate a deep copy and hand it back together with the side-effect
intents, so the caller can persist both in one step or drop both.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from booking_engine.core.enums import (
    BookingEvent,
    BookingStatus,
    CheckInTiming,
    NotificationTemplate,
    PaymentStatus,
)
from booking_engine.core.exceptions import (
    CapacityExceededException,
    InvalidTransitionException,
    OutOfPolicyWindowException,
    PaymentNotConfirmedException,
    ValidationException,
)
from booking_engine.domain.time_slot import hours_between, minutes_between, to_timezone
from booking_engine.events.booking_intents import (
    ChargeCustomer,
    IssueRefund,
    Notify,
    ReleaseCapacity,
    ReserveCapacity,
    SideEffectIntent,
)
from booking_engine.monitoring.prometheus_metrics import prometheus_metrics
from booking_engine.schemas.booking import Booking
from booking_engine.schemas.booking_requests import (
    ApproveBookingRequest,
    CancelBookingRequest,
    CheckInRequest,
    CheckOutRequest,
    NoShowRequest,
    RejectBookingRequest,
)

from .base import BaseService
from .capacity_allocator import CapacityAllocator
from .checkout_reconciliation import CheckoutReconciliation
from .refund_policy_engine import (
    RefundParams,
    RefundPolicyEngine,
    RefundQuote,
    payment_status_after_refund,
)

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[Tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (BookingStatus.PENDING, BookingEvent.APPROVE): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING, BookingEvent.REJECT): BookingStatus.REJECTED,
    (BookingStatus.PENDING, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.CHECK_IN): BookingStatus.CHECKED_IN,
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingEvent.MARK_NO_SHOW): BookingStatus.NO_SHOW,
    (BookingStatus.CHECKED_IN, BookingEvent.CHECK_OUT): BookingStatus.COMPLETED,
    (BookingStatus.CHECKED_IN, BookingEvent.CANCEL): BookingStatus.CANCELLED,
}

# Event that produces each status, used when an update asks for a status directly.
EVENT_FOR_STATUS: Dict[BookingStatus, BookingEvent] = {
    BookingStatus.CONFIRMED: BookingEvent.APPROVE,
    BookingStatus.REJECTED: BookingEvent.REJECT,
    BookingStatus.CANCELLED: BookingEvent.CANCEL,
    BookingStatus.CHECKED_IN: BookingEvent.CHECK_IN,
    BookingStatus.COMPLETED: BookingEvent.CHECK_OUT,
    BookingStatus.NO_SHOW: BookingEvent.MARK_NO_SHOW,
}

TransitionRequest = Union[
    ApproveBookingRequest,
    RejectBookingRequest,
    CancelBookingRequest,
    CheckInRequest,
    CheckOutRequest,
    NoShowRequest,
]

_REQUEST_FOR_EVENT: Dict[BookingEvent, Type[TransitionRequest]] = {
    BookingEvent.APPROVE: ApproveBookingRequest,
    BookingEvent.REJECT: RejectBookingRequest,
    BookingEvent.CANCEL: CancelBookingRequest,
    BookingEvent.CHECK_IN: CheckInRequest,
    BookingEvent.CHECK_OUT: CheckOutRequest,
    BookingEvent.MARK_NO_SHOW: NoShowRequest,
}


def legal_next_states(status: BookingStatus) -> List[str]:
    return sorted({target.value for (source, _), target in TRANSITIONS.items() if source == status})


def legal_events(status: BookingStatus) -> List[str]:
    return sorted({event.value for (source, event) in TRANSITIONS if source == status})


@dataclass(frozen=True)
class TransitionOutcome:
    booking: Booking
    event: BookingEvent
    from_status: BookingStatus
    intents: Tuple[SideEffectIntent, ...] = ()
    data: Dict[str, Any] = field(default_factory=dict)


class BookingStateMachine(BaseService):
    """Guards and applies lifecycle events to booking snapshots."""

    def __init__(
        self,
        allocator: CapacityAllocator,
        refunds: RefundPolicyEngine,
        reconciliation: CheckoutReconciliation,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.allocator = allocator
        self.refunds = refunds
        self.reconciliation = reconciliation
        self._handlers = {
            BookingEvent.APPROVE: self._approve,
            BookingEvent.REJECT: self._reject,
            BookingEvent.CANCEL: self._cancel,
            BookingEvent.CHECK_IN: self._check_in,
            BookingEvent.CHECK_OUT: self._check_out,
            BookingEvent.MARK_NO_SHOW: self._mark_no_show,
        }

    def target_status(
        self,
        booking: Booking,
        event: BookingEvent,
        requested_status: Optional[BookingStatus] = None,
    ) -> BookingStatus:
        target = TRANSITIONS.get((booking.status, BookingEvent(event)))
        if target is None:
            raise InvalidTransitionException(
                current_status=booking.status.value,
                event=BookingEvent(event).value,
                legal_next_states=legal_next_states(booking.status),
                requested_status=requested_status.value if requested_status else None,
            )
        return target

    def apply(
        self,
        booking: Booking,
        event: BookingEvent,
        request: TransitionRequest,
        now: datetime,
    ) -> TransitionOutcome:
        """
        Apply event to a copy of booking.

        Args:
            booking: Current snapshot (left untouched)
            event: Lifecycle event
            request: The request DTO matching the event
            now: Wall-clock time for stamps and time-based guards

        Returns:
            TransitionOutcome with the new snapshot and intents

        Raises:
            DomainException subclasses for every guard failure
        """
        event = BookingEvent(event)
        target = self.target_status(booking, event)
        expected = _REQUEST_FOR_EVENT[event]
        if not isinstance(request, expected):
            raise ValidationException(
                f"{event.value} requires {expected.__name__}",
                code="INVALID_REQUEST_TYPE",
            )

        working = booking.model_copy(deep=True)
        intents, data = self._handlers[event](working, request, now)
        working.status = target

        self.logger.info(
            "booking_transition_applied",
            extra={
                "booking_id": booking.id,
                "event": event.value,
                "from_status": booking.status.value,
                "to_status": target.value,
            },
        )
        return TransitionOutcome(
            booking=working,
            event=event,
            from_status=booking.status,
            intents=tuple(intents),
            data=data,
        )

    # Helpers

    def _aware(self, value: Optional[datetime]) -> Optional[datetime]:
        """Caller-supplied timestamps; naive values are taken as UTC."""
        return to_timezone(value, self.tz_name) if value is not None else None

    def record_override(
        self, booking: Booking, actor: str, flag: str, now: datetime, message: str
    ) -> None:
        booking.record(actor, "override", now, message, override_flag=flag)
        prometheus_metrics.record_override(flag)
        self.logger.warning(
            "booking_guard_overridden",
            extra={"booking_id": booking.id, "override_flag": flag, "actor": actor},
        )

    @staticmethod
    def capacity_intent(
        intent_cls: Union[Type[ReserveCapacity], Type[ReleaseCapacity]], booking: Booking
    ) -> SideEffectIntent:
        return intent_cls(
            booking_id=booking.id,
            space_type=booking.space_type,
            booking_date=booking.booking_date,
            start_time=str(booking.start_time),
            end_time=str(booking.end_time),
            amount=booking.capacity_requested,
        )

    @staticmethod
    def notification(booking: Booking, template: NotificationTemplate, **payload: Any) -> Notify:
        body = {
            "booking_id": booking.id,
            "booking_number": booking.booking_number,
            "customer_name": booking.customer_name,
            "space_name": booking.space_name,
            "booking_date": booking.booking_date.isoformat(),
            "start_time": str(booking.start_time),
            "end_time": str(booking.end_time),
        }
        body.update(payload)
        return Notify(
            template=template,
            recipient=booking.customer_email or booking.user_id,
            payload=body,
        )

    def _apply_refund(self, booking: Booking, quote: RefundQuote) -> List[SideEffectIntent]:
        paid_total = booking.total_price if booking.payment_status == PaymentStatus.PAID else 0
        booking.refund_amount = quote.refund_amount
        booking.cancellation_fee = quote.cancellation_fee
        booking.payment_status = payment_status_after_refund(
            booking.payment_status, paid_total, quote.refund_amount
        )
        if quote.refund_amount <= 0:
            return []
        return [
            IssueRefund(
                user_id=booking.user_id,
                amount=quote.refund_amount,
                currency=booking.currency,
                reference=booking.booking_number,
                booking_id=booking.id,
                reason=quote.policy_basis,
            )
        ]

    def _release_if_held(self, booking: Booking) -> List[SideEffectIntent]:
        if booking.holds_capacity:
            return [self.capacity_intent(ReleaseCapacity, booking)]
        return []

    # Handlers. Each mutates the working copy and returns (intents, data).

    def _approve(
        self, booking: Booking, request: ApproveBookingRequest, now: datetime
    ) -> Tuple[List[SideEffectIntent], Dict[str, Any]]:
        actor = request.approved_by

        if booking.payment_status != PaymentStatus.PAID and not request.payment_confirmed:
            if not request.override_payment_check:
                raise PaymentNotConfirmedException(
                    booking.payment_status.value, override_flag="override_payment_check"
                )
            self.record_override(
                booking,
                actor,
                "override_payment_check",
                now,
                f"PAYMENT CHECK OVERRIDDEN (payment status: {booking.payment_status.value})",
            )

        availability = self.allocator.check_availability(
            booking.space_type,
            booking.booking_date,
            booking.interval,
            booking.capacity_requested,
            exclude_booking_id=booking.id,
        )
        if not availability.available:
            if not request.override_capacity_check:
                raise CapacityExceededException(
                    f"Insufficient capacity: {availability.remaining_capacity} remaining, "
                    f"{booking.capacity_requested} requested",
                    details=availability.to_payload(),
                )
            self.record_override(
                booking,
                actor,
                "override_capacity_check",
                now,
                f"CAPACITY CHECK OVERRIDDEN ({availability.remaining_capacity} remaining, "
                f"{booking.capacity_requested} requested)",
            )

        booking.approved_at = now
        booking.approved_by = actor
        if request.payment_confirmed:
            booking.payment_status = PaymentStatus.PAID
            if request.payment_method:
                booking.payment_method = request.payment_method
            if request.payment_reference:
                booking.payment_reference = request.payment_reference
        booking.record(
            actor,
            "approved",
            now,
            "Booking approved",
            payment_status=booking.payment_status.value,
            payment_reference=booking.payment_reference,
        )
        if request.approval_notes:
            booking.add_internal_note(actor, now, request.approval_notes, action="approval_note")

        start = booking.start_datetime(self.tz_name)
        window = {
            "checkin_opens_at": (
                start - timedelta(minutes=self.policy.checkin_opens_minutes_before)
            ).isoformat(),
            "checkin_closes_at": (
                start + timedelta(minutes=self.policy.checkin_closes_minutes_after)
            ).isoformat(),
        }
        intents: List[SideEffectIntent] = [self.capacity_intent(ReserveCapacity, booking)]
        if request.notify_customer:
            intents.append(self.notification(booking, NotificationTemplate.BOOKING_APPROVED, **window))
        return intents, {"availability": availability.to_payload(), "checkin_window": window}

    def _reject(
        self, booking: Booking, request: RejectBookingRequest, now: datetime
    ) -> Tuple[List[SideEffectIntent], Dict[str, Any]]:
        actor = request.rejected_by
        quote = self.refunds.compute_for_booking(
            booking,
            now,
            request.refund_mode,
            RefundParams(
                refund_percentage=request.refund_percentage,
                refund_amount=request.refund_amount,
            ),
        )
        intents = self._release_if_held(booking)
        intents += self._apply_refund(booking, quote)

        booking.rejection_reason = request.reason
        booking.cancellation_reason = f"REJECTED: {request.reason}"
        booking.cancellation_category = request.rejection_category
        booking.cancelled_at = now
        booking.cancelled_by = actor
        booking.record(
            actor,
            "rejected",
            now,
            request.reason,
            category=request.rejection_category,
            refund_amount=quote.refund_amount,
            refund_mode=quote.mode.value,
        )
        if request.internal_notes:
            booking.add_internal_note(actor, now, request.internal_notes)

        if request.notify_customer:
            intents.append(
                self.notification(
                    booking,
                    NotificationTemplate.BOOKING_REJECTED,
                    reason=request.reason,
                    refund_amount=quote.refund_amount,
                )
            )
        return intents, {"refund": quote.to_payload()}

    def _cancel(
        self, booking: Booking, request: CancelBookingRequest, now: datetime
    ) -> Tuple[List[SideEffectIntent], Dict[str, Any]]:
        actor = request.cancelled_by
        effective_at = self._aware(request.effective_cancellation_at) or now

        # Checked-in bookings go through the same schedule; automatic mode
        # then sees negative notice and lands in the no-refund tier.
        quote = self.refunds.compute_for_booking(
            booking,
            effective_at,
            request.refund_mode,
            RefundParams(
                refund_percentage=request.refund_percentage,
                refund_amount=request.refund_amount,
                respect_policy=request.respect_cancellation_policy,
                policy_override_reason=request.policy_override_reason,
                waive_fee=request.waive_cancellation_fee,
                emergency=request.emergency_cancellation,
            ),
        )
        if quote.emergency_override:
            self.record_override(booking, actor, "emergency_cancellation", now, "EMERGENCY CANCELLATION: full refund")
        if quote.fee_waived:
            self.record_override(booking, actor, "waive_cancellation_fee", now, "CANCELLATION FEE WAIVED")
        if quote.policy_overridden:
            self.record_override(
                booking,
                actor,
                "respect_cancellation_policy",
                now,
                f"CANCELLATION POLICY OVERRIDDEN: {request.policy_override_reason or 'no reason given'}",
            )

        intents = self._release_if_held(booking)
        intents += self._apply_refund(booking, quote)

        booking.cancelled_at = now
        booking.cancelled_by = actor
        booking.cancellation_reason = request.reason
        booking.cancellation_category = request.cancellation_category
        booking.record(
            actor,
            "cancelled",
            now,
            request.reason,
            category=request.cancellation_category,
            previous_status=booking.status.value,
            hours_notice=round(quote.hours_notice, 2),
            refund_amount=quote.refund_amount,
            cancellation_fee=quote.cancellation_fee,
            policy_basis=quote.policy_basis,
        )
        if request.internal_notes:
            booking.add_internal_note(actor, now, request.internal_notes)

        if request.notify_customer:
            intents.append(
                self.notification(
                    booking,
                    NotificationTemplate.BOOKING_CANCELLED,
                    reason=request.reason,
                    refund_amount=quote.refund_amount,
                    cancellation_fee=quote.cancellation_fee,
                )
            )
        return intents, {"refund": quote.to_payload()}

    def _classify_check_in(self, minutes_from_start: float) -> CheckInTiming:
        policy = self.policy
        if minutes_from_start <= -policy.checkin_early_threshold_minutes:
            return CheckInTiming.EARLY
        if minutes_from_start <= policy.checkin_on_time_threshold_minutes:
            return CheckInTiming.ON_TIME
        if minutes_from_start <= policy.checkin_late_threshold_minutes:
            return CheckInTiming.LATE
        return CheckInTiming.VERY_LATE

    def _check_in(
        self, booking: Booking, request: CheckInRequest, now: datetime
    ) -> Tuple[List[SideEffectIntent], Dict[str, Any]]:
        actor = request.checked_in_by
        policy = self.policy
        checked_in_at = self._aware(request.checked_in_at) or now
        start = booking.start_datetime(self.tz_name)
        minutes_from_start = minutes_between(start, checked_in_at)

        opens = -policy.checkin_opens_minutes_before
        closes = policy.checkin_closes_minutes_after
        if not opens <= minutes_from_start <= closes:
            if not request.override_time_restrictions:
                raise OutOfPolicyWindowException(
                    "Check-in is outside the allowed window",
                    reason="outside_checkin_window",
                    details={
                        "minutes_from_start": round(minutes_from_start, 2),
                        "opens_minutes_before": policy.checkin_opens_minutes_before,
                        "closes_minutes_after": policy.checkin_closes_minutes_after,
                    },
                    override_flag="override_time_restrictions",
                )
            self.record_override(
                booking,
                actor,
                "override_time_restrictions",
                now,
                f"TIME RESTRICTIONS OVERRIDDEN ({round(minutes_from_start)} minutes from start)",
            )

        if booking.payment_status != PaymentStatus.PAID:
            if not request.override_payment_status:
                raise PaymentNotConfirmedException(
                    booking.payment_status.value, override_flag="override_payment_status"
                )
            self.record_override(
                booking,
                actor,
                "override_payment_status",
                now,
                f"PAYMENT STATUS OVERRIDDEN (payment status: {booking.payment_status.value})",
            )

        group_size = request.actual_group_size or booking.capacity_requested
        if group_size > booking.capacity_requested:
            max_capacity = policy.space(booking.space_type).max_capacity
            details = {
                "actual_group_size": group_size,
                "capacity_requested": booking.capacity_requested,
                "max_capacity": max_capacity,
            }
            if group_size > max_capacity:
                raise CapacityExceededException(
                    f"Group size ({group_size}) exceeds space maximum ({max_capacity})",
                    details=details,
                    override_flag=None,
                )
            if not request.override_capacity_limits:
                raise CapacityExceededException(
                    f"Group size ({group_size}) exceeds booked capacity ({booking.capacity_requested})",
                    details=details,
                    override_flag="override_capacity_limits",
                )
            self.record_override(
                booking,
                actor,
                "override_capacity_limits",
                now,
                f"CAPACITY LIMITS OVERRIDDEN ({group_size} attending, {booking.capacity_requested} booked)",
            )

        timing = self._classify_check_in(minutes_from_start)
        booking.checked_in_at = checked_in_at
        booking.checked_in_by = actor
        booking.check_in_timing = timing
        booking.actual_attendee_count = group_size
        booking.verification_method = request.verification_method
        booking.verification_id = request.verification_id
        booking.checkin_location = request.checkin_location
        booking.record(
            actor,
            "checked_in",
            now,
            f"Checked in ({timing.value})",
            actual_group_size=group_size,
            verification_method=request.verification_method,
            minutes_from_start=round(minutes_from_start, 2),
        )
        if request.notes:
            booking.add_internal_note(actor, now, request.notes, action="checkin_note")

        intents: List[SideEffectIntent] = [
            self.notification(booking, NotificationTemplate.BOOKING_CHECKED_IN, check_in_timing=timing.value)
        ]
        return intents, {
            "check_in_timing": timing.value,
            "minutes_from_start": round(minutes_from_start, 2),
        }

    def _check_out(
        self, booking: Booking, request: CheckOutRequest, now: datetime
    ) -> Tuple[List[SideEffectIntent], Dict[str, Any]]:
        actor = request.checked_out_by
        if booking.checked_in_at is None:
            raise ValidationException(
                "Booking has no check-in time recorded",
                code="CHECK_IN_TIME_MISSING",
            )
        checked_out_at = self._aware(request.checked_out_at) or now
        if checked_out_at < booking.checked_in_at:
            raise ValidationException(
                "Checkout time cannot be before check-in time",
                code="CHECKOUT_BEFORE_CHECKIN",
                details={
                    "checked_in_at": booking.checked_in_at.isoformat(),
                    "checked_out_at": checked_out_at.isoformat(),
                },
            )

        adjustment = self.reconciliation.compute_adjustment(
            booking.end_datetime(self.tz_name),
            checked_out_at,
            booking.hourly_rate,
            damage_charge=request.damage_charges,
            cleaning_charge=request.cleaning_charges,
            additional_charge=request.additional_charges,
            waive_overtime=request.override_overtime_charges,
            waive_damage=request.override_damage_charges,
        )
        if request.override_overtime_charges:
            self.record_override(booking, actor, "override_overtime_charges", now, "OVERTIME CHARGES WAIVED")
        if request.override_damage_charges:
            self.record_override(booking, actor, "override_damage_charges", now, "DAMAGE CHARGES WAIVED")

        actual_hours = Decimal(str(hours_between(booking.checked_in_at, checked_out_at))).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
        booking.checked_out_at = checked_out_at
        booking.checked_out_by = actor
        booking.checkout_timing = adjustment.timing
        booking.actual_duration_hours = actual_hours
        booking.overtime_charges = adjustment.overtime_charge
        booking.early_checkout_refund = adjustment.early_refund
        booking.damage_charges = adjustment.damage_charge
        booking.cleaning_charges = adjustment.cleaning_charge
        booking.additional_charges = adjustment.additional_charge
        booking.net_additional_amount = adjustment.net_additional_amount
        if request.customer_rating is not None:
            booking.customer_rating = request.customer_rating
        if request.customer_feedback:
            booking.customer_feedback = request.customer_feedback
        booking.record(
            actor,
            "checked_out",
            now,
            f"Checked out ({adjustment.timing.value})",
            actual_duration_hours=str(actual_hours),
            net_additional_amount=adjustment.net_additional_amount,
            damage_description=request.damage_description,
        )
        if request.notes:
            booking.add_internal_note(actor, now, request.notes, action="checkout_note")

        intents = self._release_if_held(booking)
        net = adjustment.net_additional_amount
        if net > 0:
            intents.append(
                ChargeCustomer(
                    user_id=booking.user_id,
                    amount=net,
                    currency=booking.currency,
                    reference=booking.booking_number,
                    booking_id=booking.id,
                    reason="Checkout adjustment",
                )
            )
        elif net < 0:
            intents.append(
                IssueRefund(
                    user_id=booking.user_id,
                    amount=-net,
                    currency=booking.currency,
                    reference=booking.booking_number,
                    booking_id=booking.id,
                    reason="Early checkout refund",
                )
            )
        intents.append(
            self.notification(
                booking,
                NotificationTemplate.BOOKING_COMPLETED,
                net_additional_amount=net,
                actual_duration_hours=str(actual_hours),
            )
        )
        return intents, {"checkout": adjustment.to_payload()}

    def _mark_no_show(
        self, booking: Booking, request: NoShowRequest, now: datetime
    ) -> Tuple[List[SideEffectIntent], Dict[str, Any]]:
        actor = request.marked_by
        intents = self._release_if_held(booking)
        data: Dict[str, Any] = {}
        if request.compute_refund:
            quote = self.refunds.compute_for_booking(
                booking,
                now,
                request.refund_mode,
                RefundParams(
                    refund_percentage=request.refund_percentage,
                    refund_amount=request.refund_amount,
                ),
            )
            intents += self._apply_refund(booking, quote)
            data["refund"] = quote.to_payload()

        booking.record(
            actor,
            "no_show",
            now,
            request.reason or "Customer did not arrive",
            refund_computed=request.compute_refund,
            refund_amount=booking.refund_amount,
        )
        if request.notify_customer:
            intents.append(self.notification(booking, NotificationTemplate.BOOKING_NO_SHOW))
        return intents, data
