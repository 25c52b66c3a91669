# backend/booking_engine/services/booking_service.py
"""
Booking Service

Entry point for every booking operation. Each public method returns an
OperationResult and never raises for a business-rule failure:

- DomainException subclasses become a failed result carrying the error
  kind, a reason code and, where one exists, the override flag that would
  bypass the guard.
- Anything unexpected (store or lock backend down) becomes an
  infrastructure_error result. Nothing is saved and no intents are
  returned in that case.

Operations on an existing booking run under the capacity lock for the
booking's (space_type, booking_date), re-read the booking inside the lock,
and persist the new snapshot with a single version-checked save.
"""

from contextlib import contextmanager
from datetime import date, datetime, timedelta
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from booking_engine.core.capacity_lock import (
    CapacityKey,
    CapacityLockManager,
    build_capacity_lock_manager,
)
from booking_engine.core.config import BookingPolicy, settings
from booking_engine.core.enums import (
    BookingEvent,
    BookingStatus,
    ErrorKind,
    NotificationTemplate,
    PaymentStatus,
    RefundMode,
    SpaceType,
)
from booking_engine.core.exceptions import (
    CapacityExceededException,
    DomainException,
    InvalidTransitionException,
    NotFoundException,
    OutOfPolicyWindowException,
    RepositoryException,
    ValidationException,
)
from booking_engine.core.ulid_helper import generate_booking_number, generate_ulid
from booking_engine.domain.time_slot import TimeInterval, hours_between
from booking_engine.events.booking_intents import (
    ChargeCustomer,
    IssueRefund,
    Notify,
    ReleaseCapacity,
    ReserveCapacity,
    SideEffectIntent,
)
from booking_engine.monitoring.prometheus_metrics import prometheus_metrics
from booking_engine.repositories.booking_repository import BookingRepository
from booking_engine.schemas.booking import Booking
from booking_engine.schemas.booking_requests import (
    ApproveBookingRequest,
    AvailabilityQuery,
    CancelBookingRequest,
    CheckInRequest,
    CheckOutRequest,
    CreateBookingRequest,
    DeleteBookingRequest,
    NoShowRequest,
    PriceQuoteRequest,
    RejectBookingRequest,
    UpdateBookingRequest,
)
from booking_engine.schemas.results import OperationResult

from .base import BaseService, Clock
from .booking_policy_validator import BookingPolicyValidator
from .booking_state_machine import (
    EVENT_FOR_STATUS,
    BookingStateMachine,
    TransitionOutcome,
    TransitionRequest,
    legal_next_states,
)
from .capacity_allocator import CapacityAllocator
from .checkout_reconciliation import CheckoutReconciliation
from .pricing_service import PricingService
from .refund_policy_engine import RefundPolicyEngine

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT", bound=BaseModel)

_SCHEDULE_FIELDS = ("space_type", "booking_date", "start_time", "end_time", "capacity_requested")
_CUSTOMER_FIELDS = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "purpose",
    "special_requirements",
    "space_location",
)
_LOCK_RETRIES = 3


class BookingService(BaseService):
    """
    Operations facade over the booking lifecycle.

    Collaborators are built from the shared policy unless injected.
    """

    def __init__(
        self,
        repository: BookingRepository,
        *,
        policy: Optional[BookingPolicy] = None,
        lock_manager: Optional[CapacityLockManager] = None,
        clock: Optional[Clock] = None,
        tz_name: Optional[str] = None,
    ):
        super().__init__(policy, clock=clock, tz_name=tz_name)
        self.repository = repository
        self.lock_manager = lock_manager or build_capacity_lock_manager(settings)

        shared: Dict[str, Any] = {"policy": self.policy, "clock": self.clock, "tz_name": self.tz_name}
        self.validator = BookingPolicyValidator(**shared)
        self.allocator = CapacityAllocator(repository, **shared)
        self.pricing = PricingService(**shared)
        self.refunds = RefundPolicyEngine(**shared)
        self.reconciliation = CheckoutReconciliation(**shared)
        self.state_machine = BookingStateMachine(
            self.allocator, self.refunds, self.reconciliation, **shared
        )

    # Plumbing

    def _execute(self, operation: str, action: Callable[[], OperationResult]) -> OperationResult:
        try:
            return action()
        except DomainException as exc:
            prometheus_metrics.record_rejection(operation, exc.kind.value)
            log = self.logger.error if exc.kind == ErrorKind.INFRASTRUCTURE_ERROR else self.logger.info
            log(
                "booking_operation_rejected",
                extra={
                    "operation": operation,
                    "error_kind": exc.kind.value,
                    "code": exc.code,
                    "override_flag": exc.override_flag,
                },
            )
            return OperationResult.failure(exc)
        except RepositoryException as exc:
            prometheus_metrics.record_rejection(operation, ErrorKind.INFRASTRUCTURE_ERROR.value)
            self.logger.error(
                "booking_repository_failure",
                extra={"operation": operation, "error": str(exc)},
                exc_info=True,
            )
            return self._infrastructure_failure(operation, exc)
        except Exception as exc:
            prometheus_metrics.record_rejection(operation, ErrorKind.INFRASTRUCTURE_ERROR.value)
            self.logger.error(
                "booking_operation_failed",
                extra={"operation": operation, "error_type": type(exc).__name__},
                exc_info=True,
            )
            return self._infrastructure_failure(operation, exc)

    @staticmethod
    def _infrastructure_failure(operation: str, exc: Exception) -> OperationResult:
        return OperationResult(
            ok=False,
            error_kind=ErrorKind.INFRASTRUCTURE_ERROR,
            error_detail={
                "message": f"{operation} could not be completed",
                "code": "INFRASTRUCTURE_ERROR",
                "details": {"error_type": type(exc).__name__},
            },
        )

    @staticmethod
    def _coerce(request_cls: Type[RequestT], request: Union[RequestT, Dict[str, Any]]) -> RequestT:
        if isinstance(request, request_cls):
            return request
        try:
            return request_cls.model_validate(request)
        except ValidationError as exc:
            raise ValidationException(
                f"Invalid {request_cls.__name__}",
                code="INVALID_REQUEST",
                details={
                    "errors": [
                        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
                        for err in exc.errors()
                    ]
                },
            ) from exc

    def _load(self, booking_id: str, for_update: bool = False) -> Booking:
        booking = self.repository.get_by_id(booking_id, for_update=for_update)
        if booking is None:
            raise NotFoundException(
                f"Booking {booking_id} not found",
                code="BOOKING_NOT_FOUND",
                details={"booking_id": booking_id},
            )
        return booking

    @contextmanager
    def _locked_booking(
        self,
        booking_id: str,
        extra_keys: Callable[[Booking], Set[CapacityKey]] = lambda _: set(),
    ) -> Iterator[Booking]:
        """
        Hold the capacity lock for the booking's space/day and yield a fresh read.

        If a concurrent update moved the booking to another space or day
        between the unlocked read and the lock, retry with the new keys.
        """
        booking = self._load(booking_id)
        for _ in range(_LOCK_RETRIES):
            keys = {(booking.space_type, booking.booking_date)} | extra_keys(booking)
            with self.lock_manager.hold(keys):
                current = self._load(booking_id, for_update=True)
                if (current.space_type, current.booking_date) in keys:
                    yield current
                    return
            booking = current
        raise InvalidTransitionException(
            current_status=booking.status.value,
            event="lock",
            legal_next_states=legal_next_states(booking.status),
            message="Booking kept moving while waiting for its capacity lock",
        )

    def _commit(self, booking: Booking, expected_version: int) -> Booking:
        with self.repository.transaction():
            return self.repository.save(booking, expected_version)

    def _transition(
        self,
        operation: str,
        booking_id: str,
        event: BookingEvent,
        request: TransitionRequest,
    ) -> OperationResult:
        with self._locked_booking(booking_id) as current:
            outcome = self.state_machine.apply(current, event, request, self.now())
            saved = self._commit(outcome.booking, current.version)
        prometheus_metrics.record_transition(
            outcome.event.value, outcome.from_status.value, saved.status.value
        )
        self.logger.info(
            "booking_transition_committed",
            extra={
                "operation": operation,
                "booking_id": saved.id,
                "from_status": outcome.from_status.value,
                "to_status": saved.status.value,
                "version": saved.version,
            },
        )
        return OperationResult.success(saved, outcome.intents, **outcome.data)

    # Read operations

    @BaseService.measure_operation("check_availability")
    def check_availability(self, query: Union[AvailabilityQuery, Dict[str, Any]]) -> OperationResult:
        """
        Advisory capacity check. Runs without the capacity lock.

        Returns:
            Successful result whose data holds the availability numbers; a
            full slot is still ok=True with available=False.
        """

        def action() -> OperationResult:
            request = self._coerce(AvailabilityQuery, query)
            interval = self.validator.parse_interval(request.start_time, request.end_time)
            self.validator.validate_schedule(request.booking_date, interval)
            result = self.allocator.check_availability(
                request.space_type,
                request.booking_date,
                interval,
                request.capacity_needed,
                exclude_booking_id=request.exclude_booking_id,
            )
            return OperationResult.success(**result.to_payload())

        return self._execute("check_availability", action)

    @BaseService.measure_operation("quote_price")
    def quote_price(self, query: Union[PriceQuoteRequest, Dict[str, Any]]) -> OperationResult:
        def action() -> OperationResult:
            request = self._coerce(PriceQuoteRequest, query)
            interval = self.validator.parse_interval(request.start_time, request.end_time)
            quote = self.pricing.quote_booking(
                request.space_type,
                request.booking_date,
                interval,
                catering_required=request.catering_required,
            )
            return OperationResult.success(**quote.to_payload())

        return self._execute("quote_price", action)

    @BaseService.measure_operation("space_calendar")
    def space_calendar(self, space_type: SpaceType, start_date: date, end_date: date) -> OperationResult:
        def action() -> OperationResult:
            if end_date < start_date:
                raise ValidationException(
                    "end_date must not be before start_date",
                    code="INVALID_DATE_RANGE",
                    details={"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
                )
            try:
                space = SpaceType(space_type)
            except ValueError as exc:
                raise ValidationException(
                    f"Unknown space type: {space_type}",
                    code="UNKNOWN_SPACE_TYPE",
                    details={"space_type": str(space_type)},
                ) from exc
            days = self.allocator.space_calendar(space, start_date, end_date)
            return OperationResult.success(space_type=space.value, days=days)

        return self._execute("space_calendar", action)

    @BaseService.measure_operation("get_booking")
    def get_booking(self, booking_id: str) -> OperationResult:
        return self._execute("get_booking", lambda: OperationResult.success(self._load(booking_id)))

    # Create

    @BaseService.measure_operation("create_booking")
    def create_booking(self, request: Union[CreateBookingRequest, Dict[str, Any]]) -> OperationResult:
        """
        Create a pending booking after validating policy and availability.

        Pending bookings do not hold capacity, so this check is advisory;
        approval repeats it under the capacity lock.
        """

        def action() -> OperationResult:
            req = self._coerce(CreateBookingRequest, request)
            now = self.now()
            interval = self.validator.validate_request(
                req.space_type,
                req.booking_date,
                req.start_time,
                req.end_time,
                req.capacity_requested,
                now=now,
            )
            availability = self.allocator.check_availability(
                req.space_type, req.booking_date, interval, req.capacity_requested
            )
            if not availability.available:
                raise CapacityExceededException(
                    f"Insufficient capacity. Available: {availability.remaining_capacity}, "
                    f"Requested: {req.capacity_requested}",
                    details=availability.to_payload(),
                    override_flag=None,
                )
            quote = self.pricing.quote_booking(
                req.space_type,
                req.booking_date,
                interval,
                catering_required=req.catering_required,
            )

            space = self.policy.space(req.space_type)
            actor = req.created_by or req.user_id
            booking = Booking(
                id=generate_ulid(),
                booking_number=generate_booking_number(now),
                user_id=req.user_id,
                space_type=req.space_type,
                space_name=space.name,
                space_location=req.space_location,
                booking_date=req.booking_date,
                start_time=interval.start,
                end_time=interval.end,
                duration_hours=interval.duration_hours,
                capacity_requested=req.capacity_requested,
                payment_method=req.payment_method,
                payment_due_at=now + timedelta(minutes=self.policy.payment_window_minutes),
                hourly_rate=quote.price.hourly_rate,
                base_price=quote.price.base_price,
                additional_services_cost=quote.additional_services_cost,
                discount_amount=quote.discount_amount,
                total_price=quote.total_price,
                currency=quote.currency,
                customer_name=req.customer_name,
                customer_email=req.customer_email,
                customer_phone=req.customer_phone,
                purpose=req.purpose,
                special_requirements=req.special_requirements,
                catering_required=req.catering_required,
                created_at=now,
                updated_at=now,
                last_updated_by=actor,
            )
            booking.record(
                actor,
                "created",
                now,
                f"Booking created for {space.name} on {req.booking_date.isoformat()} {interval}",
                total_price=quote.total_price,
            )
            with self.repository.transaction():
                saved = self.repository.add(booking)

            self.logger.info(
                "booking_created",
                extra={
                    "booking_id": saved.id,
                    "booking_number": saved.booking_number,
                    "space_type": saved.space_type.value,
                    "booking_date": saved.booking_date.isoformat(),
                },
            )
            intents: List[SideEffectIntent] = [
                Notify(
                    template=NotificationTemplate.BOOKING_CREATED,
                    recipient=saved.customer_email or saved.user_id,
                    payload={
                        "booking_id": saved.id,
                        "booking_number": saved.booking_number,
                        "total_price": saved.total_price,
                        "currency": saved.currency,
                        "payment_due_at": saved.payment_due_at.isoformat() if saved.payment_due_at else None,
                    },
                )
            ]
            return OperationResult.success(
                saved,
                intents,
                quote=quote.to_payload(),
                availability=availability.to_payload(),
            )

        return self._execute("create_booking", action)

    # Lifecycle transitions

    @BaseService.measure_operation("approve_booking")
    def approve_booking(self, request: Union[ApproveBookingRequest, Dict[str, Any]]) -> OperationResult:
        def action() -> OperationResult:
            req = self._coerce(ApproveBookingRequest, request)
            return self._transition("approve_booking", req.booking_id, BookingEvent.APPROVE, req)

        return self._execute("approve_booking", action)

    @BaseService.measure_operation("reject_booking")
    def reject_booking(self, request: Union[RejectBookingRequest, Dict[str, Any]]) -> OperationResult:
        def action() -> OperationResult:
            req = self._coerce(RejectBookingRequest, request)
            return self._transition("reject_booking", req.booking_id, BookingEvent.REJECT, req)

        return self._execute("reject_booking", action)

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(self, request: Union[CancelBookingRequest, Dict[str, Any]]) -> OperationResult:
        def action() -> OperationResult:
            req = self._coerce(CancelBookingRequest, request)
            return self._transition("cancel_booking", req.booking_id, BookingEvent.CANCEL, req)

        return self._execute("cancel_booking", action)

    @BaseService.measure_operation("check_in")
    def check_in(self, request: Union[CheckInRequest, Dict[str, Any]]) -> OperationResult:
        def action() -> OperationResult:
            req = self._coerce(CheckInRequest, request)
            return self._transition("check_in", req.booking_id, BookingEvent.CHECK_IN, req)

        return self._execute("check_in", action)

    @BaseService.measure_operation("check_out")
    def check_out(self, request: Union[CheckOutRequest, Dict[str, Any]]) -> OperationResult:
        def action() -> OperationResult:
            req = self._coerce(CheckOutRequest, request)
            return self._transition("check_out", req.booking_id, BookingEvent.CHECK_OUT, req)

        return self._execute("check_out", action)

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(self, request: Union[NoShowRequest, Dict[str, Any]]) -> OperationResult:
        def action() -> OperationResult:
            req = self._coerce(NoShowRequest, request)
            return self._transition("mark_no_show", req.booking_id, BookingEvent.MARK_NO_SHOW, req)

        return self._execute("mark_no_show", action)

    @BaseService.measure_operation("delete_booking")
    def delete_booking(self, request: Union[DeleteBookingRequest, Dict[str, Any]]) -> OperationResult:
        """Soft delete: cancels with a full refund. Rows are never removed."""

        def action() -> OperationResult:
            req = self._coerce(DeleteBookingRequest, request)
            cancel = CancelBookingRequest(
                booking_id=req.booking_id,
                cancelled_by=req.deleted_by,
                reason=req.reason,
                cancellation_category="deleted",
                refund_mode=RefundMode.FULL_REFUND,
            )
            return self._transition("delete_booking", req.booking_id, BookingEvent.CANCEL, cancel)

        return self._execute("delete_booking", action)

    def can_reschedule(self, booking_id: str) -> OperationResult:
        """Whether the booking still has the notice required to move it."""

        def action() -> OperationResult:
            booking = self._load(booking_id)
            hours = hours_between(self.now(), booking.start_datetime(self.tz_name))
            allowed = (
                booking.status in (BookingStatus.PENDING, BookingStatus.CONFIRMED)
                and hours >= self.policy.reschedule_notice_hours
            )
            return OperationResult.success(
                booking,
                can_reschedule=allowed,
                hours_until_start=round(hours, 2),
                required_notice_hours=self.policy.reschedule_notice_hours,
            )

        return self._execute("can_reschedule", action)

    # Update

    @BaseService.measure_operation("update_booking")
    def update_booking(self, request: Union[UpdateBookingRequest, Dict[str, Any]]) -> OperationResult:
        """
        Apply a partial update, re-validating and re-pricing as needed.

        Schedule changes lock both the old and the new space/day. A status
        field is routed through the state machine after the field changes,
        and everything is persisted in one save.
        """

        def action() -> OperationResult:
            req = self._coerce(UpdateBookingRequest, request)

            def target_keys(booking: Booking) -> Set[CapacityKey]:
                return {
                    (
                        req.space_type or booking.space_type,
                        req.booking_date or booking.booking_date,
                    )
                }

            with self._locked_booking(req.booking_id, extra_keys=target_keys) as current:
                outcome = self._apply_update(current, req, self.now())
                if outcome is None:
                    return OperationResult.success(current, changes={}, requires_notification=False)
                saved = self._commit(outcome.booking, current.version)

            if saved.status != outcome.from_status:
                prometheus_metrics.record_transition(
                    outcome.event.value, outcome.from_status.value, saved.status.value
                )
            self.logger.info(
                "booking_updated",
                extra={
                    "booking_id": saved.id,
                    "changes": sorted(outcome.data.get("changes", {})),
                    "version": saved.version,
                },
            )
            return OperationResult.success(saved, outcome.intents, **outcome.data)

        return self._execute("update_booking", action)

    def _apply_update(
        self, current: Booking, req: UpdateBookingRequest, now: datetime
    ) -> Optional[TransitionOutcome]:
        if current.is_terminal:
            raise InvalidTransitionException(
                current_status=current.status.value,
                event="update",
                legal_next_states=[],
                message=f"Cannot modify a booking in terminal status '{current.status.value}'",
            )

        actor = req.updated_by
        working = current.model_copy(deep=True)
        changes: Dict[str, Dict[str, Any]] = {}
        intents: List[SideEffectIntent] = []

        def note_change(name: str, old: Any, new: Any) -> None:
            changes[name] = {"from": _jsonable(old), "to": _jsonable(new)}

        # Schedule and occupancy
        new_space = req.space_type or working.space_type
        new_date = req.booking_date or working.booking_date
        new_start = req.start_time if req.start_time is not None else str(working.start_time)
        new_end = req.end_time if req.end_time is not None else str(working.end_time)
        new_capacity = req.capacity_requested or working.capacity_requested
        interval = self.validator.parse_interval(new_start, new_end)

        schedule_changed = (
            new_space != working.space_type
            or new_date != working.booking_date
            or interval != working.interval
            or new_capacity != working.capacity_requested
        )
        if schedule_changed:
            self._check_reschedule_allowed(working, req, now)
            if req.override_time_restrictions:
                self.state_machine.record_override(
                    working, actor, "override_time_restrictions", now, "SCHEDULE RULES OVERRIDDEN"
                )
            else:
                self.validator.validate_schedule(new_date, interval, now=now)
            self.validator.validate_capacity(new_space, new_capacity)

            if working.holds_capacity:
                availability = self.allocator.check_availability(
                    new_space, new_date, interval, new_capacity, exclude_booking_id=working.id
                )
                if not availability.available:
                    if not req.override_capacity_check:
                        raise CapacityExceededException(
                            f"Insufficient capacity: {availability.remaining_capacity} remaining, "
                            f"{new_capacity} requested",
                            details=availability.to_payload(),
                        )
                    self.state_machine.record_override(
                        working, actor, "override_capacity_check", now, "CAPACITY CHECK OVERRIDDEN"
                    )
                intents.append(self.state_machine.capacity_intent(ReleaseCapacity, working))

            for name, value in (
                ("space_type", new_space),
                ("booking_date", new_date),
                ("start_time", interval.start),
                ("end_time", interval.end),
                ("capacity_requested", new_capacity),
            ):
                if getattr(working, name) != value:
                    note_change(name, getattr(working, name), value)
                    setattr(working, name, value)
            working.space_name = self.policy.space(new_space).name
            working.duration_hours = interval.duration_hours
            if working.holds_capacity:
                intents.append(self.state_machine.capacity_intent(ReserveCapacity, working))

        # Customer details
        for name in _CUSTOMER_FIELDS:
            value = getattr(req, name)
            if value is not None and value != getattr(working, name):
                note_change(name, getattr(working, name), value)
                setattr(working, name, value)

        # Pricing
        catering_changed = (
            req.catering_required is not None and req.catering_required != working.catering_required
        )
        if catering_changed:
            note_change("catering_required", working.catering_required, req.catering_required)
            working.catering_required = bool(req.catering_required)
        if (
            schedule_changed
            or catering_changed
            or req.discount_amount is not None
            or req.additional_services_cost is not None
        ):
            intents += self._reprice(working, req, schedule_changed, catering_changed, note_change)

        if req.internal_notes:
            working.add_internal_note(actor, now, req.internal_notes)

        has_changes = bool(changes) or bool(req.internal_notes)
        if has_changes:
            working.record(
                actor,
                "updated",
                now,
                req.update_reason or "Booking updated",
                changes=changes,
            )

        # Status goes last, through the lifecycle rules.
        event = BookingEvent.APPROVE
        from_status = current.status
        data: Dict[str, Any] = {}
        status_changed = req.status is not None and req.status != working.status
        if status_changed:
            outcome = self._route_status(working, req, now)
            working = outcome.booking
            event = outcome.event
            intents += list(outcome.intents)
            data.update(outcome.data)
            note_change("status", from_status, working.status)

        if not has_changes and not status_changed:
            return None

        requires_notification = schedule_changed or status_changed
        if req.notify_customer and (schedule_changed or catering_changed):
            intents.append(
                self.state_machine.notification(
                    working,
                    NotificationTemplate.BOOKING_MODIFIED,
                    changes=sorted(changes),
                    update_reason=req.update_reason,
                )
            )
        data.update({"changes": changes, "requires_notification": requires_notification})
        return TransitionOutcome(
            booking=working,
            event=event,
            from_status=from_status,
            intents=tuple(intents),
            data=data,
        )

    def _check_reschedule_allowed(self, booking: Booking, req: UpdateBookingRequest, now: datetime) -> None:
        if booking.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            raise InvalidTransitionException(
                current_status=booking.status.value,
                event="reschedule",
                legal_next_states=legal_next_states(booking.status),
                message=f"Cannot reschedule a booking in status '{booking.status.value}'",
            )
        if booking.status != BookingStatus.CONFIRMED:
            return
        hours = hours_between(now, booking.start_datetime(self.tz_name))
        if hours >= self.policy.reschedule_notice_hours:
            return
        if not req.override_reschedule_notice:
            raise OutOfPolicyWindowException(
                f"Confirmed bookings can only be rescheduled "
                f"{self.policy.reschedule_notice_hours} hours in advance",
                reason="insufficient_reschedule_notice",
                details={
                    "hours_until_start": round(hours, 2),
                    "required_notice_hours": self.policy.reschedule_notice_hours,
                },
                override_flag="override_reschedule_notice",
            )
        self.state_machine.record_override(
            booking,
            req.updated_by,
            "override_reschedule_notice",
            now,
            f"RESCHEDULE NOTICE OVERRIDDEN ({round(hours, 1)} hours before start)",
        )

    def _reprice(
        self,
        working: Booking,
        req: UpdateBookingRequest,
        schedule_changed: bool,
        catering_changed: bool,
        note_change: Callable[[str, Any, Any], None],
    ) -> List[SideEffectIntent]:
        if req.additional_services_cost is not None:
            additional: Optional[int] = req.additional_services_cost
        elif catering_changed:
            additional = None
        else:
            additional = working.additional_services_cost

        if req.discount_amount is not None:
            discount: Optional[int] = req.discount_amount
        elif schedule_changed:
            discount = None
        else:
            discount = working.discount_amount

        quote = self.pricing.quote_booking(
            working.space_type,
            working.booking_date,
            working.interval,
            catering_required=working.catering_required,
            additional_services_cost=additional,
            discount_amount=discount,
        )
        old_total = working.total_price
        for name, value in (
            ("hourly_rate", quote.price.hourly_rate),
            ("base_price", quote.price.base_price),
            ("additional_services_cost", quote.additional_services_cost),
            ("discount_amount", quote.discount_amount),
            ("total_price", quote.total_price),
        ):
            if getattr(working, name) != value:
                note_change(name, getattr(working, name), value)
                setattr(working, name, value)

        delta = working.total_price - old_total
        if working.payment_status != PaymentStatus.PAID or delta == 0:
            return []
        if delta > 0:
            return [
                ChargeCustomer(
                    user_id=working.user_id,
                    amount=delta,
                    currency=working.currency,
                    reference=working.booking_number,
                    booking_id=working.id,
                    reason="Booking modification price increase",
                )
            ]
        return [
            IssueRefund(
                user_id=working.user_id,
                amount=-delta,
                currency=working.currency,
                reference=working.booking_number,
                booking_id=working.id,
                reason="Booking modification price decrease",
            )
        ]

    def _route_status(self, working: Booking, req: UpdateBookingRequest, now: datetime) -> TransitionOutcome:
        target = req.status
        assert target is not None
        event = EVENT_FOR_STATUS.get(target)
        if event is None:
            raise InvalidTransitionException(
                current_status=working.status.value,
                event="update",
                legal_next_states=legal_next_states(working.status),
                requested_status=target.value,
                message=f"Status '{target.value}' cannot be set directly",
            )
        # Reject early with the requested status named in the error.
        self.state_machine.target_status(working, event, requested_status=target)

        reason = req.update_reason or f"Status changed to {target.value} by {req.updated_by}"
        transition_request: TransitionRequest
        if event == BookingEvent.APPROVE:
            transition_request = ApproveBookingRequest(
                booking_id=working.id,
                approved_by=req.updated_by,
                payment_confirmed=req.payment_confirmed,
                override_payment_check=req.override_payment_check,
                override_capacity_check=req.override_capacity_check,
                notify_customer=req.notify_customer,
            )
        elif event == BookingEvent.REJECT:
            transition_request = RejectBookingRequest(
                booking_id=working.id,
                rejected_by=req.updated_by,
                reason=reason,
                refund_mode=req.refund_mode or RefundMode.FULL_REFUND,
                notify_customer=req.notify_customer,
            )
        elif event == BookingEvent.CANCEL:
            transition_request = CancelBookingRequest(
                booking_id=working.id,
                cancelled_by=req.updated_by,
                reason=reason,
                refund_mode=req.refund_mode or RefundMode.AUTOMATIC,
                notify_customer=req.notify_customer,
            )
        elif event == BookingEvent.CHECK_IN:
            transition_request = CheckInRequest(
                booking_id=working.id,
                checked_in_by=req.updated_by,
                override_time_restrictions=req.override_time_restrictions,
                override_payment_status=req.override_payment_check,
            )
        elif event == BookingEvent.CHECK_OUT:
            transition_request = CheckOutRequest(booking_id=working.id, checked_out_by=req.updated_by)
        else:
            transition_request = NoShowRequest(
                booking_id=working.id,
                marked_by=req.updated_by,
                reason=req.update_reason,
                notify_customer=req.notify_customer,
            )
        return self.state_machine.apply(working, event, transition_request, now)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (SpaceType, BookingStatus)):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, TimeInterval):
        return str(value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)
