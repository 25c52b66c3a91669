# backend/booking_engine/schemas/booking_requests.py
"""
Request DTOs for BookingService operations.

Times of day arrive as raw "HH:MM" strings and are parsed by the policy
validator, so a malformed time is reported as an out-of-policy request
rather than a schema error. Every override flag defaults to False; an
override that is actually used is written to the booking's audit trail.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import Field

from booking_engine.core.enums import BookingStatus, RefundMode, SpaceType

from ._strict_base import StrictRequestModel


class AvailabilityQuery(StrictRequestModel):
    space_type: SpaceType
    booking_date: date
    start_time: str
    end_time: str
    capacity_needed: int = Field(default=1, ge=1)
    exclude_booking_id: Optional[str] = None


class PriceQuoteRequest(StrictRequestModel):
    space_type: SpaceType
    booking_date: date
    start_time: str
    end_time: str
    catering_required: bool = False


class CreateBookingRequest(StrictRequestModel):
    user_id: str = Field(min_length=1)
    space_type: SpaceType
    booking_date: date
    start_time: str
    end_time: str
    capacity_requested: int = Field(default=1, ge=1)

    customer_name: str = Field(min_length=1)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    purpose: Optional[str] = None
    special_requirements: Optional[str] = None
    catering_required: bool = False
    space_location: Optional[str] = None
    payment_method: Optional[str] = None
    created_by: Optional[str] = None


class ApproveBookingRequest(StrictRequestModel):
    booking_id: str
    approved_by: str = Field(min_length=1)
    payment_confirmed: bool = False
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    approval_notes: Optional[str] = None
    override_payment_check: bool = False
    override_capacity_check: bool = False
    notify_customer: bool = True


class RejectBookingRequest(StrictRequestModel):
    booking_id: str
    rejected_by: str = Field(min_length=1)
    reason: str = Field(min_length=1)
    rejection_category: Optional[str] = None
    refund_mode: RefundMode = RefundMode.FULL_REFUND
    refund_percentage: Optional[float] = None
    refund_amount: Optional[int] = None
    internal_notes: Optional[str] = None
    notify_customer: bool = True


class CancelBookingRequest(StrictRequestModel):
    booking_id: str
    cancelled_by: str = Field(min_length=1)
    reason: str = Field(min_length=1)
    cancellation_category: Optional[str] = None
    refund_mode: RefundMode = RefundMode.AUTOMATIC
    refund_percentage: Optional[float] = None
    refund_amount: Optional[int] = None
    respect_cancellation_policy: bool = True
    policy_override_reason: Optional[str] = None
    waive_cancellation_fee: bool = False
    emergency_cancellation: bool = False
    effective_cancellation_at: Optional[datetime] = None
    internal_notes: Optional[str] = None
    notify_customer: bool = True


class CheckInRequest(StrictRequestModel):
    booking_id: str
    checked_in_by: str = Field(min_length=1)
    checked_in_at: Optional[datetime] = None
    actual_group_size: Optional[int] = Field(default=None, ge=1)
    verification_method: str = "booking_confirmation"
    verification_id: Optional[str] = None
    checkin_location: Optional[str] = None
    notes: Optional[str] = None
    override_time_restrictions: bool = False
    override_payment_status: bool = False
    override_capacity_limits: bool = False


class CheckOutRequest(StrictRequestModel):
    booking_id: str
    checked_out_by: str = Field(min_length=1)
    checked_out_at: Optional[datetime] = None
    damage_charges: int = 0
    damage_description: Optional[str] = None
    cleaning_charges: int = 0
    additional_charges: int = 0
    customer_rating: Optional[int] = Field(default=None, ge=1, le=5)
    customer_feedback: Optional[str] = None
    notes: Optional[str] = None
    override_overtime_charges: bool = False
    override_damage_charges: bool = False


class NoShowRequest(StrictRequestModel):
    booking_id: str
    marked_by: str = Field(min_length=1)
    reason: Optional[str] = None
    compute_refund: bool = False
    refund_mode: RefundMode = RefundMode.AUTOMATIC
    refund_percentage: Optional[float] = None
    refund_amount: Optional[int] = None
    notify_customer: bool = True


class UpdateBookingRequest(StrictRequestModel):
    """
    Partial update. Only fields that are set are applied.

    A ``status`` value is never written directly: it is routed through the
    lifecycle event that produces it (confirmed -> approve, cancelled ->
    cancel, and so on) with update_reason as the transition reason.
    """

    booking_id: str
    updated_by: str = Field(min_length=1)
    update_reason: Optional[str] = None

    space_type: Optional[SpaceType] = None
    booking_date: Optional[date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    capacity_requested: Optional[int] = Field(default=None, ge=1)
    space_location: Optional[str] = None

    customer_name: Optional[str] = Field(default=None, min_length=1)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    purpose: Optional[str] = None
    special_requirements: Optional[str] = None
    catering_required: Optional[bool] = None

    discount_amount: Optional[int] = None
    additional_services_cost: Optional[int] = None

    status: Optional[BookingStatus] = None
    payment_confirmed: bool = False
    refund_mode: Optional[RefundMode] = None

    internal_notes: Optional[str] = None
    override_capacity_check: bool = False
    override_payment_check: bool = False
    override_reschedule_notice: bool = False
    override_time_restrictions: bool = False
    notify_customer: bool = True


class DeleteBookingRequest(StrictRequestModel):
    booking_id: str
    deleted_by: str = Field(min_length=1)
    reason: str = "Admin cancellation"
