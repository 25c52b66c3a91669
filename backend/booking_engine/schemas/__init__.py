"""Pydantic schemas for booking snapshots, requests and results."""

from .booking import AuditEntry, Booking
from .booking_requests import (
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
from .results import OperationResult

__all__ = [
    "ApproveBookingRequest",
    "AuditEntry",
    "AvailabilityQuery",
    "Booking",
    "CancelBookingRequest",
    "CheckInRequest",
    "CheckOutRequest",
    "CreateBookingRequest",
    "DeleteBookingRequest",
    "NoShowRequest",
    "OperationResult",
    "PriceQuoteRequest",
    "RejectBookingRequest",
    "UpdateBookingRequest",
]
