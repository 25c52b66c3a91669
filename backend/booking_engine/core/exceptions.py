# backend/booking_engine/core/exceptions.py
"""
Domain-specific exceptions for the booking engine.

These exceptions provide clear, business-focused error messages. They are
raised inside the engine and converted to failed OperationResult payloads
by BookingService, so callers never see a raw exception for a rule
violation.
"""

from typing import Any, Dict, Iterable, Optional

from .enums import ErrorKind


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    kind: ErrorKind = ErrorKind.INVALID_REQUEST

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        override_flag: Optional[str] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.override_flag = override_flag
        super().__init__(self.message)

    def to_error_detail(self) -> Dict[str, Any]:
        """Structured detail attached to a failed OperationResult."""
        detail: Dict[str, Any] = {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }
        if self.override_flag:
            detail["override_flag"] = self.override_flag
        return detail


class ValidationException(DomainException):
    """Raised when a request is malformed or incomplete."""

    kind = ErrorKind.INVALID_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested booking does not exist."""

    kind = ErrorKind.NOT_FOUND


class InvalidTransitionException(DomainException):
    """Raised when an event is not legal from the booking's current status."""

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(
        self,
        current_status: str,
        event: str,
        legal_next_states: Iterable[str],
        requested_status: Optional[str] = None,
        message: Optional[str] = None,
    ):
        legal = sorted(legal_next_states)
        super().__init__(
            message=message or f"Cannot {event} a booking in status '{current_status}'",
            code="INVALID_TRANSITION",
            details={
                "current_status": current_status,
                "requested_status": requested_status,
                "event": event,
                "legal_next_states": legal,
            },
        )


class CapacityExceededException(DomainException):
    """Raised when granting the booking would exceed the space's capacity."""

    kind = ErrorKind.CAPACITY_EXCEEDED

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
        override_flag: Optional[str] = "override_capacity_check",
    ):
        super().__init__(
            message=message or "Insufficient capacity for the requested time slot",
            code="CAPACITY_EXCEEDED",
            details=details or {},
            override_flag=override_flag,
        )


class PaymentNotConfirmedException(DomainException):
    """Raised when an operation requires a paid booking."""

    kind = ErrorKind.PAYMENT_NOT_CONFIRMED

    def __init__(self, payment_status: str, override_flag: str):
        super().__init__(
            message=f"Payment must be confirmed (current payment status: {payment_status})",
            code="PAYMENT_NOT_CONFIRMED",
            details={"payment_status": payment_status},
            override_flag=override_flag,
        )


class OutOfPolicyWindowException(DomainException):
    """Raised when a time-based policy rule rejects the request."""

    kind = ErrorKind.OUT_OF_POLICY_WINDOW

    def __init__(
        self,
        message: str,
        reason: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        override_flag: Optional[str] = None,
    ):
        payload = {"reason": reason}
        payload.update(details or {})
        super().__init__(
            message=message,
            code="OUT_OF_POLICY_WINDOW",
            details=payload,
            override_flag=override_flag,
        )
        self.reason = reason


class NegativeTotalException(DomainException):
    """Raised when a monetary computation would produce a negative amount."""

    kind = ErrorKind.NEGATIVE_TOTAL

    def __init__(self, field: str, amount: Any):
        super().__init__(
            message=f"{field} cannot be negative",
            code="NEGATIVE_TOTAL",
            details={"field": field, "amount": str(amount)},
        )


class ServiceException(DomainException):
    """Raised when a service operation fails for infrastructure reasons."""

    kind = ErrorKind.INFRASTRUCTURE_ERROR


class ConcurrencyConflictException(ServiceException):
    """Raised when a save races with another writer or a lock times out."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="CONCURRENCY_CONFLICT", details=details)


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    serialization problems.
    """
