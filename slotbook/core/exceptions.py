# slotbook/core/exceptions.py
"""
Domain-specific exceptions for the SlotBook booking core.

Every expected business failure is one of these classes. Services hand them
back inside ``Err`` results; callers that prefer exceptions can ``unwrap()``
and let the API layer convert them with ``to_http_exception()``.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ForbiddenException(DomainException):
    """Raised when the actor lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


# Booking core taxonomy


class ValidationError(ValidationException):
    """Bad input, rejected before any mutation."""

    def __init__(self, message: str, *, errors: Optional[list[str]] = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"errors": list(errors) if errors else [message]},
        )

    @property
    def errors(self) -> list[str]:
        return list(self.details.get("errors", []))


class InvalidTransitionError(ValidationError):
    """A booking status change that the state machine does not allow."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change booking status from {current} to {requested}")
        self.code = "INVALID_TRANSITION"
        self.details.update({"from": current, "to": requested})


class NotFoundError(NotFoundException):
    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} not found",
            code="NOT_FOUND",
            details={"resource": resource, "id": resource_id},
        )


class AuthorizationError(ForbiddenException):
    """The actor does not hold the role (or ownership) the action needs."""

    def __init__(self, message: str = "Admin role required"):
        super().__init__(message=message, code="FORBIDDEN")


class CapacityExceededError(ConflictException):
    def __init__(self, slot_id: str, *, max_capacity: int, current_bookings: int, requested: int):
        super().__init__(
            message="Slot full",
            code="CAPACITY_EXCEEDED",
            details={
                "slot_id": slot_id,
                "max_capacity": max_capacity,
                "current_bookings": current_bookings,
                "requested": requested,
            },
        )


class SlotClosedError(BusinessRuleException):
    """Booking cutoff passed, or the slot is closed for booking."""

    def __init__(self, slot_id: str, message: str = "Booking cutoff passed"):
        super().__init__(message=message, code="SLOT_CLOSED", details={"slot_id": slot_id})


class SlotHasActiveBookingsError(ConflictException):
    def __init__(self, slot_id: str, current_bookings: int):
        super().__init__(
            message=f"Slot has {current_bookings} active booking(s) and cannot be deleted",
            code="SLOT_HAS_ACTIVE_BOOKINGS",
            details={"slot_id": slot_id, "current_bookings": current_bookings},
        )


class CancellationWindowClosedError(BusinessRuleException):
    def __init__(self, booking_id: str, cutoff_hours: int):
        super().__init__(
            message=f"Bookings can only be cancelled up to {cutoff_hours} hours before start",
            code="CANCELLATION_WINDOW_CLOSED",
            details={"booking_id": booking_id, "cutoff_hours": cutoff_hours},
        )


class ConcurrencyConflictError(ConflictException):
    """Stale version; the caller should reload and retry its original intent."""

    def __init__(self, resource_id: str, expected_version: Optional[int] = None):
        super().__init__(
            message="The record was modified concurrently; reload and retry",
            code="CONCURRENCY_CONFLICT",
            details={"id": resource_id, "expected_version": expected_version},
        )


class PaymentError(BusinessRuleException):
    """Base for every payment failure surfaced to callers."""

    def __init__(
        self,
        message: str,
        code: str = "PAYMENT_ERROR",
        *,
        payment_id: Optional[str] = None,
        retryable: bool = False,
    ):
        super().__init__(
            message=message,
            code=code,
            details={"payment_id": payment_id, "retryable": retryable},
        )

    @property
    def payment_id(self) -> Optional[str]:
        return self.details.get("payment_id")

    @property
    def retryable(self) -> bool:
        return bool(self.details.get("retryable"))


class PaymentDeclinedError(PaymentError):
    def __init__(self, reason: str, *, payment_id: Optional[str] = None):
        super().__init__(
            f"Payment declined: {reason}", "PAYMENT_DECLINED", payment_id=payment_id
        )


class PaymentTimeoutError(PaymentError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, attempts: int, *, payment_id: Optional[str] = None):
        super().__init__(
            f"Payment gateway did not respond after {attempts} attempt(s)",
            "PAYMENT_TIMEOUT",
            payment_id=payment_id,
            retryable=True,
        )


class RetryNotAllowedError(PaymentError):
    def __init__(self, payment_id: str, current_status: str):
        super().__init__(
            f"Only failed payments can be retried (status: {current_status})",
            "RETRY_NOT_ALLOWED",
            payment_id=payment_id,
        )


class CancelNotAllowedError(PaymentError):
    def __init__(self, payment_id: str, current_status: str):
        super().__init__(
            f"Only pending payments can be cancelled (status: {current_status})",
            "CANCEL_NOT_ALLOWED",
            payment_id=payment_id,
        )


class RefundNotAllowedError(PaymentError):
    def __init__(self, payment_id: str, reason: str):
        super().__init__(reason, "REFUND_NOT_ALLOWED", payment_id=payment_id)


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as database connection
    issues, query failures, or constraint violations.
    """
