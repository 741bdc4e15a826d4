"""Error taxonomy and the Result type."""

from fastapi import HTTPException
import pytest

from slotbook.core.exceptions import (
    AuthorizationError,
    CapacityExceededError,
    InvalidTransitionError,
    NotFoundError,
    PaymentDeclinedError,
    PaymentTimeoutError,
    SlotClosedError,
    ValidationError,
)
from slotbook.core.result import Err, Ok


class TestExceptions:
    def test_validation_error_collects_messages(self):
        error = ValidationError("Invalid booking", errors=["a", "b"])

        assert error.code == "VALIDATION_ERROR"
        assert error.errors == ["a", "b"]

    def test_single_message_is_its_own_error(self):
        assert ValidationError("Bad").errors == ["Bad"]

    @pytest.mark.parametrize(
        "error,status",
        [
            (ValidationError("x"), 400),
            (InvalidTransitionError("completed", "confirmed"), 400),
            (AuthorizationError(), 403),
            (NotFoundError("Booking", "b1"), 404),
            (CapacityExceededError("s1", max_capacity=1, current_bookings=1, requested=1), 409),
            (SlotClosedError("s1"), 422),
            (PaymentDeclinedError("Card declined"), 422),
            (PaymentTimeoutError(3), 503),
        ],
    )
    def test_http_mapping(self, error, status):
        http = error.to_http_exception()

        assert isinstance(http, HTTPException)
        assert http.status_code == status
        assert http.detail["code"] == error.code
        assert http.detail["message"] == error.message

    def test_payment_errors_carry_retry_hint(self):
        assert PaymentTimeoutError(3, payment_id="p1").retryable
        assert PaymentTimeoutError(3, payment_id="p1").payment_id == "p1"
        assert not PaymentDeclinedError("Card declined").retryable


class TestResult:
    def test_ok(self):
        result = Ok(3)

        assert result.is_ok and not result.is_err
        assert result.unwrap() == 3
        assert result.map(lambda x: x + 1) == Ok(4)

    def test_err(self):
        error = NotFoundError("Booking", "b1")
        result = Err(error)

        assert result.is_err
        assert result.unwrap_or(None) is None
        assert result.map(lambda x: x + 1) is result
        with pytest.raises(NotFoundError):
            result.unwrap()
