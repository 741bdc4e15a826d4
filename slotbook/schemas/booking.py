"""Booking and payment request schemas."""

from typing import Optional

from ..core.enums import PaymentMethod
from ._strict_base import StrictRequestModel


class PaymentRequest(StrictRequestModel):
    """
    How a booking should be paid.

    ``idempotency_key`` identifies the booking attempt: repeating a
    ``create_booking`` call with the same key returns the first outcome.
    """

    method: PaymentMethod
    idempotency_key: Optional[str] = None
    currency: Optional[str] = None
    payment_token: Optional[str] = None
