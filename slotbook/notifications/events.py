"""Booking notification payloads."""
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional


@dataclass
class BookingStatusChanged:
    """Fired after a booking moves to a new status."""

    booking_id: str
    user_id: str
    previous_status: Optional[str]
    new_status: str
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PaymentCompleted:
    """Fired when a booking's payment settles."""

    booking_id: str
    payment_id: str
    amount: Decimal
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RefundProcessed:
    """Fired after money is returned for a booking."""

    booking_id: str
    refund_amount: Decimal
    occurred_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
