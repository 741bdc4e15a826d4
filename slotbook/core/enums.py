"""
Core enums for the SlotBook booking core.

All enums inherit from (str, Enum) so the stored value is the lowercase
string, matching what the SQLAlchemy columns persist.
"""

from enum import Enum


class RoleName(str, Enum):
    """Roles an actor may hold. Only the admin role carries extra rights."""

    ADMIN = "admin"
    USER = "user"


class SlotKind(str, Enum):
    """What a time slot (and a booking of it) is for."""

    WORKSHOP = "workshop"
    SPACE = "space"


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # Capacity held, payment still in flight
    CONFIRMED = "confirmed"  # Paid (or free) and holding a seat
    COMPLETED = "completed"  # Slot ended, attended
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"  # Slot ended, user did not attend
    REFUNDED = "refunded"  # Cancelled and fully refunded afterwards

    @property
    def is_active(self) -> bool:
        return self in (BookingStatus.PENDING, BookingStatus.CONFIRMED)

    @property
    def is_terminal(self) -> bool:
        return self in (
            BookingStatus.COMPLETED,
            BookingStatus.NO_SHOW,
            BookingStatus.REFUNDED,
        )


class PaymentStatus(str, Enum):
    """Local payment record statuses."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class PaymentMethod(str, Enum):
    """Supported payment methods."""

    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    KAKAO_PAY = "kakao_pay"
    NAVER_PAY = "naver_pay"
    PAYPAL = "paypal"


class GatewayStatus(str, Enum):
    """Outcome reported by a payment gateway for a single call."""

    SUCCEEDED = "succeeded"
    PENDING = "pending"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
