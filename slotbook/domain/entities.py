"""
Value types of the booking core.

Entities are frozen dataclasses; services evolve them with
``dataclasses.replace`` and hand the result to the store. Slot dates and
times are interpreted in UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from slotbook.core.constants import DEFAULT_CURRENCY, MONEY_QUANTUM
from slotbook.core.enums import BookingStatus, PaymentMethod, PaymentStatus, RoleName, SlotKind

MoneyLike = Union[Decimal, int, float, str]


def to_money(value: MoneyLike) -> Decimal:
    """Normalize an amount to a 2-place Decimal."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Actor:
    """The caller of an operation: an identity plus a role."""

    user_id: str
    role: RoleName = RoleName.USER

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN

    @classmethod
    def admin(cls, user_id: str = "system") -> "Actor":
        return cls(user_id=user_id, role=RoleName.ADMIN)


@dataclass(frozen=True)
class Workshop:
    id: str
    title: str
    description: str
    price: Decimal
    capacity: int
    tags: frozenset[str] = frozenset()
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class TimeSlot:
    id: str
    date: date
    start_time: time
    end_time: time
    kind: SlotKind
    max_capacity: int
    item_id: Optional[str] = None
    is_available: bool = True
    current_bookings: int = 0
    price: Optional[Decimal] = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def start_datetime(self) -> datetime:
        return datetime.combine(self.date, self.start_time, tzinfo=timezone.utc)

    @property
    def end_datetime(self) -> datetime:
        return datetime.combine(self.date, self.end_time, tzinfo=timezone.utc)

    @property
    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start

    @property
    def remaining_capacity(self) -> int:
        return self.max_capacity - self.current_bookings

    @property
    def has_available_capacity(self) -> bool:
        return self.is_available and self.current_bookings < self.max_capacity

    def is_past(self, now: datetime) -> bool:
        return self.start_datetime <= now

    def has_ended(self, now: datetime) -> bool:
        return self.end_datetime <= now

    def is_booking_allowed(self, now: datetime, cutoff_hours: int = 1) -> bool:
        """Bookings close ``cutoff_hours`` before start."""
        cutoff = self.start_datetime - timedelta(hours=cutoff_hours)
        return now < cutoff and not self.is_past(now)


@dataclass(frozen=True)
class RefundInfo:
    refund_id: str
    refund_amount: Decimal
    reason: str
    refunded_at: datetime
    refund_transaction_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentInfo:
    payment_id: str
    booking_id: str
    method: PaymentMethod
    status: PaymentStatus
    amount: Decimal
    currency: str = DEFAULT_CURRENCY
    idempotency_key: Optional[str] = None
    paid_at: Optional[datetime] = None
    receipt_url: Optional[str] = None
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    refund_info: Optional[RefundInfo] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    @property
    def is_successful(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == PaymentStatus.FAILED

    @property
    def is_refunded(self) -> bool:
        return self.status in (PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED)

    @property
    def is_in_flight(self) -> bool:
        return self.status in (PaymentStatus.PENDING, PaymentStatus.PROCESSING)

    @property
    def can_refund(self) -> bool:
        return self.status == PaymentStatus.COMPLETED and self.refund_info is None

    @property
    def refunded_amount(self) -> Decimal:
        if self.refund_info is None:
            return to_money(0)
        return self.refund_info.refund_amount


@dataclass(frozen=True)
class Booking:
    id: str
    user_id: str
    time_slot_id: str
    kind: SlotKind
    status: BookingStatus
    total_amount: Decimal
    item_id: Optional[str] = None
    notes: Optional[str] = None
    payment_info: Optional[PaymentInfo] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_payment_completed(self) -> bool:
        return self.payment_info is not None and self.payment_info.is_successful

    @property
    def can_refund(self) -> bool:
        return (
            self.status == BookingStatus.CANCELLED
            and self.payment_info is not None
            and self.payment_info.can_refund
        )


@dataclass(frozen=True)
class ReservationToken:
    """Acknowledgement that ``count`` seats on ``slot_id`` are held."""

    token_id: str
    slot_id: str
    count: int
    reserved_at: datetime
