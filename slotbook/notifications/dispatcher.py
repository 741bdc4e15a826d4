"""
Notification dispatch for booking lifecycle events.

Services call the dispatcher after the state change is committed. Delivery
is fire-and-forget: :func:`notify` logs a failing hook and returns, so a
broken channel never undoes or blocks a booking.
"""

from datetime import datetime, timezone
from decimal import Decimal
import logging
import threading
from typing import Any, Callable, List, Optional, Protocol, runtime_checkable

from slotbook.core.enums import BookingStatus
from slotbook.domain.entities import Booking

from .events import BookingStatusChanged, PaymentCompleted, RefundProcessed

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationDispatcher(Protocol):
    def on_booking_status_changed(
        self, booking: Booking, previous_status: Optional[BookingStatus]
    ) -> None:
        ...

    def on_payment_completed(self, booking: Booking) -> None:
        ...

    def on_refund_processed(self, booking: Booking, refund_amount: Decimal) -> None:
        ...


def notify(hook: Callable[..., Any], *args: Any) -> None:
    """Invoke a dispatcher hook, logging (never raising) on failure."""
    try:
        hook(*args)
    except Exception:
        logger.exception("Notification hook %s failed", getattr(hook, "__name__", hook))


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LoggingNotificationDispatcher:
    """Production adapter: emits one structured log line per event."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.logger = log or logging.getLogger("slotbook.notifications")

    def on_booking_status_changed(
        self, booking: Booking, previous_status: Optional[BookingStatus]
    ) -> None:
        event = BookingStatusChanged(
            booking_id=booking.id,
            user_id=booking.user_id,
            previous_status=previous_status.value if previous_status else None,
            new_status=booking.status.value,
            occurred_at=_now(),
        )
        self.logger.info("booking_status_changed", extra=event.to_dict())

    def on_payment_completed(self, booking: Booking) -> None:
        payment = booking.payment_info
        if payment is None:
            return
        event = PaymentCompleted(
            booking_id=booking.id,
            payment_id=payment.payment_id,
            amount=payment.amount,
            occurred_at=_now(),
        )
        self.logger.info("payment_completed", extra=event.to_dict())

    def on_refund_processed(self, booking: Booking, refund_amount: Decimal) -> None:
        event = RefundProcessed(
            booking_id=booking.id, refund_amount=refund_amount, occurred_at=_now()
        )
        self.logger.info("refund_processed", extra=event.to_dict())


class RecordingNotificationDispatcher:
    """Keeps every event in memory; used by tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: List[Any] = []

    def _record(self, event: Any) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: type) -> List[Any]:
        with self._lock:
            return [e for e in self.events if isinstance(e, event_type)]

    def on_booking_status_changed(
        self, booking: Booking, previous_status: Optional[BookingStatus]
    ) -> None:
        self._record(
            BookingStatusChanged(
                booking_id=booking.id,
                user_id=booking.user_id,
                previous_status=previous_status.value if previous_status else None,
                new_status=booking.status.value,
                occurred_at=_now(),
            )
        )

    def on_payment_completed(self, booking: Booking) -> None:
        payment = booking.payment_info
        self._record(
            PaymentCompleted(
                booking_id=booking.id,
                payment_id=payment.payment_id if payment else "",
                amount=payment.amount if payment else Decimal("0"),
                occurred_at=_now(),
            )
        )

    def on_refund_processed(self, booking: Booking, refund_amount: Decimal) -> None:
        self._record(
            RefundProcessed(booking_id=booking.id, refund_amount=refund_amount, occurred_at=_now())
        )
