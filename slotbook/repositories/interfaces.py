"""
Store contracts for the booking core.

Each collaborator the services talk to is an explicit ABC. There is one
SQLAlchemy implementation per contract (production) and one in-memory
implementation (tests, local tooling). Implementations raise
``RepositoryException`` for infrastructure failures; business outcomes are
expressed through return values.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional

from slotbook.domain.entities import Booking, PaymentInfo, TimeSlot, Workshop


class WorkshopStore(ABC):
    @abstractmethod
    def get(self, workshop_id: str) -> Optional[Workshop]:
        """Return the workshop, or None if it does not exist."""

    @abstractmethod
    def list(self, skip: int = 0, limit: int = 100) -> List[Workshop]:
        """Workshops ordered by creation time, newest first."""

    @abstractmethod
    def create(self, workshop: Workshop) -> Workshop:
        """Insert a new workshop."""

    @abstractmethod
    def update(self, workshop: Workshop) -> Optional[Workshop]:
        """Overwrite an existing workshop; None if it does not exist."""

    @abstractmethod
    def delete(self, workshop_id: str) -> bool:
        """Delete a workshop. Returns False if it did not exist."""


class SlotStore(ABC):
    @abstractmethod
    def get(self, slot_id: str) -> Optional[TimeSlot]:
        """Return the slot, or None if it does not exist."""

    @abstractmethod
    def list_in_range(
        self, start_date: date, end_date: date, item_id: Optional[str] = None
    ) -> List[TimeSlot]:
        """Slots dated within [start_date, end_date], ordered by date then start time."""

    @abstractmethod
    def create(self, slot: TimeSlot) -> TimeSlot:
        """Insert one slot."""

    @abstractmethod
    def create_many(self, slots: List[TimeSlot]) -> List[TimeSlot]:
        """Insert several slots as one unit: either all are written or none."""

    @abstractmethod
    def update_details(self, slot: TimeSlot) -> bool:
        """
        Overwrite every field except ``current_bookings``.

        Must refuse (return False) when the new ``max_capacity`` is below the
        stored ``current_bookings`` at the moment of the write.
        """

    @abstractmethod
    def delete_if_empty(self, slot_id: str) -> bool:
        """Delete the slot only if ``current_bookings == 0`` at the moment of the write."""

    @abstractmethod
    def try_increment(self, slot_id: str, count: int) -> bool:
        """
        Atomically add ``count`` to ``current_bookings``.

        Succeeds only if the slot is available and
        ``current_bookings + count <= max_capacity``. Concurrent callers on the
        same slot are serialized; unrelated slots are not.
        """

    @abstractmethod
    def decrement(self, slot_id: str, count: int) -> Optional[int]:
        """
        Atomically subtract ``count`` from ``current_bookings``, clamped at 0.

        Returns the new count, or None if the slot does not exist.
        """


class PaymentStore(ABC):
    @abstractmethod
    def get(self, payment_id: str) -> Optional[PaymentInfo]:
        """Return the payment, or None if it does not exist."""

    @abstractmethod
    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[PaymentInfo]:
        """Return the payment recorded for an idempotency key."""

    @abstractmethod
    def create(self, payment: PaymentInfo) -> PaymentInfo:
        """
        Insert a payment.

        If another payment already holds the same idempotency key the stored
        one is returned unchanged.
        """

    @abstractmethod
    def update(self, payment: PaymentInfo) -> PaymentInfo:
        """Overwrite an existing payment."""

    @abstractmethod
    def list_created_between(self, start: datetime, end: datetime) -> List[PaymentInfo]:
        """Payments with ``start <= created_at < end``, oldest first."""


class BookingStore(ABC):
    @abstractmethod
    def get(self, booking_id: str) -> Optional[Booking]:
        """Return the booking with its payment, or None if it does not exist."""

    @abstractmethod
    def list_by_user(self, user_id: str) -> List[Booking]:
        """A user's bookings, newest first."""

    @abstractmethod
    def list_by_slot(self, slot_id: str) -> List[Booking]:
        """Bookings of a slot, oldest first."""

    @abstractmethod
    def create(self, booking: Booking) -> Booking:
        """Insert a booking at version 0."""

    @abstractmethod
    def save_versioned(self, booking: Booking, expected_version: int) -> Optional[Booking]:
        """
        Overwrite the booking if the stored version equals ``expected_version``.

        Returns the stored booking with ``version == expected_version + 1``, or
        None when the stored version differs (or the booking vanished).
        """
