# slotbook/repositories/memory.py
"""
In-memory store adapters.

Used by the service tests and local tooling. Rows are the frozen domain
dataclasses themselves, so nothing handed out can be mutated behind the
store's back. Capacity changes take a per-slot lock (unrelated slots never
contend); every other write takes a per-record lock for the read-compare-write.
"""

from collections import defaultdict
from dataclasses import replace
from datetime import date, datetime
import logging
import threading
from typing import Dict, List, Optional

from ..core.exceptions import RepositoryException
from ..domain.entities import Booking, PaymentInfo, TimeSlot, Workshop
from .interfaces import BookingStore, PaymentStore, SlotStore, WorkshopStore

logger = logging.getLogger(__name__)


class _KeyedLocks:
    """Lazily created ``threading.Lock`` per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)

    def __call__(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks[key]


class InMemoryDatabase:
    """Shared tables so the booking store can hydrate payments like a join would."""

    def __init__(self) -> None:
        self.workshops: Dict[str, Workshop] = {}
        self.slots: Dict[str, TimeSlot] = {}
        self.payments: Dict[str, PaymentInfo] = {}
        self.payment_keys: Dict[str, str] = {}
        # booking_id -> (booking without payment, payment_id)
        self.bookings: Dict[str, tuple[Booking, Optional[str]]] = {}
        self.table_lock = threading.RLock()
        self.row_locks = _KeyedLocks()


class InMemoryWorkshopStore(WorkshopStore):
    def __init__(self, db: Optional[InMemoryDatabase] = None):
        self.db = db or InMemoryDatabase()

    def get(self, workshop_id: str) -> Optional[Workshop]:
        return self.db.workshops.get(workshop_id)

    def list(self, skip: int = 0, limit: int = 100) -> List[Workshop]:
        with self.db.table_lock:
            rows = sorted(
                self.db.workshops.values(), key=lambda w: (w.created_at, w.id), reverse=True
            )
        return rows[skip : skip + limit]

    def create(self, workshop: Workshop) -> Workshop:
        with self.db.table_lock:
            self.db.workshops[workshop.id] = workshop
        return workshop

    def update(self, workshop: Workshop) -> Optional[Workshop]:
        with self.db.table_lock:
            if workshop.id not in self.db.workshops:
                return None
            self.db.workshops[workshop.id] = workshop
        return workshop

    def delete(self, workshop_id: str) -> bool:
        with self.db.table_lock:
            return self.db.workshops.pop(workshop_id, None) is not None


class InMemorySlotStore(SlotStore):
    def __init__(self, db: Optional[InMemoryDatabase] = None):
        self.db = db or InMemoryDatabase()

    def _lock(self, slot_id: str) -> threading.Lock:
        return self.db.row_locks(f"slot:{slot_id}")

    def get(self, slot_id: str) -> Optional[TimeSlot]:
        return self.db.slots.get(slot_id)

    def list_in_range(
        self, start_date: date, end_date: date, item_id: Optional[str] = None
    ) -> List[TimeSlot]:
        with self.db.table_lock:
            rows = list(self.db.slots.values())
        matching = [
            slot
            for slot in rows
            if start_date <= slot.date <= end_date and (item_id is None or slot.item_id == item_id)
        ]
        return sorted(matching, key=lambda s: (s.date, s.start_time, s.id))

    def create(self, slot: TimeSlot) -> TimeSlot:
        with self.db.table_lock:
            self.db.slots[slot.id] = slot
        return slot

    def create_many(self, slots: List[TimeSlot]) -> List[TimeSlot]:
        with self.db.table_lock:
            for slot in slots:
                self.db.slots[slot.id] = slot
        return list(slots)

    def update_details(self, slot: TimeSlot) -> bool:
        with self._lock(slot.id):
            current = self.db.slots.get(slot.id)
            if current is None or slot.max_capacity < current.current_bookings:
                return False
            self.db.slots[slot.id] = replace(slot, current_bookings=current.current_bookings)
            return True

    def delete_if_empty(self, slot_id: str) -> bool:
        with self._lock(slot_id):
            current = self.db.slots.get(slot_id)
            if current is None or current.current_bookings > 0:
                return False
            with self.db.table_lock:
                del self.db.slots[slot_id]
            return True

    def try_increment(self, slot_id: str, count: int) -> bool:
        with self._lock(slot_id):
            current = self.db.slots.get(slot_id)
            if current is None or not current.is_available:
                return False
            if current.current_bookings + count > current.max_capacity:
                return False
            self.db.slots[slot_id] = replace(
                current, current_bookings=current.current_bookings + count
            )
            return True

    def decrement(self, slot_id: str, count: int) -> Optional[int]:
        with self._lock(slot_id):
            current = self.db.slots.get(slot_id)
            if current is None:
                return None
            remaining = max(0, current.current_bookings - count)
            self.db.slots[slot_id] = replace(current, current_bookings=remaining)
            return remaining


class InMemoryPaymentStore(PaymentStore):
    def __init__(self, db: Optional[InMemoryDatabase] = None):
        self.db = db or InMemoryDatabase()

    def get(self, payment_id: str) -> Optional[PaymentInfo]:
        return self.db.payments.get(payment_id)

    def get_by_idempotency_key(self, idempotency_key: str) -> Optional[PaymentInfo]:
        with self.db.table_lock:
            payment_id = self.db.payment_keys.get(idempotency_key)
            return self.db.payments.get(payment_id) if payment_id else None

    def create(self, payment: PaymentInfo) -> PaymentInfo:
        with self.db.table_lock:
            key = payment.idempotency_key
            if key and key in self.db.payment_keys:
                return self.db.payments[self.db.payment_keys[key]]
            self.db.payments[payment.payment_id] = payment
            if key:
                self.db.payment_keys[key] = payment.payment_id
        return payment

    def update(self, payment: PaymentInfo) -> PaymentInfo:
        with self.db.table_lock:
            if payment.payment_id not in self.db.payments:
                raise RepositoryException(f"Payment {payment.payment_id} does not exist")
            self.db.payments[payment.payment_id] = payment
        return payment

    def list_created_between(self, start: datetime, end: datetime) -> List[PaymentInfo]:
        with self.db.table_lock:
            rows = list(self.db.payments.values())
        return sorted(
            (p for p in rows if start <= p.created_at < end),
            key=lambda p: (p.created_at, p.payment_id),
        )


class InMemoryBookingStore(BookingStore):
    def __init__(self, db: Optional[InMemoryDatabase] = None):
        self.db = db or InMemoryDatabase()

    def _hydrate(self, record: tuple[Booking, Optional[str]]) -> Booking:
        booking, payment_id = record
        payment = self.db.payments.get(payment_id) if payment_id else None
        return replace(booking, payment_info=payment)

    def get(self, booking_id: str) -> Optional[Booking]:
        record = self.db.bookings.get(booking_id)
        return self._hydrate(record) if record else None

    def _all(self) -> List[Booking]:
        with self.db.table_lock:
            records = list(self.db.bookings.values())
        return [self._hydrate(record) for record in records]

    def list_by_user(self, user_id: str) -> List[Booking]:
        rows = [b for b in self._all() if b.user_id == user_id]
        return sorted(rows, key=lambda b: (b.created_at, b.id), reverse=True)

    def list_by_slot(self, slot_id: str) -> List[Booking]:
        rows = [b for b in self._all() if b.time_slot_id == slot_id]
        return sorted(rows, key=lambda b: (b.created_at, b.id))

    @staticmethod
    def _record(booking: Booking, version: int) -> tuple[Booking, Optional[str]]:
        payment_id = booking.payment_info.payment_id if booking.payment_info else None
        return replace(booking, payment_info=None, version=version), payment_id

    def create(self, booking: Booking) -> Booking:
        with self.db.table_lock:
            self.db.bookings[booking.id] = self._record(booking, 0)
        stored = self.get(booking.id)
        if stored is None:
            raise RepositoryException(f"Booking {booking.id} was not stored")
        return stored

    def save_versioned(self, booking: Booking, expected_version: int) -> Optional[Booking]:
        with self.db.row_locks(f"booking:{booking.id}"):
            record = self.db.bookings.get(booking.id)
            if record is None or record[0].version != expected_version:
                logger.info(
                    "Versioned write lost",
                    extra={"booking_id": booking.id, "expected_version": expected_version},
                )
                return None
            self.db.bookings[booking.id] = self._record(booking, expected_version + 1)
        return self.get(booking.id)


class InMemoryStores:
    """The four in-memory stores over one shared database."""

    def __init__(self) -> None:
        self.db = InMemoryDatabase()
        self.workshops = InMemoryWorkshopStore(self.db)
        self.slots = InMemorySlotStore(self.db)
        self.payments = InMemoryPaymentStore(self.db)
        self.bookings = InMemoryBookingStore(self.db)
