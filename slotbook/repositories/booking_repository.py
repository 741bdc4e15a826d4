# slotbook/repositories/booking_repository.py
"""
SQLAlchemy implementation of BookingStore.

Writes go through ``save_versioned``: an UPDATE guarded by the stored
``version`` that bumps it by one. A zero row count means another writer got
there first and the caller must treat its copy as stale.
"""

from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from ..core.enums import BookingStatus, SlotKind
from ..core.exceptions import RepositoryException
from ..domain.entities import Booking
from ..models.booking import Booking as BookingRow
from .base_repository import BaseRepository
from .interfaces import BookingStore
from .payment_repository import payment_from_row


def _to_entity(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        user_id=row.user_id,
        time_slot_id=row.time_slot_id,
        kind=SlotKind(row.kind),
        status=BookingStatus(row.status),
        total_amount=row.total_amount,
        item_id=row.item_id,
        notes=row.notes,
        payment_info=payment_from_row(row.payment) if row.payment is not None else None,
        created_at=row.created_at,
        updated_at=row.updated_at,
        cancelled_at=row.cancelled_at,
        cancellation_reason=row.cancellation_reason,
        version=row.version,
    )


def _columns(booking: Booking) -> dict:
    return {
        "user_id": booking.user_id,
        "time_slot_id": booking.time_slot_id,
        "kind": booking.kind.value,
        "item_id": booking.item_id,
        "status": booking.status.value,
        "total_amount": booking.total_amount,
        "notes": booking.notes,
        "payment_id": booking.payment_info.payment_id if booking.payment_info else None,
        "created_at": booking.created_at,
        "updated_at": booking.updated_at,
        "cancelled_at": booking.cancelled_at,
        "cancellation_reason": booking.cancellation_reason,
    }


class BookingRepository(BaseRepository[BookingRow], BookingStore):
    def __init__(self, session_factory: sessionmaker):
        super().__init__(session_factory, BookingRow)

    def _load(self, db: Session, booking_id: str) -> Optional[Booking]:
        row = db.scalars(
            select(BookingRow)
            .where(BookingRow.id == booking_id)
            .execution_options(populate_existing=True)
        ).first()
        return _to_entity(row) if row else None

    def get(self, booking_id: str) -> Optional[Booking]:
        with self.session() as db:
            return self._load(db, booking_id)

    def list_by_user(self, user_id: str) -> List[Booking]:
        with self.session() as db:
            rows = db.scalars(
                select(BookingRow)
                .where(BookingRow.user_id == user_id)
                .order_by(BookingRow.created_at.desc(), BookingRow.id.desc())
            ).all()
            return [_to_entity(row) for row in rows]

    def list_by_slot(self, slot_id: str) -> List[Booking]:
        with self.session() as db:
            rows = db.scalars(
                select(BookingRow)
                .where(BookingRow.time_slot_id == slot_id)
                .order_by(BookingRow.created_at, BookingRow.id)
            ).all()
            return [_to_entity(row) for row in rows]

    def create(self, booking: Booking) -> Booking:
        with self.session() as db:
            db.add(BookingRow(id=booking.id, version=0, **_columns(booking)))
        stored = self.get(booking.id)
        if stored is None:
            raise RepositoryException(f"Booking {booking.id} was not stored")
        return stored

    def save_versioned(self, booking: Booking, expected_version: int) -> Optional[Booking]:
        with self.session() as db:
            result = db.execute(
                update(BookingRow)
                .where(BookingRow.id == booking.id, BookingRow.version == expected_version)
                .values(version=expected_version + 1, **_columns(booking))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                self.logger.info(
                    "Versioned write lost",
                    extra={"booking_id": booking.id, "expected_version": expected_version},
                )
                return None
            return self._load(db, booking.id)
