# slotbook/repositories/slot_repository.py
"""
SQLAlchemy implementation of SlotStore.

Capacity changes are single conditional UPDATE statements; the row count
tells whether the guard held. No row is read-modified-written in Python, so
concurrent reservations on one slot cannot over-book it regardless of how
many processes share the database.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import case, delete, select, update
from sqlalchemy.orm import sessionmaker

from ..core.enums import SlotKind
from ..domain.entities import TimeSlot
from ..models.time_slot import TimeSlot as TimeSlotRow
from .base_repository import BaseRepository
from .interfaces import SlotStore


def _to_entity(row: TimeSlotRow) -> TimeSlot:
    return TimeSlot(
        id=row.id,
        date=row.date,
        start_time=row.start_time,
        end_time=row.end_time,
        kind=SlotKind(row.kind),
        item_id=row.item_id,
        is_available=row.is_available,
        max_capacity=row.max_capacity,
        current_bookings=row.current_bookings,
        price=row.price,
        created_at=row.created_at,
    )


def _to_row(slot: TimeSlot) -> TimeSlotRow:
    return TimeSlotRow(
        id=slot.id,
        date=slot.date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        kind=slot.kind.value,
        item_id=slot.item_id,
        is_available=slot.is_available,
        max_capacity=slot.max_capacity,
        current_bookings=slot.current_bookings,
        price=slot.price,
        created_at=slot.created_at,
    )


class SlotRepository(BaseRepository[TimeSlotRow], SlotStore):
    def __init__(self, session_factory: sessionmaker):
        super().__init__(session_factory, TimeSlotRow)

    def get(self, slot_id: str) -> Optional[TimeSlot]:
        with self.session() as db:
            row = self._get_row(db, slot_id)
            return _to_entity(row) if row else None

    def list_in_range(
        self, start_date: date, end_date: date, item_id: Optional[str] = None
    ) -> List[TimeSlot]:
        query = select(TimeSlotRow).where(
            TimeSlotRow.date >= start_date, TimeSlotRow.date <= end_date
        )
        if item_id is not None:
            query = query.where(TimeSlotRow.item_id == item_id)
        query = query.order_by(TimeSlotRow.date, TimeSlotRow.start_time, TimeSlotRow.id)
        with self.session() as db:
            return [_to_entity(row) for row in db.scalars(query).all()]

    def create(self, slot: TimeSlot) -> TimeSlot:
        with self.session() as db:
            db.add(_to_row(slot))
        return slot

    def create_many(self, slots: List[TimeSlot]) -> List[TimeSlot]:
        if not slots:
            return []
        with self.session() as db:
            db.add_all([_to_row(slot) for slot in slots])
        self.logger.info("Inserted %d time slots", len(slots))
        return list(slots)

    def update_details(self, slot: TimeSlot) -> bool:
        with self.session() as db:
            result = db.execute(
                update(TimeSlotRow)
                .where(
                    TimeSlotRow.id == slot.id,
                    TimeSlotRow.current_bookings <= slot.max_capacity,
                )
                .values(
                    date=slot.date,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    kind=slot.kind.value,
                    item_id=slot.item_id,
                    is_available=slot.is_available,
                    max_capacity=slot.max_capacity,
                    price=slot.price,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    def delete_if_empty(self, slot_id: str) -> bool:
        with self.session() as db:
            result = db.execute(
                delete(TimeSlotRow)
                .where(TimeSlotRow.id == slot_id, TimeSlotRow.current_bookings == 0)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    def try_increment(self, slot_id: str, count: int) -> bool:
        with self.session() as db:
            result = db.execute(
                update(TimeSlotRow)
                .where(
                    TimeSlotRow.id == slot_id,
                    TimeSlotRow.is_available.is_(True),
                    TimeSlotRow.current_bookings + count <= TimeSlotRow.max_capacity,
                )
                .values(current_bookings=TimeSlotRow.current_bookings + count)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    def decrement(self, slot_id: str, count: int) -> Optional[int]:
        with self.session() as db:
            result = db.execute(
                update(TimeSlotRow)
                .where(TimeSlotRow.id == slot_id)
                .values(
                    current_bookings=case(
                        (TimeSlotRow.current_bookings >= count, TimeSlotRow.current_bookings - count),
                        else_=0,
                    )
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None
            return db.scalar(
                select(TimeSlotRow.current_bookings).where(TimeSlotRow.id == slot_id)
            )
