# slotbook/models/time_slot.py
"""
Bookable time slots.

``current_bookings`` is only ever written through the slot repository's
conditional UPDATE statements, never through ORM attribute assignment.
"""

from datetime import date as date_type, datetime, time
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, Index, Integer, Numeric, String, Time
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..database import Base
from .types import UTCDateTime


class TimeSlot(Base):
    __tablename__ = "time_slots"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    item_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_bookings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_time_slots_time_order"),
        CheckConstraint(
            "current_bookings >= 0 AND current_bookings <= max_capacity",
            name="ck_time_slots_capacity",
        ),
        Index("ix_time_slots_item_date", "item_id", "date"),
        Index("ix_time_slots_date_start", "date", "start_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<TimeSlot(id={self.id}, date={self.date}, "
            f"bookings={self.current_bookings}/{self.max_capacity})>"
        )
