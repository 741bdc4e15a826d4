# slotbook/models/booking.py
"""
Booking records.

Bookings snapshot ``total_amount`` at creation so later price edits on the
workshop or slot never change them. Rows are never deleted. ``version``
increments on every write and backs optimistic concurrency.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..database import Base
from .payment import Payment
from .types import UTCDateTime


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    time_slot_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("time_slots.id"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    item_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("payments.id"), nullable=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    payment: Mapped[Optional[Payment]] = relationship(Payment, lazy="joined")

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_bookings_total_amount"),
        Index("ix_bookings_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user_id={self.user_id}, status={self.status}, v={self.version})>"
