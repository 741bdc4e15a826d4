# slotbook/models/workshop.py
"""Workshop catalog entries (admin-managed)."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..database import Base
from .types import UTCDateTime


class Workshop(Base):
    __tablename__ = "workshops"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    # Comma-separated, sorted
    tags: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("capacity >= 1 AND capacity <= 100", name="ck_workshops_capacity"),
        CheckConstraint("price >= 0", name="ck_workshops_price"),
    )

    def __repr__(self) -> str:
        return f"<Workshop(id={self.id}, title={self.title!r}, capacity={self.capacity})>"
