"""Time slot request schemas."""

import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_validator

from ..core.enums import SlotKind
from ._strict_base import StrictRequestModel


class TimeSlotCreate(StrictRequestModel):
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    kind: SlotKind
    max_capacity: int
    item_id: Optional[str] = None
    is_available: bool = True
    price: Optional[Decimal] = None


class TimeSlotUpdate(StrictRequestModel):
    """
    Partial update of a slot's schedule and settings.

    ``current_bookings`` is not part of it; only reservations change it.
    """

    date: Optional[dt.date] = None
    start_time: Optional[dt.time] = None
    end_time: Optional[dt.time] = None
    max_capacity: Optional[int] = None
    is_available: Optional[bool] = None
    price: Optional[Decimal] = None


class BulkSlotCreate(StrictRequestModel):
    """
    A repeating daily schedule.

    Slots of ``slot_duration_minutes`` are laid back to back from
    ``daily_start_time`` until the next one would pass ``daily_end_time``, on
    every date in ``[start_date, end_date]`` whose weekday is not excluded.
    Weekdays are numbered 0 (Sunday) to 6 (Saturday).
    """

    item_id: Optional[str] = None
    kind: SlotKind
    start_date: dt.date
    end_date: dt.date
    daily_start_time: dt.time
    daily_end_time: dt.time
    slot_duration_minutes: int
    max_capacity: int
    excluded_weekdays: List[int] = Field(default_factory=list)
    price: Optional[Decimal] = None

    @field_validator("excluded_weekdays")
    @classmethod
    def _check_weekdays(cls, value: List[int]) -> List[int]:
        for day in value:
            if day < 0 or day > 6:
                raise ValueError("excluded_weekdays must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))
