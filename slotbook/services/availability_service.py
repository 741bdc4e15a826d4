# slotbook/services/availability_service.py
"""
Availability Service for slotbook

Owns time slots and their capacity counters. Reservations are a single
atomic check-and-increment in the slot store, so the only guarantee the
service adds on top is validation and error classification; it keeps no
per-slot state of its own and never takes a global lock.
"""

from dataclasses import replace
from datetime import date, datetime, time, timedelta
import logging
from typing import List, Optional

from ..core.config import settings
from ..core.exceptions import (
    AuthorizationError,
    CapacityExceededError,
    DomainException,
    NotFoundError,
    SlotClosedError,
    SlotHasActiveBookingsError,
    ValidationError,
)
from ..core.result import Err, Ok, Result
from ..core.ulid_helper import generate_ulid
from ..domain import validators as v
from ..domain.entities import Actor, ReservationToken, TimeSlot, to_money
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.interfaces import SlotStore
from ..schemas.time_slot import BulkSlotCreate, TimeSlotCreate, TimeSlotUpdate
from .base import BaseService, Clock

logger = logging.getLogger(__name__)


def sunday_based_weekday(day: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def _add_minutes(value: time, minutes: int) -> Optional[time]:
    total = value.hour * 60 + value.minute + minutes
    if total >= 24 * 60:
        return None
    return time(total // 60, total % 60)


def require_admin(actor: Actor) -> Optional[AuthorizationError]:
    if actor.is_admin:
        return None
    return AuthorizationError()


class AvailabilityService(BaseService):
    """
    Slot CRUD (admin only) plus the capacity primitives used by bookings.

    Booking closes ``booking_cutoff_hours`` before a slot starts; after that
    reservations fail with ``SlotClosedError`` even if seats remain.
    """

    def __init__(
        self,
        slots: SlotStore,
        *,
        clock: Optional[Clock] = None,
        booking_cutoff_hours: Optional[int] = None,
        max_slot_advance_days: Optional[int] = None,
        max_query_range_days: Optional[int] = None,
    ):
        super().__init__(clock)
        self.slots = slots
        self.booking_cutoff_hours = (
            settings.booking_cutoff_hours if booking_cutoff_hours is None else booking_cutoff_hours
        )
        self.max_slot_advance_days = max_slot_advance_days or settings.max_slot_advance_days
        self.max_query_range_days = max_query_range_days or settings.max_query_range_days

    # Capacity

    @BaseService.measure_operation("reserve_capacity")
    def reserve_capacity(self, slot_id: str, count: int = 1) -> Result[ReservationToken, DomainException]:
        if count < 1:
            return Err(ValidationError("Reservation count must be at least 1"))

        slot = self.slots.get(slot_id)
        if slot is None:
            prometheus_metrics.record_capacity_reservation("not_found")
            return Err(NotFoundError("TimeSlot", slot_id))
        closed = self._closed_error(slot)
        if closed is not None:
            prometheus_metrics.record_capacity_reservation("closed")
            return Err(closed)

        if not self.slots.try_increment(slot_id, count):
            # Re-read only to classify the refusal
            current = self.slots.get(slot_id)
            if current is None:
                prometheus_metrics.record_capacity_reservation("not_found")
                return Err(NotFoundError("TimeSlot", slot_id))
            closed = self._closed_error(current)
            if closed is not None:
                prometheus_metrics.record_capacity_reservation("closed")
                return Err(closed)
            prometheus_metrics.record_capacity_reservation("full")
            self.logger.info(
                "Slot %s full: %d/%d, requested %d",
                slot_id,
                current.current_bookings,
                current.max_capacity,
                count,
            )
            return Err(
                CapacityExceededError(
                    slot_id,
                    max_capacity=current.max_capacity,
                    current_bookings=current.current_bookings,
                    requested=count,
                )
            )

        prometheus_metrics.record_capacity_reservation("reserved")
        return Ok(
            ReservationToken(
                token_id=generate_ulid(), slot_id=slot_id, count=count, reserved_at=self.now()
            )
        )

    def _closed_error(self, slot: TimeSlot) -> Optional[SlotClosedError]:
        if not slot.is_available:
            return SlotClosedError(slot.id, "Slot is not open for booking")
        if not slot.is_booking_allowed(self.now(), self.booking_cutoff_hours):
            return SlotClosedError(slot.id)
        return None

    @BaseService.measure_operation("release_capacity")
    def release_capacity(self, slot_id: str, count: int = 1) -> Result[None, NotFoundError]:
        before = self.slots.get(slot_id)
        remaining = self.slots.decrement(slot_id, count)
        if remaining is None:
            return Err(NotFoundError("TimeSlot", slot_id))
        if before is not None and before.current_bookings < count:
            self.logger.warning(
                "Capacity release on slot %s clamped at zero (had %d, released %d)",
                slot_id,
                before.current_bookings,
                count,
            )
        prometheus_metrics.record_capacity_reservation("released")
        return Ok(None)

    # Queries

    def get_slot(self, slot_id: str) -> Result[TimeSlot, NotFoundError]:
        slot = self.slots.get(slot_id)
        if slot is None:
            return Err(NotFoundError("TimeSlot", slot_id))
        return Ok(slot)

    @BaseService.measure_operation("list_available_slots")
    def list_available_slots(
        self, item_id: Optional[str], start_date: date, end_date: date
    ) -> Result[List[TimeSlot], ValidationError]:
        """Open slots with free seats whose booking cutoff has not passed, soonest first."""
        now = self.now()
        problem = v.validate_date_range(start_date, end_date, now.date(), self.max_query_range_days)
        if problem:
            return Err(ValidationError(problem, errors=[problem]))

        candidates = self.slots.list_in_range(start_date, end_date, item_id)
        available = [
            slot
            for slot in candidates
            if slot.has_available_capacity
            and slot.is_booking_allowed(now, self.booking_cutoff_hours)
        ]
        available.sort(key=lambda slot: (slot.start_datetime, slot.id))
        return Ok(available)

    # Admin CRUD

    def _slot_errors(self, slot: TimeSlot, *, check_date: bool = True) -> List[str]:
        today = self.now().date()
        return v.collect_errors(
            v.validate_time_range(slot.start_time, slot.end_time),
            v.validate_capacity(slot.max_capacity),
            v.validate_slot_date(slot.date, today, self.max_slot_advance_days) if check_date else None,
            v.validate_item_id(slot.item_id),
            v.validate_price(slot.price) if slot.price is not None else None,
        )

    @BaseService.measure_operation("create_slot")
    def create_slot(self, actor: Actor, data: TimeSlotCreate) -> Result[TimeSlot, DomainException]:
        denied = require_admin(actor)
        if denied:
            return Err(denied)

        slot = TimeSlot(
            id=generate_ulid(),
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            kind=data.kind,
            max_capacity=data.max_capacity,
            item_id=data.item_id,
            is_available=data.is_available,
            price=to_money(data.price) if data.price is not None else None,
            created_at=self.now(),
        )
        errors = self._slot_errors(slot)
        if errors:
            return Err(ValidationError("Invalid time slot", errors=errors))

        created = self.slots.create(slot)
        self.logger.info("Created slot %s on %s %s-%s", slot.id, slot.date, slot.start_time, slot.end_time)
        return Ok(created)

    @BaseService.measure_operation("create_bulk_slots")
    def create_bulk_slots(self, actor: Actor, data: BulkSlotCreate) -> Result[List[TimeSlot], DomainException]:
        denied = require_admin(actor)
        if denied:
            return Err(denied)

        now = self.now()
        today = now.date()
        errors = v.collect_errors(
            v.validate_date_range(data.start_date, data.end_date, today, self.max_query_range_days),
            v.validate_slot_duration(data.slot_duration_minutes),
            v.validate_capacity(data.max_capacity),
            v.validate_item_id(data.item_id),
            v.validate_price(data.price) if data.price is not None else None,
            None
            if data.daily_start_time < data.daily_end_time
            else "Daily end time must be after daily start time",
        )
        if errors:
            return Err(ValidationError("Invalid bulk slot schedule", errors=errors))

        slots = self._expand_schedule(data, now)
        if not slots:
            return Err(
                ValidationError(
                    "Schedule produces no slots",
                    errors=["No slot fits the daily window on the selected dates"],
                )
            )

        # Every slot is validated before any is written
        slot_errors: List[str] = []
        for slot in slots:
            for message in self._slot_errors(slot):
                slot_errors.append(f"{slot.date} {slot.start_time:%H:%M}: {message}")
        if slot_errors:
            return Err(ValidationError("Invalid bulk slot schedule", errors=slot_errors))

        created = self.slots.create_many(slots)
        self.logger.info(
            "Created %d slots from %s to %s for item %s",
            len(created),
            data.start_date,
            data.end_date,
            data.item_id,
        )
        return Ok(created)

    def _expand_schedule(self, data: BulkSlotCreate, now: datetime) -> List[TimeSlot]:
        excluded = set(data.excluded_weekdays)
        price = to_money(data.price) if data.price is not None else None
        slots: List[TimeSlot] = []
        day = data.start_date
        while day <= data.end_date:
            if sunday_based_weekday(day) not in excluded:
                start = data.daily_start_time
                while True:
                    end = _add_minutes(start, data.slot_duration_minutes)
                    if end is None or end > data.daily_end_time:
                        break
                    slots.append(
                        TimeSlot(
                            id=generate_ulid(),
                            date=day,
                            start_time=start,
                            end_time=end,
                            kind=data.kind,
                            max_capacity=data.max_capacity,
                            item_id=data.item_id,
                            price=price,
                            created_at=now,
                        )
                    )
                    start = end
            day += timedelta(days=1)
        return slots

    @BaseService.measure_operation("update_slot")
    def update_slot(
        self, actor: Actor, slot_id: str, data: TimeSlotUpdate
    ) -> Result[TimeSlot, DomainException]:
        denied = require_admin(actor)
        if denied:
            return Err(denied)

        current = self.slots.get(slot_id)
        if current is None:
            return Err(NotFoundError("TimeSlot", slot_id))

        changes = data.model_dump(exclude_unset=True)
        if "price" in changes and changes["price"] is not None:
            changes["price"] = to_money(changes["price"])
        updated = replace(current, **changes)

        errors = self._slot_errors(updated, check_date="date" in changes)
        if updated.max_capacity < current.current_bookings:
            errors.append(
                f"Capacity cannot be lowered below the {current.current_bookings} existing bookings"
            )
        if errors:
            return Err(ValidationError("Invalid time slot update", errors=errors))

        if not self.slots.update_details(updated):
            latest = self.slots.get(slot_id)
            if latest is None:
                return Err(NotFoundError("TimeSlot", slot_id))
            message = (
                f"Capacity cannot be lowered below the {latest.current_bookings} existing bookings"
            )
            return Err(ValidationError("Invalid time slot update", errors=[message]))

        stored = self.slots.get(slot_id)
        if stored is None:
            return Err(NotFoundError("TimeSlot", slot_id))
        self.logger.info("Updated slot %s: %s", slot_id, sorted(changes))
        return Ok(stored)

    @BaseService.measure_operation("delete_slot")
    def delete_slot(self, actor: Actor, slot_id: str) -> Result[None, DomainException]:
        denied = require_admin(actor)
        if denied:
            return Err(denied)

        if self.slots.get(slot_id) is None:
            return Err(NotFoundError("TimeSlot", slot_id))
        if not self.slots.delete_if_empty(slot_id):
            latest = self.slots.get(slot_id)
            if latest is None:
                return Err(NotFoundError("TimeSlot", slot_id))
            return Err(SlotHasActiveBookingsError(slot_id, latest.current_bookings))

        self.logger.info("Deleted slot %s", slot_id)
        return Ok(None)
