"""
Availability service: slot CRUD and the capacity primitives.

Runs against the in-memory store with a frozen clock.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, time, timedelta
from decimal import Decimal

import pytest

from slotbook.core.exceptions import (
    AuthorizationError,
    CapacityExceededError,
    NotFoundError,
    SlotClosedError,
    SlotHasActiveBookingsError,
    ValidationError,
)
from slotbook.core.enums import SlotKind
from slotbook.core.result import Err, Ok
from slotbook.schemas.time_slot import BulkSlotCreate, TimeSlotCreate, TimeSlotUpdate
from slotbook.services.availability_service import sunday_based_weekday


class TestReserveCapacity:
    def test_reserve_increments_counter(self, services, make_slot):
        slot = make_slot(capacity=2)

        result = services.availability.reserve_capacity(slot.id)

        assert isinstance(result, Ok)
        assert result.value.slot_id == slot.id
        assert result.value.count == 1
        assert services.availability.get_slot(slot.id).unwrap().current_bookings == 1

    def test_full_slot_is_refused(self, services, make_slot):
        slot = make_slot(capacity=1)
        services.availability.reserve_capacity(slot.id).unwrap()

        result = services.availability.reserve_capacity(slot.id)

        assert isinstance(result, Err)
        assert isinstance(result.error, CapacityExceededError)
        assert result.error.details["max_capacity"] == 1
        assert services.availability.get_slot(slot.id).unwrap().current_bookings == 1

    def test_multi_seat_request_cannot_overshoot(self, services, make_slot):
        slot = make_slot(capacity=3)
        services.availability.reserve_capacity(slot.id, 2).unwrap()

        result = services.availability.reserve_capacity(slot.id, 2)

        assert isinstance(result.error, CapacityExceededError)
        assert services.availability.get_slot(slot.id).unwrap().current_bookings == 2

    def test_zero_count_is_invalid(self, services, make_slot):
        slot = make_slot()
        assert isinstance(services.availability.reserve_capacity(slot.id, 0).error, ValidationError)

    def test_unknown_slot(self, services):
        assert isinstance(services.availability.reserve_capacity("missing").error, NotFoundError)

    def test_cutoff_closes_booking(self, services, make_slot, clock):
        slot = make_slot(days_ahead=0, start=time(11, 0), end=time(12, 0))
        # 09:00 now, slot at 11:00, cutoff of one hour
        assert isinstance(services.availability.reserve_capacity(slot.id), Ok)

        clock.advance(hours=1)
        result = services.availability.reserve_capacity(slot.id)

        assert isinstance(result.error, SlotClosedError)
        assert result.error.message == "Booking cutoff passed"

    def test_closed_slot_is_refused(self, services, make_slot, admin):
        slot = make_slot()
        services.availability.update_slot(admin, slot.id, TimeSlotUpdate(is_available=False)).unwrap()

        result = services.availability.reserve_capacity(slot.id)

        assert isinstance(result.error, SlotClosedError)
        assert result.error.message == "Slot is not open for booking"

    def test_concurrent_reservations_never_exceed_capacity(self, services, make_slot):
        slot = make_slot(capacity=5)

        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: services.availability.reserve_capacity(slot.id), range(40)))

        successes = [r for r in results if isinstance(r, Ok)]
        failures = [r for r in results if isinstance(r, Err)]
        assert len(successes) == 5
        assert all(isinstance(r.error, CapacityExceededError) for r in failures)
        assert services.availability.get_slot(slot.id).unwrap().current_bookings == 5


class TestReleaseCapacity:
    def test_release_decrements(self, services, make_slot):
        slot = make_slot()
        services.availability.reserve_capacity(slot.id, 2).unwrap()

        assert isinstance(services.availability.release_capacity(slot.id), Ok)
        assert services.availability.get_slot(slot.id).unwrap().current_bookings == 1

    def test_release_clamps_at_zero(self, services, make_slot, caplog):
        slot = make_slot()

        with caplog.at_level("WARNING"):
            result = services.availability.release_capacity(slot.id, 3)

        assert isinstance(result, Ok)
        assert services.availability.get_slot(slot.id).unwrap().current_bookings == 0
        assert "clamped at zero" in caplog.text

    def test_release_unknown_slot(self, services):
        assert isinstance(services.availability.release_capacity("missing").error, NotFoundError)


class TestListAvailableSlots:
    def test_filters_full_closed_and_cutoff_slots(self, services, make_slot, admin):
        today = date(2026, 3, 2)
        open_slot = make_slot(days_ahead=2, start=time(14, 0), end=time(15, 0))
        early = make_slot(days_ahead=1, start=time(9, 0), end=time(10, 0))
        full = make_slot(days_ahead=1, start=time(11, 0), end=time(12, 0), capacity=1)
        services.availability.reserve_capacity(full.id).unwrap()
        closed = make_slot(days_ahead=3)
        services.availability.update_slot(admin, closed.id, TimeSlotUpdate(is_available=False)).unwrap()
        too_soon = make_slot(days_ahead=0, start=time(9, 30), end=time(10, 30))
        other_item = make_slot(days_ahead=1, item_id="workshop-2")

        result = services.availability.list_available_slots("workshop-1", today, today + timedelta(days=7))

        ids = [slot.id for slot in result.unwrap()]
        assert ids == [early.id, open_slot.id]
        assert full.id not in ids
        assert too_soon.id not in ids
        assert other_item.id not in ids

    def test_no_item_filter_lists_every_item(self, services, make_slot):
        today = date(2026, 3, 2)
        a = make_slot(days_ahead=1, item_id="workshop-1")
        b = make_slot(days_ahead=1, start=time(13, 0), end=time(14, 0), item_id="workshop-2")

        ids = [s.id for s in services.availability.list_available_slots(None, today, today).unwrap()]
        assert ids == []
        ids = [
            s.id
            for s in services.availability.list_available_slots(
                None, today, today + timedelta(days=1)
            ).unwrap()
        ]
        assert ids == [a.id, b.id]

    @pytest.mark.parametrize(
        "start,end",
        [
            (date(2026, 3, 10), date(2026, 3, 9)),
            (date(2026, 3, 1), date(2026, 3, 9)),
            (date(2026, 3, 2), date(2026, 6, 30)),
        ],
    )
    def test_invalid_ranges(self, services, start, end):
        assert isinstance(
            services.availability.list_available_slots(None, start, end).error, ValidationError
        )


class TestSlotAdministration:
    def test_non_admin_cannot_create(self, services, user_a):
        result = services.availability.create_slot(
            user_a,
            TimeSlotCreate(
                date=date(2026, 3, 10),
                start_time=time(10),
                end_time=time(11),
                kind=SlotKind.SPACE,
                max_capacity=4,
            ),
        )
        assert isinstance(result.error, AuthorizationError)

    def test_create_reports_every_violation(self, services, admin):
        result = services.availability.create_slot(
            admin,
            TimeSlotCreate(
                date=date(2026, 2, 1),
                start_time=time(10),
                end_time=time(10, 15),
                kind=SlotKind.SPACE,
                max_capacity=0,
            ),
        )
        assert isinstance(result.error, ValidationError)
        assert len(result.error.errors) == 3

    def test_create_stores_price_as_money(self, services, admin):
        slot = services.availability.create_slot(
            admin,
            TimeSlotCreate(
                date=date(2026, 3, 10),
                start_time=time(10),
                end_time=time(11),
                kind=SlotKind.SPACE,
                max_capacity=4,
                item_id="room-1",
                price=Decimal("15000"),
            ),
        ).unwrap()
        assert slot.price == Decimal("15000.00")
        assert slot.current_bookings == 0

    def test_bulk_creation_skips_excluded_weekdays(self, services, admin):
        # 2026-03-08 is a Sunday, 2026-03-14 a Saturday
        assert sunday_based_weekday(date(2026, 3, 8)) == 0
        assert sunday_based_weekday(date(2026, 3, 14)) == 6

        result = services.availability.create_bulk_slots(
            admin,
            BulkSlotCreate(
                item_id="room-1",
                kind=SlotKind.SPACE,
                start_date=date(2026, 3, 8),
                end_date=date(2026, 3, 14),
                daily_start_time=time(9),
                daily_end_time=time(12, 30),
                slot_duration_minutes=60,
                max_capacity=2,
                excluded_weekdays=[6, 0],
            ),
        )

        slots = result.unwrap()
        assert len(slots) == 5 * 3
        assert {s.date for s in slots} == {date(2026, 3, d) for d in range(9, 14)}
        assert [s.start_time for s in slots if s.date == date(2026, 3, 9)] == [
            time(9),
            time(10),
            time(11),
        ]

    def test_bulk_creation_with_nothing_to_create(self, services, admin):
        result = services.availability.create_bulk_slots(
            admin,
            BulkSlotCreate(
                item_id="room-1",
                kind=SlotKind.SPACE,
                start_date=date(2026, 3, 8),
                end_date=date(2026, 3, 8),
                daily_start_time=time(9),
                daily_end_time=time(10),
                slot_duration_minutes=60,
                max_capacity=2,
                excluded_weekdays=[0],
            ),
        )
        assert isinstance(result.error, ValidationError)
        assert result.error.message == "Schedule produces no slots"

    def test_bulk_excluded_weekdays_are_validated(self):
        with pytest.raises(ValueError):
            BulkSlotCreate(
                item_id="room-1",
                kind=SlotKind.SPACE,
                start_date=date(2026, 3, 8),
                end_date=date(2026, 3, 8),
                daily_start_time=time(9),
                daily_end_time=time(10),
                slot_duration_minutes=60,
                max_capacity=2,
                excluded_weekdays=[7],
            )

    def test_capacity_cannot_drop_below_bookings(self, services, make_slot, admin):
        slot = make_slot(capacity=5)
        services.availability.reserve_capacity(slot.id, 3).unwrap()

        refused = services.availability.update_slot(admin, slot.id, TimeSlotUpdate(max_capacity=2))
        allowed = services.availability.update_slot(admin, slot.id, TimeSlotUpdate(max_capacity=3))

        assert isinstance(refused.error, ValidationError)
        assert allowed.unwrap().max_capacity == 3
        assert allowed.unwrap().current_bookings == 3

    def test_update_keeps_counter(self, services, make_slot, admin):
        slot = make_slot()
        services.availability.reserve_capacity(slot.id).unwrap()

        updated = services.availability.update_slot(
            admin, slot.id, TimeSlotUpdate(start_time=time(9), end_time=time(11))
        ).unwrap()

        assert updated.start_time == time(9)
        assert updated.current_bookings == 1

    def test_delete_refused_while_booked(self, services, make_slot, admin):
        slot = make_slot()
        services.availability.reserve_capacity(slot.id).unwrap()

        refused = services.availability.delete_slot(admin, slot.id)
        assert isinstance(refused.error, SlotHasActiveBookingsError)

        services.availability.release_capacity(slot.id).unwrap()
        assert isinstance(services.availability.delete_slot(admin, slot.id), Ok)
        assert isinstance(services.availability.get_slot(slot.id).error, NotFoundError)

    def test_delete_requires_admin(self, services, make_slot, user_a):
        slot = make_slot()
        assert isinstance(services.availability.delete_slot(user_a, slot.id).error, AuthorizationError)
