"""
Booking lifecycle tests.

The services run on in-memory stores, the scriptable gateway and a frozen
clock starting Monday 2026-03-02 09:00 UTC.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import time
from decimal import Decimal
from unittest.mock import patch

import pytest

from slotbook.container import build_services
from slotbook.core.booking_lock import InProcessMutex
from slotbook.core.enums import BookingStatus, GatewayStatus, PaymentStatus, SlotKind
from slotbook.core.exceptions import (
    AuthorizationError,
    CancellationWindowClosedError,
    CapacityExceededError,
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    PaymentDeclinedError,
    PaymentError,
    PaymentTimeoutError,
    RefundNotAllowedError,
    ValidationError,
)
from slotbook.core.result import Err, Ok
from slotbook.integrations.payment_gateway import GatewayTimeout
from slotbook.notifications.events import BookingStatusChanged, PaymentCompleted, RefundProcessed
from tests.conftest import AMOUNT, card


def book(services, user, slot, amount=AMOUNT, payment="default"):
    return services.bookings.create_booking(
        user.user_id,
        slot.id,
        slot.kind,
        slot.item_id,
        amount,
        payment=card() if payment == "default" else payment,
    )


def seats(services, slot):
    return services.availability.get_slot(slot.id).unwrap().current_bookings


class TestEndToEnd:
    def test_capacity_cancellation_and_rebooking(self, services, make_slot, clock, user_a, user_b):
        slot = make_slot(days_ahead=10, capacity=1)

        first = book(services, user_a, slot)
        assert isinstance(first, Ok)
        assert first.value.status == BookingStatus.CONFIRMED
        assert first.value.payment_info.status == PaymentStatus.COMPLETED
        assert seats(services, slot) == 1

        blocked = book(services, user_b, slot)
        assert isinstance(blocked, Err)
        assert isinstance(blocked.error, CapacityExceededError)
        assert seats(services, slot) == 1

        clock.advance(days=1)
        cancelled = services.bookings.cancel_booking(first.value.id, "plans changed", user_a)

        booking = cancelled.unwrap()
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancellation_reason == "plans changed"
        assert booking.payment_info.status == PaymentStatus.REFUNDED
        assert booking.payment_info.refund_info.refund_amount == Decimal("50000.00")
        assert seats(services, slot) == 0

        second = book(services, user_b, slot)
        assert second.unwrap().status == BookingStatus.CONFIRMED
        assert seats(services, slot) == 1


class TestCreateBooking:
    def test_notifications_on_create(self, services, make_slot, notifier, user_a):
        slot = make_slot()

        booking = book(services, user_a, slot).unwrap()

        changes = notifier.of_type(BookingStatusChanged)
        assert [(e.previous_status, e.new_status) for e in changes] == [(None, "confirmed")]
        (paid,) = notifier.of_type(PaymentCompleted)
        assert paid.booking_id == booking.id
        assert paid.amount == AMOUNT

    def test_free_booking_needs_no_payment(self, services, make_slot, gateway, user_a):
        slot = make_slot()

        booking = book(services, user_a, slot, amount=Decimal("0"), payment=None).unwrap()

        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_info is None
        assert gateway.call_count() == 0

    def test_paid_booking_requires_payment(self, services, make_slot, user_a):
        slot = make_slot()

        result = book(services, user_a, slot, payment=None)

        assert isinstance(result.error, ValidationError)
        assert seats(services, slot) == 0

    @pytest.mark.parametrize("amount", ["NaN", "Infinity", float("nan"), Decimal("-Infinity")])
    def test_non_finite_amount_is_a_validation_error(self, services, make_slot, gateway, user_a, amount):
        slot = make_slot()

        result = book(services, user_a, slot, amount=amount)

        assert isinstance(result, Err)
        assert isinstance(result.error, ValidationError)
        assert "Total amount must be a number" in result.error.errors
        assert gateway.call_count() == 0
        assert seats(services, slot) == 0

    def test_kind_and_item_must_match_slot(self, services, make_slot, user_a):
        slot = make_slot()

        wrong_kind = services.bookings.create_booking(
            user_a.user_id, slot.id, SlotKind.SPACE, slot.item_id, AMOUNT, payment=card()
        )
        wrong_item = services.bookings.create_booking(
            user_a.user_id, slot.id, SlotKind.WORKSHOP, "workshop-9", AMOUNT, payment=card()
        )

        assert isinstance(wrong_kind.error, ValidationError)
        assert isinstance(wrong_item.error, ValidationError)
        assert seats(services, slot) == 0

    def test_unknown_slot(self, services, user_a):
        result = services.bookings.create_booking(
            user_a.user_id, "missing", SlotKind.WORKSHOP, None, AMOUNT, payment=card()
        )
        assert isinstance(result.error, NotFoundError)

    def test_declined_charge_releases_seat(self, services, make_slot, gateway, user_a):
        slot = make_slot(capacity=1)
        gateway.script("charge", GatewayStatus.DECLINED)

        result = book(services, user_a, slot)

        assert isinstance(result.error, PaymentDeclinedError)
        assert seats(services, slot) == 0
        assert services.bookings.list_user_bookings(user_a.user_id) == []

    def test_gateway_fault_releases_seat_and_propagates(self, services, make_slot, gateway, user_a):
        slot = make_slot(capacity=1)

        with patch.object(gateway, "charge", side_effect=RuntimeError("invalid api key")):
            with pytest.raises(RuntimeError):
                book(services, user_a, slot)

        assert seats(services, slot) == 0
        assert services.bookings.list_user_bookings(user_a.user_id) == []

    def test_pending_charge_creates_pending_booking(self, services, make_slot, gateway, notifier, user_a):
        slot = make_slot()
        gateway.script("charge", GatewayStatus.PENDING)

        booking = book(services, user_a, slot).unwrap()

        assert booking.status == BookingStatus.PENDING
        assert booking.payment_info.status == PaymentStatus.PENDING
        assert seats(services, slot) == 1
        assert notifier.of_type(PaymentCompleted) == []

    def test_same_key_creates_one_booking(self, services, make_slot, gateway, user_a):
        slot = make_slot()
        request = card("req-1")

        first = book(services, user_a, slot, payment=request).unwrap()
        second = book(services, user_a, slot, payment=request).unwrap()

        assert second == first
        assert gateway.call_count("charge") == 1
        assert seats(services, slot) == 1

    def test_key_reused_for_another_booking_is_rejected(self, services, make_slot, gateway, user_a, user_b):
        first_slot = make_slot(start=time(10, 0))
        other_slot = make_slot(start=time(14, 0), end=time(16, 0))
        request = card("shared")
        original = book(services, user_a, first_slot, amount=Decimal("500.00"), payment=request).unwrap()

        other_user = book(services, user_b, other_slot, amount=Decimal("1.00"), payment=request)
        other_slot_same_user = book(services, user_a, other_slot, amount=Decimal("500.00"), payment=request)
        other_amount = book(services, user_a, first_slot, amount=Decimal("1.00"), payment=request)

        for result in (other_user, other_slot_same_user, other_amount):
            assert isinstance(result, Err)
            assert isinstance(result.error, ValidationError)
        assert gateway.call_count("charge") == 1
        assert seats(services, first_slot) == 1
        assert seats(services, other_slot) == 0
        assert services.bookings.list_user_bookings(user_b.user_id) == []
        assert services.bookings.list_user_bookings(user_a.user_id) == [original]

    def test_timed_out_charge_resumes_with_same_key(self, services, make_slot, gateway, user_a):
        slot = make_slot()
        gateway.script("charge", *[GatewayTimeout("charge")] * 3)
        request = card("req-1")

        timed_out = book(services, user_a, slot, payment=request)

        assert isinstance(timed_out.error, PaymentTimeoutError)
        assert seats(services, slot) == 0

        resumed = book(services, user_a, slot, payment=request).unwrap()

        assert resumed.status == BookingStatus.CONFIRMED
        assert resumed.payment_info.payment_id == timed_out.error.payment_id
        assert resumed.payment_info.booking_id == resumed.id
        assert seats(services, slot) == 1

    def test_concurrent_bookings_fill_slot_exactly(self, services, make_slot):
        slot = make_slot(capacity=3)

        def attempt(n):
            return services.bookings.create_booking(
                f"user-{n}", slot.id, slot.kind, slot.item_id, AMOUNT, payment=card()
            )

        with ThreadPoolExecutor(max_workers=10) as pool:
            results = list(pool.map(attempt, range(12)))

        assert sum(isinstance(r, Ok) for r in results) == 3
        assert all(isinstance(r.error, CapacityExceededError) for r in results if isinstance(r, Err))
        assert seats(services, slot) == 3
        assert len(services.bookings.bookings.list_by_slot(slot.id)) == 3

    def test_failing_notifier_does_not_affect_booking(self, stores, gateway, clock, make_slot, user_a):
        class Broken:
            def on_booking_status_changed(self, booking, previous_status):
                raise RuntimeError("smtp down")

            def on_payment_completed(self, booking):
                raise RuntimeError("smtp down")

            def on_refund_processed(self, booking, refund_amount):
                raise RuntimeError("smtp down")

        broken = build_services(
            stores, gateway=gateway, notifier=Broken(), mutex=InProcessMutex(), clock=clock
        )
        slot = make_slot()

        booking = book(broken, user_a, slot).unwrap()
        cancelled = broken.bookings.cancel_booking(booking.id, "changed my mind", user_a)

        assert cancelled.unwrap().status == BookingStatus.CANCELLED


class TestCancelBooking:
    def test_refund_follows_policy_tier(self, services, make_slot, notifier, user_a):
        # Tuesday 10:00, 25 hours away
        slot = make_slot(days_ahead=1, start=time(10), end=time(11))
        booking = book(services, user_a, slot).unwrap()

        cancelled = services.bookings.cancel_booking(booking.id, "sick", user_a).unwrap()

        assert cancelled.payment_info.status == PaymentStatus.PARTIALLY_REFUNDED
        assert cancelled.payment_info.refunded_amount == Decimal("25000.00")
        assert cancelled.version == 1
        (refund,) = notifier.of_type(RefundProcessed)
        assert refund.refund_amount == Decimal("25000.00")
        assert notifier.of_type(BookingStatusChanged)[-1].previous_status == "confirmed"

    def test_user_cannot_cancel_inside_window(self, services, make_slot, clock, user_a):
        slot = make_slot(days_ahead=1, start=time(10), end=time(11))
        booking = book(services, user_a, slot).unwrap()
        clock.advance(hours=2)

        result = services.bookings.cancel_booking(booking.id, "late", user_a)

        assert isinstance(result.error, CancellationWindowClosedError)
        assert services.bookings.get_booking(booking.id).unwrap().status == BookingStatus.CONFIRMED
        assert seats(services, slot) == 1

    def test_admin_can_cancel_inside_window_without_refund(self, services, make_slot, clock, gateway, admin, user_a):
        slot = make_slot(days_ahead=1, start=time(10), end=time(11))
        booking = book(services, user_a, slot).unwrap()
        clock.advance(hours=2)

        cancelled = services.bookings.cancel_booking(booking.id, "venue closed", admin).unwrap()

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.payment_info.status == PaymentStatus.COMPLETED
        assert cancelled.can_refund
        assert gateway.call_count("refund") == 0
        assert seats(services, slot) == 0

    def test_only_owner_or_admin_can_cancel(self, services, make_slot, user_a, user_b):
        booking = book(services, user_a, make_slot()).unwrap()

        result = services.bookings.cancel_booking(booking.id, "not mine", user_b)

        assert isinstance(result.error, AuthorizationError)

    def test_pending_booking_cancels_payment(self, services, make_slot, gateway, user_a):
        slot = make_slot()
        gateway.script("charge", GatewayStatus.PENDING)
        booking = book(services, user_a, slot).unwrap()

        cancelled = services.bookings.cancel_booking(booking.id, "changed", user_a).unwrap()

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.payment_info.status == PaymentStatus.CANCELLED
        assert gateway.call_count("cancel") == 1
        assert seats(services, slot) == 0

    def test_cancel_twice_is_invalid(self, services, make_slot, gateway, user_a):
        booking = book(services, user_a, make_slot()).unwrap()
        services.bookings.cancel_booking(booking.id, "first", user_a).unwrap()

        again = services.bookings.cancel_booking(booking.id, "second", user_a)

        assert isinstance(again.error, InvalidTransitionError)
        assert gateway.call_count("refund") == 1

    def test_stale_version_is_rejected_before_side_effects(self, services, make_slot, gateway, user_a):
        slot = make_slot()
        booking = book(services, user_a, slot).unwrap()

        result = services.bookings.cancel_booking(booking.id, "stale", user_a, expected_version=3)

        assert isinstance(result.error, ConcurrencyConflictError)
        assert gateway.call_count("refund") == 0
        assert seats(services, slot) == 1

    def test_concurrent_cancels_apply_once(self, services, make_slot, gateway, user_a):
        slot = make_slot()
        booking = book(services, user_a, slot).unwrap()

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(
                pool.map(
                    lambda _: services.bookings.cancel_booking(booking.id, "race", user_a), range(4)
                )
            )

        assert sum(isinstance(r, Ok) for r in results) == 1
        assert gateway.call_count("refund") == 1
        assert seats(services, slot) == 0

    def test_reason_is_required(self, services, make_slot, user_a):
        booking = book(services, user_a, make_slot()).unwrap()
        assert isinstance(
            services.bookings.cancel_booking(booking.id, "", user_a).error, ValidationError
        )


class TestOtherTransitions:
    def test_confirm_waits_for_payment(self, services, make_slot, gateway, notifier, user_a):
        gateway.script("charge", GatewayStatus.PENDING)
        booking = book(services, user_a, make_slot()).unwrap()

        early = services.bookings.confirm_booking(booking.id)
        assert isinstance(early.error, PaymentError)
        assert early.error.code == "PAYMENT_NOT_COMPLETED"

        services.payments.apply_gateway_update(
            booking.payment_info.payment_id, GatewayStatus.SUCCEEDED
        ).unwrap()
        confirmed = services.bookings.confirm_booking(booking.id, expected_version=0).unwrap()

        assert confirmed.status == BookingStatus.CONFIRMED
        assert confirmed.payment_info.status == PaymentStatus.COMPLETED
        assert len(notifier.of_type(PaymentCompleted)) == 1

    def test_complete_after_slot_ends(self, services, make_slot, clock, admin, user_a, user_b):
        slot = make_slot(days_ahead=0, start=time(11), end=time(12))
        booking = book(services, user_a, slot).unwrap()

        too_early = services.bookings.complete_booking(booking.id, user_a)
        assert isinstance(too_early.error, ValidationError)

        clock.advance(hours=3)
        assert isinstance(
            services.bookings.complete_booking(booking.id, user_b).error, AuthorizationError
        )
        completed = services.bookings.complete_booking(booking.id, user_a).unwrap()
        assert completed.status == BookingStatus.COMPLETED

        reopened = services.bookings.update_status(
            booking.id, BookingStatus.CONFIRMED, admin
        )
        assert isinstance(reopened.error, InvalidTransitionError)

    def test_no_show_is_admin_only(self, services, make_slot, clock, admin, user_a):
        slot = make_slot(days_ahead=0, start=time(11), end=time(12))
        booking = book(services, user_a, slot).unwrap()
        clock.advance(hours=3)

        assert isinstance(
            services.bookings.mark_no_show(booking.id, user_a).error, AuthorizationError
        )
        marked = services.bookings.mark_no_show(booking.id, admin).unwrap()
        assert marked.status == BookingStatus.NO_SHOW
        assert seats(services, slot) == 1

    def test_pending_is_never_a_target(self, services, make_slot, admin, user_a):
        booking = book(services, user_a, make_slot()).unwrap()

        result = services.bookings.update_status(booking.id, BookingStatus.PENDING, admin)

        assert isinstance(result.error, InvalidTransitionError)

    def test_update_status_requires_admin(self, services, make_slot, user_a):
        booking = book(services, user_a, make_slot()).unwrap()

        result = services.bookings.update_status(booking.id, BookingStatus.CANCELLED, user_a)

        assert isinstance(result.error, AuthorizationError)

    def test_admin_cancel_through_update_status(self, services, make_slot, admin, user_a):
        slot = make_slot()
        booking = book(services, user_a, slot).unwrap()

        cancelled = services.bookings.update_status(
            booking.id, BookingStatus.CANCELLED, admin, reason="duplicate"
        ).unwrap()

        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancellation_reason == "duplicate"
        assert seats(services, slot) == 0


class TestRefundBooking:
    @pytest.fixture
    def late_cancelled(self, services, make_slot, clock, admin, user_a):
        slot = make_slot(days_ahead=1, start=time(10), end=time(11))
        booking = book(services, user_a, slot).unwrap()
        clock.advance(hours=2)
        return services.bookings.cancel_booking(booking.id, "venue closed", admin).unwrap()

    def test_full_refund_moves_to_refunded(self, services, late_cancelled, admin, notifier):
        refunded = services.bookings.refund_booking(
            late_cancelled.id, None, "goodwill", admin
        ).unwrap()

        assert refunded.status == BookingStatus.REFUNDED
        assert refunded.payment_info.status == PaymentStatus.REFUNDED
        assert notifier.of_type(RefundProcessed)[-1].refund_amount == AMOUNT

    def test_partial_refund_keeps_cancelled(self, services, late_cancelled, admin):
        partial = services.bookings.refund_booking(
            late_cancelled.id, Decimal("10000"), "goodwill", admin
        ).unwrap()

        assert partial.status == BookingStatus.CANCELLED
        assert partial.payment_info.status == PaymentStatus.PARTIALLY_REFUNDED

        again = services.bookings.refund_booking(late_cancelled.id, None, "again", admin)
        assert isinstance(again.error, RefundNotAllowedError)

    def test_requires_admin(self, services, late_cancelled, user_a):
        result = services.bookings.refund_booking(late_cancelled.id, None, "please", user_a)
        assert isinstance(result.error, AuthorizationError)

    def test_active_booking_cannot_be_refunded(self, services, make_slot, admin, user_a):
        booking = book(services, user_a, make_slot()).unwrap()

        result = services.bookings.refund_booking(booking.id, None, "early", admin)

        assert isinstance(result.error, InvalidTransitionError)


class TestQueries:
    def test_get_booking_checks_owner(self, services, make_slot, admin, user_a, user_b):
        booking = book(services, user_a, make_slot()).unwrap()

        assert services.bookings.get_booking(booking.id, user_a).unwrap().id == booking.id
        assert services.bookings.get_booking(booking.id, admin).unwrap().id == booking.id
        assert isinstance(services.bookings.get_booking(booking.id, user_b).error, AuthorizationError)
        assert isinstance(services.bookings.get_booking("missing").error, NotFoundError)

    def test_user_bookings_newest_first(self, services, make_slot, clock, user_a):
        first = book(services, user_a, make_slot(days_ahead=5)).unwrap()
        clock.advance(minutes=5)
        second = book(services, user_a, make_slot(days_ahead=6)).unwrap()

        ids = [b.id for b in services.bookings.list_user_bookings(user_a.user_id)]

        assert ids == [second.id, first.id]

    def test_slot_bookings_are_admin_only(self, services, make_slot, admin, user_a):
        slot = make_slot()
        booking = book(services, user_a, slot).unwrap()

        assert [b.id for b in services.bookings.list_slot_bookings(slot.id, admin).unwrap()] == [booking.id]
        assert isinstance(services.bookings.list_slot_bookings(slot.id, user_a).error, AuthorizationError)

    def test_refund_policy_text(self, services, make_slot, user_a):
        booking = book(services, user_a, make_slot(days_ahead=10)).unwrap()

        text = services.bookings.refund_policy_text(booking.id).unwrap()

        assert "100%" in text
