# slotbook/services/booking_service.py
"""
Booking Service for slotbook

Drives the booking state machine:

    (new) -> pending -> confirmed -> completed
                 |           |----> no_show
                 |           '----> cancelled -> refunded
                 '----------------> cancelled

Every mutation of an existing booking runs under the per-booking keyed
mutex and is written with a versioned save, so two concurrent mutations of
one booking can never both apply. A caller-supplied ``expected_version``
that no longer matches is rejected before any side effect.

Creation order is reserve -> charge -> persist; cancellation order is
refund -> release -> persist. Notification hooks run after the write and
never affect the outcome.
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from ..core.booking_lock import InProcessMutex, KeyedMutex, keyed_lock
from ..core.config import settings
from ..core.enums import BookingStatus, PaymentStatus, SlotKind
from ..core.exceptions import (
    AuthorizationError,
    CancellationWindowClosedError,
    ConcurrencyConflictError,
    DomainException,
    NotFoundError,
    PaymentError,
    RefundNotAllowedError,
    ValidationError,
)
from ..core.result import Err, Ok, Result
from ..core.ulid_helper import generate_ulid
from ..domain import validators as v
from ..domain.entities import Actor, Booking, MoneyLike, TimeSlot, to_money
from ..domain.state_machine import INITIAL_STATUS, check_transition
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..notifications.dispatcher import NotificationDispatcher, notify
from ..repositories.interfaces import BookingStore
from ..schemas.booking import PaymentRequest
from .availability_service import AvailabilityService, require_admin
from .base import BaseService, Clock
from .payment_orchestrator import PaymentOrchestrator
from .refund_policy_engine import RefundPolicyEngine

ADMIN_CANCELLATION_REASON = "Cancelled by administrator"


class BookingService(BaseService):
    def __init__(
        self,
        bookings: BookingStore,
        availability: AvailabilityService,
        payments: PaymentOrchestrator,
        refund_policy: RefundPolicyEngine,
        notifier: NotificationDispatcher,
        *,
        mutex: Optional[KeyedMutex] = None,
        clock: Optional[Clock] = None,
        cancellation_cutoff_hours: Optional[int] = None,
    ):
        super().__init__(clock)
        self.bookings = bookings
        self.availability = availability
        self.payments = payments
        self.refund_policy = refund_policy
        self.notifier = notifier
        self.mutex = mutex or InProcessMutex()
        self.cancellation_cutoff_hours = (
            settings.cancellation_cutoff_hours
            if cancellation_cutoff_hours is None
            else cancellation_cutoff_hours
        )

    # Creation

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        user_id: str,
        slot_id: str,
        kind: SlotKind,
        item_id: Optional[str],
        total_amount: MoneyLike,
        payment: Optional[PaymentRequest] = None,
        notes: Optional[str] = None,
    ) -> Result[Booking, DomainException]:
        """
        Reserve a seat, charge for it and record the booking.

        A zero ``total_amount`` skips the charge. A failed charge releases the
        seat before the payment error is returned. With
        ``payment.idempotency_key`` set, repeating the call returns the booking
        the first call created; reusing the key for another user, slot or
        amount is a ``ValidationError``.
        """
        errors = v.collect_errors(
            None if user_id and user_id.strip() else "User id is required",
            v.validate_total_amount(total_amount),
            v.validate_notes(notes),
            v.validate_item_id(item_id),
        )
        if not errors:
            amount = to_money(total_amount)
            if amount > 0:
                if payment is None:
                    errors.append("Payment details are required for a paid booking")
                else:
                    errors.extend(v.collect_errors(v.validate_payment_amount(amount)))
        if errors:
            return Err(ValidationError("Invalid booking request", errors=errors))

        slot_result = self.availability.get_slot(slot_id)
        if isinstance(slot_result, Err):
            return slot_result
        slot = slot_result.value
        mismatch = self._slot_mismatch(slot, kind, item_id)
        if mismatch:
            return Err(ValidationError(mismatch, errors=[mismatch]))

        request_key = payment.idempotency_key if payment else None
        if not request_key:
            return self._create(generate_ulid(), user_id, slot, amount, payment, notes, None)

        with keyed_lock(self.mutex, "booking-request", request_key) as acquired:
            if not acquired:
                return Err(ConcurrencyConflictError(request_key))
            booking_id = generate_ulid()
            previous = self.payments.find_by_idempotency_key(request_key)
            if previous is not None:
                existing = self.bookings.get(previous.booking_id)
                if existing is not None:
                    if (
                        existing.user_id != user_id
                        or existing.time_slot_id != slot.id
                        or existing.total_amount != amount
                    ):
                        self.logger.warning(
                            "Idempotency key %s reused by user %s for a different booking",
                            request_key,
                            user_id,
                        )
                        message = "Idempotency key already used for a different booking"
                        return Err(ValidationError(message, errors=[message]))
                    self.logger.info("Replaying booking %s for key %s", existing.id, request_key)
                    return Ok(existing)
                booking_id = previous.booking_id
            return self._create(booking_id, user_id, slot, amount, payment, notes, request_key)

    @staticmethod
    def _slot_mismatch(slot: TimeSlot, kind: SlotKind, item_id: Optional[str]) -> Optional[str]:
        if slot.kind != kind:
            return f"Slot {slot.id} is a {slot.kind.value} slot, not {kind.value}"
        if item_id is not None and slot.item_id is not None and slot.item_id != item_id:
            return f"Slot {slot.id} does not belong to item {item_id}"
        return None

    def _create(
        self,
        booking_id: str,
        user_id: str,
        slot: TimeSlot,
        amount: Decimal,
        payment: Optional[PaymentRequest],
        notes: Optional[str],
        request_key: Optional[str],
    ) -> Result[Booking, DomainException]:
        reservation = self.availability.reserve_capacity(slot.id, 1)
        if isinstance(reservation, Err):
            return reservation

        payment_info = None
        if amount > 0 and payment is not None:
            try:
                charged = self.payments.charge(
                    booking_id,
                    amount,
                    payment.method,
                    currency=payment.currency,
                    idempotency_key=request_key or f"booking:{booking_id}",
                    payment_token=payment.payment_token,
                )
            except Exception:
                self.availability.release_capacity(slot.id, reservation.value.count)
                self.logger.exception("Charge for booking %s raised; seat released", booking_id)
                raise
            if isinstance(charged, Err):
                self.availability.release_capacity(slot.id, reservation.value.count)
                self.logger.info(
                    "Charge for booking %s failed (%s); seat released",
                    booking_id,
                    charged.error.code,
                )
                return charged
            payment_info = charged.value

        status = BookingStatus.CONFIRMED
        if payment_info is not None and not payment_info.is_successful:
            status = INITIAL_STATUS

        now = self.now()
        booking = self.bookings.create(
            Booking(
                id=booking_id,
                user_id=user_id,
                time_slot_id=slot.id,
                kind=slot.kind,
                status=status,
                total_amount=amount,
                item_id=slot.item_id,
                notes=notes,
                payment_info=payment_info,
                created_at=now,
            )
        )
        prometheus_metrics.record_booking_transition("none", status.value)
        self.logger.info(
            "Booking %s created for user %s on slot %s (%s)",
            booking.id,
            user_id,
            slot.id,
            status.value,
        )
        notify(self.notifier.on_booking_status_changed, booking, None)
        if booking.is_payment_completed:
            notify(self.notifier.on_payment_completed, booking)
        return Ok(booking)

    # Shared mutation plumbing

    def _load_for_update(
        self, booking_id: str, expected_version: Optional[int]
    ) -> Result[Booking, DomainException]:
        booking = self.bookings.get(booking_id)
        if booking is None:
            return Err(NotFoundError("Booking", booking_id))
        if expected_version is not None and booking.version != expected_version:
            return Err(ConcurrencyConflictError(booking_id, expected_version))
        return Ok(booking)

    def _save(self, booking: Booking, updated: Booking) -> Result[Booking, DomainException]:
        saved = self.bookings.save_versioned(updated, booking.version)
        if saved is None:
            return Err(ConcurrencyConflictError(booking.id, booking.version))
        if saved.status != booking.status:
            prometheus_metrics.record_booking_transition(booking.status.value, saved.status.value)
            self.logger.info(
                "Booking %s: %s -> %s", booking.id, booking.status.value, saved.status.value
            )
            notify(self.notifier.on_booking_status_changed, saved, booking.status)
        return Ok(saved)

    def _slot_for(self, booking: Booking) -> Result[TimeSlot, DomainException]:
        return self.availability.get_slot(booking.time_slot_id)

    # Cancellation

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        booking_id: str,
        reason: str,
        actor: Actor,
        expected_version: Optional[int] = None,
    ) -> Result[Booking, DomainException]:
        """
        Cancel a pending or confirmed booking.

        Users may cancel their own bookings; a confirmed booking only until
        ``cancellation_cutoff_hours`` before the slot starts. Admins may cancel
        any booking at any time. A completed payment is refunded according to
        the refund policy; a payment still pending at the gateway is cancelled.
        """
        problem = v.validate_reason(reason)
        if problem:
            return Err(ValidationError(problem, errors=[problem]))

        with keyed_lock(self.mutex, "booking", booking_id) as acquired:
            if not acquired:
                return Err(ConcurrencyConflictError(booking_id))
            loaded = self._load_for_update(booking_id, expected_version)
            if isinstance(loaded, Err):
                return loaded
            booking = loaded.value

            if not actor.is_admin and booking.user_id != actor.user_id:
                return Err(AuthorizationError("Only the booking owner can cancel it"))
            illegal = check_transition(booking.status, BookingStatus.CANCELLED)
            if illegal:
                return Err(illegal)

            slot_result = self._slot_for(booking)
            if isinstance(slot_result, Err):
                return slot_result
            slot = slot_result.value
            now = self.now()
            if (
                not actor.is_admin
                and booking.status == BookingStatus.CONFIRMED
                and now >= slot.start_datetime - timedelta(hours=self.cancellation_cutoff_hours)
            ):
                return Err(CancellationWindowClosedError(booking_id, self.cancellation_cutoff_hours))

            payment_info = booking.payment_info
            refunded = to_money(0)
            if payment_info is not None:
                if payment_info.status == PaymentStatus.PROCESSING:
                    return Err(
                        PaymentError(
                            "Payment is still being processed; try again shortly",
                            code="PAYMENT_IN_PROGRESS",
                            payment_id=payment_info.payment_id,
                            retryable=True,
                        )
                    )
                if payment_info.status == PaymentStatus.PENDING:
                    cancelled = self.payments.cancel(payment_info.payment_id)
                    if isinstance(cancelled, Err):
                        return cancelled
                    payment_info = cancelled.value
                elif payment_info.can_refund:
                    amount = min(
                        self.refund_policy.refund_amount(
                            booking.total_amount, slot.start_datetime, now
                        ),
                        payment_info.amount,
                    )
                    if amount > 0:
                        refund = self.payments.refund(payment_info.payment_id, amount, reason)
                        if isinstance(refund, Err):
                            return refund
                        payment_info = refund.value
                        refunded = amount

            released = self.availability.release_capacity(booking.time_slot_id, 1)
            if isinstance(released, Err):
                self.logger.warning(
                    "Slot %s missing while cancelling booking %s", booking.time_slot_id, booking_id
                )

            saved = self._save(
                booking,
                replace(
                    booking,
                    status=BookingStatus.CANCELLED,
                    payment_info=payment_info,
                    cancelled_at=now,
                    cancellation_reason=reason,
                    updated_at=now,
                ),
            )
            if isinstance(saved, Err):
                self.logger.error(
                    "Booking %s changed during cancellation after side effects ran", booking_id
                )
                return saved
            if refunded > 0:
                notify(self.notifier.on_refund_processed, saved.value, refunded)
            return saved

    # Other transitions

    def _simple_transition(
        self,
        booking_id: str,
        target: BookingStatus,
        expected_version: Optional[int],
        guard: Callable[[Booking], Optional[DomainException]],
    ) -> Result[Booking, DomainException]:
        with keyed_lock(self.mutex, "booking", booking_id) as acquired:
            if not acquired:
                return Err(ConcurrencyConflictError(booking_id))
            loaded = self._load_for_update(booking_id, expected_version)
            if isinstance(loaded, Err):
                return loaded
            booking = loaded.value
            illegal = check_transition(booking.status, target)
            if illegal:
                return Err(illegal)
            refused = guard(booking)
            if refused is not None:
                return Err(refused)
            now = self.now()
            return self._save(booking, replace(booking, status=target, updated_at=now))

    def _require_slot_ended(self, booking: Booking) -> Optional[DomainException]:
        slot_result = self._slot_for(booking)
        if isinstance(slot_result, Err):
            return slot_result.error
        if not slot_result.value.has_ended(self.now()):
            return ValidationError("The slot has not ended yet")
        return None

    @BaseService.measure_operation("confirm_booking")
    def confirm_booking(
        self, booking_id: str, expected_version: Optional[int] = None
    ) -> Result[Booking, DomainException]:
        """Confirm a pending booking once its payment has completed."""

        def guard(booking: Booking) -> Optional[DomainException]:
            if booking.payment_info is None and booking.total_amount == 0:
                return None
            if not booking.is_payment_completed:
                return PaymentError(
                    "Payment has not completed",
                    code="PAYMENT_NOT_COMPLETED",
                    payment_id=booking.payment_info.payment_id if booking.payment_info else None,
                )
            return None

        result = self._simple_transition(
            booking_id, BookingStatus.CONFIRMED, expected_version, guard
        )
        if isinstance(result, Ok):
            notify(self.notifier.on_payment_completed, result.value)
        return result

    @BaseService.measure_operation("complete_booking")
    def complete_booking(
        self, booking_id: str, actor: Actor, expected_version: Optional[int] = None
    ) -> Result[Booking, DomainException]:
        def guard(booking: Booking) -> Optional[DomainException]:
            if not actor.is_admin and booking.user_id != actor.user_id:
                return AuthorizationError("Only the booking owner or an admin can complete it")
            return self._require_slot_ended(booking)

        return self._simple_transition(booking_id, BookingStatus.COMPLETED, expected_version, guard)

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(
        self, booking_id: str, actor: Actor, expected_version: Optional[int] = None
    ) -> Result[Booking, DomainException]:
        """Admin only. The seat stays counted; the slot is over anyway."""
        denied = require_admin(actor)
        if denied:
            return Err(denied)
        return self._simple_transition(
            booking_id, BookingStatus.NO_SHOW, expected_version, self._require_slot_ended
        )

    @BaseService.measure_operation("refund_booking")
    def refund_booking(
        self,
        booking_id: str,
        amount: Optional[MoneyLike],
        reason: str,
        actor: Actor,
        expected_version: Optional[int] = None,
    ) -> Result[Booking, DomainException]:
        """
        Admin refund of a cancelled booking whose payment was not refunded yet.

        Refunding the whole paid amount moves the booking to ``refunded``; a
        partial refund leaves it ``cancelled``.
        """
        denied = require_admin(actor)
        if denied:
            return Err(denied)
        problem = v.validate_reason(reason)
        if problem:
            return Err(ValidationError(problem, errors=[problem]))

        with keyed_lock(self.mutex, "booking", booking_id) as acquired:
            if not acquired:
                return Err(ConcurrencyConflictError(booking_id))
            loaded = self._load_for_update(booking_id, expected_version)
            if isinstance(loaded, Err):
                return loaded
            booking = loaded.value
            illegal = check_transition(booking.status, BookingStatus.REFUNDED)
            if illegal:
                return Err(illegal)
            payment_info = booking.payment_info
            if payment_info is None:
                return Err(RefundNotAllowedError(booking_id, "booking has no payment"))

            refund = self.payments.refund(payment_info.payment_id, amount, reason)
            if isinstance(refund, Err):
                return refund
            payment_info = refund.value
            refunded = payment_info.refunded_amount

            target = (
                BookingStatus.REFUNDED
                if payment_info.status == PaymentStatus.REFUNDED
                else booking.status
            )
            saved = self._save(
                booking,
                replace(booking, status=target, payment_info=payment_info, updated_at=self.now()),
            )
            if isinstance(saved, Ok):
                notify(self.notifier.on_refund_processed, saved.value, refunded)
            return saved

    @BaseService.measure_operation("update_booking_status")
    def update_status(
        self,
        booking_id: str,
        new_status: BookingStatus,
        actor: Actor,
        expected_version: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> Result[Booking, DomainException]:
        """Admin status change, routed through the matching transition and its guards."""
        denied = require_admin(actor)
        if denied:
            return Err(denied)

        if new_status == BookingStatus.CONFIRMED:
            return self.confirm_booking(booking_id, expected_version)
        if new_status == BookingStatus.CANCELLED:
            return self.cancel_booking(
                booking_id, reason or ADMIN_CANCELLATION_REASON, actor, expected_version
            )
        if new_status == BookingStatus.COMPLETED:
            return self.complete_booking(booking_id, actor, expected_version)
        if new_status == BookingStatus.NO_SHOW:
            return self.mark_no_show(booking_id, actor, expected_version)
        if new_status == BookingStatus.REFUNDED:
            return self.refund_booking(
                booking_id, None, reason or ADMIN_CANCELLATION_REASON, actor, expected_version
            )

        booking = self.bookings.get(booking_id)
        if booking is None:
            return Err(NotFoundError("Booking", booking_id))
        illegal = check_transition(booking.status, new_status)
        return Err(illegal) if illegal else Ok(booking)

    # Queries

    def get_booking(
        self, booking_id: str, actor: Optional[Actor] = None
    ) -> Result[Booking, DomainException]:
        booking = self.bookings.get(booking_id)
        if booking is None:
            return Err(NotFoundError("Booking", booking_id))
        if actor is not None and not actor.is_admin and booking.user_id != actor.user_id:
            return Err(AuthorizationError("Not your booking"))
        return Ok(booking)

    def list_user_bookings(self, user_id: str) -> List[Booking]:
        return self.bookings.list_by_user(user_id)

    def list_slot_bookings(self, slot_id: str, actor: Actor) -> Result[List[Booking], DomainException]:
        denied = require_admin(actor)
        if denied:
            return Err(denied)
        return Ok(self.bookings.list_by_slot(slot_id))

    def refund_policy_text(self, booking_id: str) -> Result[str, DomainException]:
        """Which refund tier a cancellation right now would fall into."""
        booking = self.bookings.get(booking_id)
        if booking is None:
            return Err(NotFoundError("Booking", booking_id))
        slot_result = self._slot_for(booking)
        if isinstance(slot_result, Err):
            return slot_result
        return Ok(self.refund_policy.policy_text(slot_result.value.start_datetime, self.now()))
