"""Legal booking status transitions."""

from __future__ import annotations

from typing import Mapping, Optional

from slotbook.core.enums import BookingStatus
from slotbook.core.exceptions import InvalidTransitionError

VALID_TRANSITIONS: Mapping[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
    BookingStatus.CANCELLED: frozenset({BookingStatus.REFUNDED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
    BookingStatus.REFUNDED: frozenset(),
}

INITIAL_STATUS = BookingStatus.PENDING


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, frozenset())


def check_transition(
    current: BookingStatus, target: BookingStatus
) -> Optional[InvalidTransitionError]:
    """Return the error for an illegal transition, or None when it is allowed."""
    if can_transition(current, target):
        return None
    return InvalidTransitionError(current.value, target.value)
