from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

import pytest

from slotbook.container import Services, Stores, build_services
from slotbook.core.booking_lock import InProcessMutex
from slotbook.core.enums import PaymentMethod, SlotKind
from slotbook.domain.entities import Actor, TimeSlot
from slotbook.integrations.fake_gateway import FakePaymentGateway
from slotbook.notifications.dispatcher import RecordingNotificationDispatcher
from slotbook.schemas.booking import PaymentRequest
from slotbook.schemas.time_slot import TimeSlotCreate

# Monday morning
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def stores() -> Stores:
    return Stores.in_memory()


@pytest.fixture
def gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def notifier() -> RecordingNotificationDispatcher:
    return RecordingNotificationDispatcher()


@pytest.fixture
def services(stores, gateway, notifier, clock) -> Services:
    return build_services(
        stores, gateway=gateway, notifier=notifier, mutex=InProcessMutex(), clock=clock
    )


@pytest.fixture
def admin() -> Actor:
    return Actor.admin("admin-1")


@pytest.fixture
def user_a() -> Actor:
    return Actor("user-a")


@pytest.fixture
def user_b() -> Actor:
    return Actor("user-b")


@pytest.fixture
def make_slot(services: Services, admin: Actor, clock: FrozenClock) -> Callable[..., TimeSlot]:
    """Create a slot ``days_ahead`` days from the clock's date through the service."""

    def _make(
        days_ahead: int = 10,
        start: time = time(10, 0),
        end: time = time(12, 0),
        capacity: int = 10,
        kind: SlotKind = SlotKind.WORKSHOP,
        item_id: Optional[str] = "workshop-1",
        on: Optional[date] = None,
    ) -> TimeSlot:
        slot_date = on or (clock().date() + timedelta(days=days_ahead))
        return services.availability.create_slot(
            admin,
            TimeSlotCreate(
                date=slot_date,
                start_time=start,
                end_time=end,
                kind=kind,
                max_capacity=capacity,
                item_id=item_id,
            ),
        ).unwrap()

    return _make


def card(key: Optional[str] = None) -> PaymentRequest:
    return PaymentRequest(method=PaymentMethod.CREDIT_CARD, idempotency_key=key)


AMOUNT = Decimal("50000.00")
