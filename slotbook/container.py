# slotbook/container.py
"""
Explicit wiring of stores, adapters and services.

``build_services`` is the only place collaborators are chosen; services get
everything through their constructors.
"""

from dataclasses import dataclass
import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from .core.booking_lock import KeyedMutex, build_mutex
from .core.config import settings
from .integrations.fake_gateway import FakePaymentGateway
from .integrations.payment_gateway import PaymentGateway
from .notifications.dispatcher import LoggingNotificationDispatcher, NotificationDispatcher
from .repositories.booking_repository import BookingRepository
from .repositories.interfaces import BookingStore, PaymentStore, SlotStore, WorkshopStore
from .repositories.memory import InMemoryStores
from .repositories.payment_repository import PaymentRepository
from .repositories.slot_repository import SlotRepository
from .repositories.workshop_repository import WorkshopRepository
from .services.availability_service import AvailabilityService
from .services.base import Clock
from .services.booking_service import BookingService
from .services.payment_orchestrator import PaymentOrchestrator
from .services.refund_policy_engine import RefundPolicyEngine
from .services.workshop_service import WorkshopService

logger = logging.getLogger(__name__)


@dataclass
class Stores:
    workshops: WorkshopStore
    slots: SlotStore
    payments: PaymentStore
    bookings: BookingStore

    @classmethod
    def sqlalchemy(cls, session_factory: sessionmaker) -> "Stores":
        return cls(
            workshops=WorkshopRepository(session_factory),
            slots=SlotRepository(session_factory),
            payments=PaymentRepository(session_factory),
            bookings=BookingRepository(session_factory),
        )

    @classmethod
    def in_memory(cls) -> "Stores":
        memory = InMemoryStores()
        return cls(
            workshops=memory.workshops,
            slots=memory.slots,
            payments=memory.payments,
            bookings=memory.bookings,
        )


@dataclass
class Services:
    workshops: WorkshopService
    availability: AvailabilityService
    payments: PaymentOrchestrator
    bookings: BookingService
    refund_policy: RefundPolicyEngine


def default_gateway() -> PaymentGateway:
    """Stripe when a key is configured, otherwise the in-memory gateway."""
    if settings.stripe_secret_key is not None:
        from .integrations.stripe_gateway import StripePaymentGateway

        return StripePaymentGateway()
    if settings.is_production:
        raise RuntimeError("SLOTBOOK_STRIPE_SECRET_KEY is required in production")
    logger.warning("No Stripe key configured; using the in-memory payment gateway")
    return FakePaymentGateway()


def build_services(
    stores: Optional[Stores] = None,
    *,
    gateway: Optional[PaymentGateway] = None,
    notifier: Optional[NotificationDispatcher] = None,
    mutex: Optional[KeyedMutex] = None,
    clock: Optional[Clock] = None,
) -> Services:
    """
    Assemble the service graph.

    Without ``stores`` the SQLAlchemy store on ``settings.database_url`` is
    used. One keyed mutex is shared by the payment and booking services so
    Redis-backed locking (when ``settings.redis_url`` is set) covers both.
    """
    if stores is None:
        from .database import SessionLocal

        stores = Stores.sqlalchemy(SessionLocal)
    lock = mutex or build_mutex()
    refund_policy = RefundPolicyEngine()

    availability = AvailabilityService(stores.slots, clock=clock)
    payments = PaymentOrchestrator(
        stores.payments, gateway or default_gateway(), mutex=lock, clock=clock
    )
    bookings = BookingService(
        stores.bookings,
        availability,
        payments,
        refund_policy,
        notifier or LoggingNotificationDispatcher(),
        mutex=lock,
        clock=clock,
    )
    return Services(
        workshops=WorkshopService(stores.workshops, clock=clock),
        availability=availability,
        payments=payments,
        bookings=bookings,
        refund_policy=refund_policy,
    )
