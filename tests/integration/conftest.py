import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from slotbook.container import Stores, build_services
from slotbook.core.booking_lock import InProcessMutex
from slotbook.database import init_db
from slotbook.integrations.fake_gateway import FakePaymentGateway
from slotbook.notifications.dispatcher import RecordingNotificationDispatcher


@pytest.fixture
def engine():
    # One shared connection so every session sees the same in-memory database
    db_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def stores(session_factory) -> Stores:
    return Stores.sqlalchemy(session_factory)


@pytest.fixture
def services(stores, clock):
    return build_services(
        stores,
        gateway=FakePaymentGateway(),
        notifier=RecordingNotificationDispatcher(),
        mutex=InProcessMutex(),
        clock=clock,
    )
