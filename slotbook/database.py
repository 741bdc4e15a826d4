# slotbook/database.py
from datetime import datetime
import logging
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from .core.config import settings

logger = logging.getLogger(__name__)


def create_db_engine(url: Optional[str] = None, **kwargs: Any) -> Engine:
    """Build an engine; SQLite gets the thread-sharing flag the services need."""
    database_url = url or settings.database_url
    options: dict[str, Any] = {"echo": settings.database_echo, "future": True}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        options.update(pool_size=20, max_overflow=10, pool_timeout=30, pool_recycle=3600, pool_pre_ping=True)
    options.update(kwargs)
    db_engine = create_engine(database_url, **options)

    @event.listens_for(db_engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    return db_engine


engine: Engine = create_db_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(db_engine: Optional[Engine] = None) -> None:
    """Create all tables. Production deployments run the Alembic migration instead."""
    from . import models  # noqa: F401  register mappers

    Base.metadata.create_all(bind=db_engine or engine)
