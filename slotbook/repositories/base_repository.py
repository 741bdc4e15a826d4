# slotbook/repositories/base_repository.py
"""
Base repository for the SQLAlchemy store.

Services coordinate several stores (slot, payment, booking) inside one
operation and the reservation/charge/persist steps commit independently, so
each repository call runs in its own short session: it commits on success,
rolls back on failure, and converts driver errors into
``RepositoryException``. Entities cross the boundary as domain dataclasses,
never as ORM rows.
"""

from contextlib import contextmanager
import logging
from typing import Generic, Iterator, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.exceptions import RepositoryException

# Type variable for generic model support
M = TypeVar("M")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[M]):
    """
    Shared session handling for the table-specific repositories.

    Attributes:
        session_factory: sessionmaker producing short-lived sessions
        model: SQLAlchemy model class
    """

    def __init__(self, session_factory: sessionmaker, model: Type[M]):
        self.session_factory = session_factory
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Context manager that commits/rolls back a fresh session."""
        db: Session = self.session_factory()
        try:
            yield db
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            self.logger.error(
                "Integrity error on %s: %s", self.model.__name__, exc, exc_info=True
            )
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            self.logger.error("Repository transaction failed on %s: %s", self.model.__name__, exc)
            raise RepositoryException(
                f"Failed to access {self.model.__name__}: {exc}"
            ) from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _get_row(self, db: Session, entity_id: str) -> Optional[M]:
        return db.get(self.model, entity_id)
