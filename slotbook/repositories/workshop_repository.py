# slotbook/repositories/workshop_repository.py
"""SQLAlchemy implementation of WorkshopStore."""

from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from ..domain.entities import Workshop
from ..models.workshop import Workshop as WorkshopRow
from .base_repository import BaseRepository
from .interfaces import WorkshopStore


def _encode_tags(tags: frozenset[str]) -> str:
    return ",".join(sorted(tags))


def _to_entity(row: WorkshopRow) -> Workshop:
    return Workshop(
        id=row.id,
        title=row.title,
        description=row.description,
        price=row.price,
        capacity=row.capacity,
        tags=frozenset(tag for tag in row.tags.split(",") if tag),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class WorkshopRepository(BaseRepository[WorkshopRow], WorkshopStore):
    def __init__(self, session_factory: sessionmaker):
        super().__init__(session_factory, WorkshopRow)

    def get(self, workshop_id: str) -> Optional[Workshop]:
        with self.session() as db:
            row = self._get_row(db, workshop_id)
            return _to_entity(row) if row else None

    def list(self, skip: int = 0, limit: int = 100) -> List[Workshop]:
        with self.session() as db:
            rows = db.scalars(
                select(WorkshopRow)
                .order_by(WorkshopRow.created_at.desc(), WorkshopRow.id.desc())
                .offset(skip)
                .limit(limit)
            ).all()
            return [_to_entity(row) for row in rows]

    def create(self, workshop: Workshop) -> Workshop:
        with self.session() as db:
            db.add(
                WorkshopRow(
                    id=workshop.id,
                    title=workshop.title,
                    description=workshop.description,
                    price=workshop.price,
                    capacity=workshop.capacity,
                    tags=_encode_tags(workshop.tags),
                    created_at=workshop.created_at,
                    updated_at=workshop.updated_at,
                )
            )
        return workshop

    def update(self, workshop: Workshop) -> Optional[Workshop]:
        with self.session() as db:
            row = self._get_row(db, workshop.id)
            if row is None:
                return None
            row.title = workshop.title
            row.description = workshop.description
            row.price = workshop.price
            row.capacity = workshop.capacity
            row.tags = _encode_tags(workshop.tags)
            row.updated_at = workshop.updated_at
        return workshop

    def delete(self, workshop_id: str) -> bool:
        with self.session() as db:
            result = db.execute(delete(WorkshopRow).where(WorkshopRow.id == workshop_id))
            return bool(result.rowcount)
