# slotbook/services/workshop_service.py
"""
Workshop catalog administration.

Price edits never reach existing bookings: a booking carries the
``total_amount`` it was created with.
"""

from dataclasses import replace
from typing import List, Optional

from ..core.exceptions import DomainException, NotFoundError, ValidationError
from ..core.result import Err, Ok, Result
from ..core.ulid_helper import generate_ulid
from ..domain import validators as v
from ..domain.entities import Actor, Workshop, to_money
from ..repositories.interfaces import WorkshopStore
from ..schemas.workshop import WorkshopCreate, WorkshopUpdate
from .availability_service import require_admin
from .base import BaseService, Clock


def _workshop_errors(workshop: Workshop) -> List[str]:
    return v.collect_errors(
        v.validate_title(workshop.title),
        v.validate_description(workshop.description),
        v.validate_price(workshop.price),
        v.validate_capacity(workshop.capacity),
    )


class WorkshopService(BaseService):
    def __init__(self, workshops: WorkshopStore, *, clock: Optional[Clock] = None):
        super().__init__(clock)
        self.workshops = workshops

    def get_workshop(self, workshop_id: str) -> Result[Workshop, NotFoundError]:
        workshop = self.workshops.get(workshop_id)
        if workshop is None:
            return Err(NotFoundError("Workshop", workshop_id))
        return Ok(workshop)

    def list_workshops(self, skip: int = 0, limit: int = 100) -> List[Workshop]:
        return self.workshops.list(skip=skip, limit=limit)

    @BaseService.measure_operation("create_workshop")
    def create_workshop(self, actor: Actor, data: WorkshopCreate) -> Result[Workshop, DomainException]:
        denied = require_admin(actor)
        if denied:
            return Err(denied)
        price_problem = v.validate_price(data.price)
        workshop = Workshop(
            id=generate_ulid(),
            title=data.title,
            description=data.description,
            price=to_money(data.price) if price_problem is None else data.price,
            capacity=data.capacity,
            tags=frozenset(tag.strip().lower() for tag in data.tags if tag.strip()),
            created_at=self.now(),
        )
        errors = _workshop_errors(workshop)
        if errors:
            return Err(ValidationError("Invalid workshop", errors=errors))
        self.logger.info("Created workshop %s (%s)", workshop.id, workshop.title)
        return Ok(self.workshops.create(workshop))

    @BaseService.measure_operation("update_workshop")
    def update_workshop(
        self, actor: Actor, workshop_id: str, data: WorkshopUpdate
    ) -> Result[Workshop, DomainException]:
        denied = require_admin(actor)
        if denied:
            return Err(denied)
        current = self.workshops.get(workshop_id)
        if current is None:
            return Err(NotFoundError("Workshop", workshop_id))

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "tags" in changes:
            changes["tags"] = frozenset(t.strip().lower() for t in changes["tags"] if t.strip())
        if "price" in changes and v.validate_price(changes["price"]) is None:
            changes["price"] = to_money(changes["price"])
        updated = replace(current, **changes, updated_at=self.now())

        errors = _workshop_errors(updated)
        if errors:
            return Err(ValidationError("Invalid workshop update", errors=errors))
        stored = self.workshops.update(updated)
        if stored is None:
            return Err(NotFoundError("Workshop", workshop_id))
        return Ok(stored)

    @BaseService.measure_operation("delete_workshop")
    def delete_workshop(self, actor: Actor, workshop_id: str) -> Result[None, DomainException]:
        denied = require_admin(actor)
        if denied:
            return Err(denied)
        if not self.workshops.delete(workshop_id):
            return Err(NotFoundError("Workshop", workshop_id))
        self.logger.info("Deleted workshop %s", workshop_id)
        return Ok(None)
