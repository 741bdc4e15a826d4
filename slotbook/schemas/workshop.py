"""Workshop catalog request schemas."""

from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from ._strict_base import StrictRequestModel


class WorkshopCreate(StrictRequestModel):
    title: str
    description: str
    price: Decimal
    capacity: int
    tags: List[str] = Field(default_factory=list)


class WorkshopUpdate(StrictRequestModel):
    """Partial update; omitted fields keep their stored value."""

    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    capacity: Optional[int] = None
    tags: Optional[List[str]] = None
