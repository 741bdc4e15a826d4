"""Strict schema baselines with forbidden extras by default."""

from pydantic import BaseModel, ConfigDict


class StrictModel(BaseModel):
    """Neutral strict base for response DTOs."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class StrictRequestModel(StrictModel):
    """
    Request DTO base that always forbids unexpected fields.

    Only shapes and types are checked here; business ranges (title length,
    capacity bounds, slot duration) are enforced by the domain validators so
    every violation is reported together.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True, str_strip_whitespace=True)
