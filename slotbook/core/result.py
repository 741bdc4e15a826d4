"""
Success/failure result type for expected business outcomes.

Services return ``Ok(value)`` or ``Err(error)`` where ``error`` is a
``DomainException``. Callers branch with ``isinstance`` (or ``match``); those
who want exception semantics call ``unwrap()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, NoReturn, TypeVar, Union

from .exceptions import DomainException

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E", bound=DomainException)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True

    @property
    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        return Ok(fn(self.value))


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def is_err(self) -> bool:
        return True

    def unwrap(self) -> NoReturn:
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[object], object]) -> "Err[E]":
        return self


Result = Union[Ok[T], Err[E]]
