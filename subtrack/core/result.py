from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from .errors import ErrorKind, SubtrackError, error_for_kind

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a service operation: either a value or a tagged error.

    A failed fetch may still carry a value (an empty list) so callers can
    render "nothing loaded" and the error side by side.
    """

    value: T | None = None
    error: ErrorKind | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, exc: SubtrackError, value: T | None = None) -> "Result[T]":
        return cls(value=value, error=exc.kind, message=exc.message)

    def unwrap(self) -> T:
        if self.error is not None:
            raise error_for_kind(self.error)(self.message or self.error.value)
        return self.value  # type: ignore[return-value]
