from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from lib.error_handler import AppError

T = TypeVar("T")

@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of one pipeline stage: either a value or the error that stopped it."""

    value: Optional[T] = None
    error: Optional[AppError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AppError) -> "StageResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value
