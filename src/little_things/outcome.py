from __future__ import annotations

"""Result type that keeps "served from the local fallback" visible to callers."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from .errors import AppError

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    status: OutcomeStatus
    value: Optional[T] = None
    error: Optional[AppError] = None

    @classmethod
    def ok(cls, value: Optional[T]) -> "Outcome[T]":
        return cls(OutcomeStatus.OK, value)

    @classmethod
    def degraded(cls, value: Optional[T], error: AppError) -> "Outcome[T]":
        return cls(OutcomeStatus.DEGRADED, value, error)

    @classmethod
    def failed(cls, error: AppError) -> "Outcome[T]":
        return cls(OutcomeStatus.FAILED, None, error)

    @property
    def is_ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def is_degraded(self) -> bool:
        return self.status is OutcomeStatus.DEGRADED

    @property
    def is_failed(self) -> bool:
        return self.status is OutcomeStatus.FAILED

    def unwrap(self) -> Optional[T]:
        """Return the value, raising the recorded error for failed outcomes."""
        if self.status is OutcomeStatus.FAILED and self.error is not None:
            raise self.error
        return self.value


__all__ = ["Outcome", "OutcomeStatus"]
