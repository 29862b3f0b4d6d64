"""Tagged results for steps whose failures are recovered by the caller."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class FailureKind(str, Enum):
    UNSUPPORTED_SCOPE = "unsupported_scope"
    SERVICE_ERROR = "service_error"
    HTTP_ERROR = "http_error"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: Optional[T] = None
    failure: Optional[FailureKind] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, kind: FailureKind, detail: str = "") -> "Outcome[T]":
        return cls(failure=kind, detail=detail)

    def unwrap(self) -> T:
        if self.failure is not None:
            raise ValueError(f"Outcome failed with {self.failure.value}: {self.detail}")
        return self.value  # type: ignore[return-value]
