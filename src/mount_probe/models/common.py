from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class LookupStatus(str, Enum):
    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"
    PROVIDER_ERROR = "PROVIDER_ERROR"


@dataclass(frozen=True)
class LookupResult(Generic[T]):
    status: LookupStatus
    value: T | None = None
    error: str | None = None
    ts: datetime = field(default_factory=datetime.now)

    @property
    def ok(self) -> bool:
        return self.status is LookupStatus.FOUND

    @classmethod
    def found(cls, value: T) -> LookupResult[T]:
        return cls(status=LookupStatus.FOUND, value=value)

    @classmethod
    def not_found(cls) -> LookupResult[T]:
        return cls(status=LookupStatus.NOT_FOUND)

    @classmethod
    def provider_error(cls, error: str) -> LookupResult[T]:
        return cls(status=LookupStatus.PROVIDER_ERROR, error=error)
