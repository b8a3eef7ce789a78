from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    success: bool
    data: T | None = None
    error: str = ""
    code: str = ""

    @classmethod
    def ok(cls, data: T = None) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str, code: str = "") -> ServiceResult[T]:
        return cls(success=False, error=message, code=code)

    def unwrap(self) -> T:
        """Return the payload of a successful result."""
        if not self.success or self.data is None:
            msg = f"unwrap() on failed result: {self.error or 'no data'}"
            raise ValueError(msg)
        return self.data
