"""
Result — explicit success/failure value for resolver boundaries.

A Result is either ``ok`` with a ``value`` or not ok with an ``error``
message. Resolvers return one instead of raising so failure handling is
visible in their signatures.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class Result(BaseModel, Generic[T]):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "Result[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        if not self.ok:
            raise ValueError(f"unwrap() on failed result: {self.error}")
        return self.value
