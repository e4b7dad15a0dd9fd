from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

STORE_ERROR = "store_error"
STORE_UNAVAILABLE = "store_unavailable"


@dataclass
class Result(Generic[T]):
    """Outcome of a storage operation; cache callers collapse failures to a miss."""

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T = None) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = STORE_ERROR) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
