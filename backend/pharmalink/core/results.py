"""
Typed operation result returned by the fulfillment orchestrator.
"""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from .exceptions import FulfillmentError

T = TypeVar("T")


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Either a value (success) or a FulfillmentError (failure), never both."""

    value: Optional[T] = None
    error: Optional[FulfillmentError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.code if self.error else None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: FulfillmentError) -> "OperationResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
