"""Use-case result types.

Every public billing operation returns ``Success`` or ``Failure`` instead of
raising, so callers branch on ``result.success`` without exception handling.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from rigger_billing.errors import BillingError, ErrorCode

T = TypeVar("T")

GENERIC_FAILURE_MESSAGE = "An unexpected error occurred"


@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful outcome carrying a typed payload."""

    value: T

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """Failed outcome with a stable code and a short user-safe message."""

    code: ErrorCode
    message: str

    @property
    def success(self) -> bool:
        return False

    @classmethod
    def from_error(cls, error: BillingError) -> Failure:
        return cls(code=error.code, message=error.message)

    @classmethod
    def internal(cls) -> Failure:
        return cls(code=ErrorCode.INTERNAL, message=GENERIC_FAILURE_MESSAGE)


Result = Union[Success[T], Failure]
