"""Billing error taxonomy.

Stores and pure calculators raise these. The use-case layer converts them
into ``Failure`` results; nothing past that boundary sees an exception.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Stable error codes carried by failure results."""

    INVALID_AMOUNT = "InvalidAmount"
    ALREADY_PROCESSED = "AlreadyProcessed"
    NOT_DUE = "NotDue"
    NOT_FOUND = "NotFound"
    INVALID_STATE_TRANSITION = "InvalidStateTransition"
    PROCESSOR_FAILURE = "ProcessorFailure"
    RECONCILIATION_MISMATCH = "ReconciliationMismatch"
    INTERNAL = "Internal"


class BillingError(Exception):
    """Base class for billing errors. ``str(err)`` is safe to show users."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidAmountError(BillingError, ValueError):
    code = ErrorCode.INVALID_AMOUNT


class AlreadyProcessedError(BillingError):
    code = ErrorCode.ALREADY_PROCESSED


class NotDueError(BillingError):
    code = ErrorCode.NOT_DUE


class NotFoundError(BillingError):
    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, entity_id: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class InvalidStateTransitionError(BillingError):
    """Raised when an invalid status change is attempted."""

    code = ErrorCode.INVALID_STATE_TRANSITION

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        from_status = getattr(from_status, "value", from_status)
        to_status = getattr(to_status, "value", to_status)
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ProcessorFailureError(BillingError):
    code = ErrorCode.PROCESSOR_FAILURE
