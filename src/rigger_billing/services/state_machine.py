"""Transaction state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from rigger_billing.errors import InvalidStateTransitionError


class TransactionStatus(str, Enum):
    """Transaction status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class TransactionStateMachine:
    """State machine for transaction status transitions.

    Allowed transitions:
    - pending → processing | completed | failed | cancelled
    - processing → completed | failed | cancelled
    - completed → refunded (only through a reversal, see ``REVERSAL``)

    failed, cancelled and refunded are terminal.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        TransactionStatus.PENDING: [
            TransactionStatus.PROCESSING,
            TransactionStatus.COMPLETED,
            TransactionStatus.FAILED,
            TransactionStatus.CANCELLED,
        ],
        TransactionStatus.PROCESSING: [
            TransactionStatus.COMPLETED,
            TransactionStatus.FAILED,
            TransactionStatus.CANCELLED,
        ],
        TransactionStatus.COMPLETED: [],
        TransactionStatus.FAILED: [],
        TransactionStatus.CANCELLED: [],
        TransactionStatus.REFUNDED: [],
    }

    # Edge only reachable by spawning a refund/chargeback transaction
    REVERSAL = (TransactionStatus.COMPLETED, TransactionStatus.REFUNDED)

    TERMINAL = {
        TransactionStatus.COMPLETED,
        TransactionStatus.FAILED,
        TransactionStatus.CANCELLED,
        TransactionStatus.REFUNDED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a direct transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidStateTransitionError if invalid."""
        if cls.can_transition(from_status, to_status):
            return
        if (from_status, to_status) == cls.REVERSAL:
            raise InvalidStateTransitionError(
                from_status, to_status, "use a refund or chargeback to reverse a completed transaction"
            )
        if from_status in cls.TERMINAL:
            status = getattr(from_status, "value", from_status)
            raise InvalidStateTransitionError(from_status, to_status, f"'{status}' is terminal")
        raise InvalidStateTransitionError(from_status, to_status)

    @classmethod
    def can_reverse(cls, status: str) -> bool:
        return status == TransactionStatus.COMPLETED

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
