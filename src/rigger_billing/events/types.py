"""Domain event types for billing operations.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata

Subscribers use them for the NGO-tracking notification, client
notifications and audit trails. Events are emitted only after the unit of
work that produced them has committed.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from rigger_billing.models import utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PAYMENT = "payment"
    CONTRIBUTION = "contribution"
    SUBSCRIPTION = "subscription"
    RECONCILIATION = "reconciliation"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links events from one use case
    actor_type: str  # 'user', 'system', 'scheduler'
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        actor_type: str = "system",
        source_service: str = "billing",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=utcnow(),
            correlation_id=correlation_id or uuid4(),
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize(asdict(self))
        data["event_type"] = self.event_type
        data["category"] = self.category.value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def _serialize(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Payment Events
# =============================================================================


@dataclass(frozen=True)
class JobPaymentProcessed(DomainEvent):
    """A completed job was paid out to its worker."""

    transaction_id: str
    job_id: str
    employer_id: str
    worker_id: str
    amount: Decimal
    platform_fee: Decimal
    contribution_amount: Decimal
    net_amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


@dataclass(frozen=True)
class RecruitmentFeeCharged(DomainEvent):
    """An employer was charged a recruitment fee."""

    transaction_id: str
    job_id: str
    employer_id: str
    amount: Decimal
    platform_fee: Decimal
    contribution_amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


@dataclass(frozen=True)
class TransactionRefunded(DomainEvent):
    """A completed transaction was reversed."""

    transaction_id: str
    reversal_transaction_id: str
    kind: str
    amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYMENT


# =============================================================================
# Subscription Events
# =============================================================================


@dataclass(frozen=True)
class SubscriptionRenewed(DomainEvent):
    """A subscription was charged and moved to its next period."""

    subscription_id: str
    user_id: str
    transaction_id: str
    amount: Decimal
    period_start: datetime
    period_end: datetime

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBSCRIPTION


@dataclass(frozen=True)
class SubscriptionPastDue(DomainEvent):
    """A renewal charge failed; the subscription is past due."""

    subscription_id: str
    user_id: str
    amount: Decimal
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.SUBSCRIPTION


# =============================================================================
# Contribution Events
# =============================================================================


@dataclass(frozen=True)
class ContributionRecorded(DomainEvent):
    """A contribution entry was written to the ledger."""

    contribution_id: str
    transaction_id: str
    source_kind: str
    amount: Decimal
    period_year: int
    period_month: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.CONTRIBUTION


@dataclass(frozen=True)
class ContributionsReconciled(DomainEvent):
    """A reconciliation run finished."""

    period_start: datetime
    period_end: datetime
    transaction_total: Decimal
    ledger_total: Decimal
    discrepancy_count: int
    validation_passed: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.RECONCILIATION
