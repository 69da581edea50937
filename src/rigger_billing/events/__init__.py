"""Billing domain events package.

This package provides:
- Typed domain events for billing operations
- Async event emitter with per-unit-of-work batching
"""

from rigger_billing.events.emitter import AsyncEventBatch, AsyncEventEmitter
from rigger_billing.events.types import (
    ContributionRecorded,
    ContributionsReconciled,
    DomainEvent,
    EventCategory,
    EventMetadata,
    JobPaymentProcessed,
    RecruitmentFeeCharged,
    SubscriptionPastDue,
    SubscriptionRenewed,
    TransactionRefunded,
)

__all__ = [
    "AsyncEventBatch",
    "AsyncEventEmitter",
    "ContributionRecorded",
    "ContributionsReconciled",
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "JobPaymentProcessed",
    "RecruitmentFeeCharged",
    "SubscriptionPastDue",
    "SubscriptionRenewed",
    "TransactionRefunded",
]
