"""ORM models."""

from rigger_billing.models.base import Base, TimestampMixin, as_utc_naive, new_id, utcnow
from rigger_billing.models.billing import (
    ALLOCATION_SPLIT,
    TRANSACTION_KINDS,
    TRANSACTION_STATUSES,
    ContributionRecord,
    EarningMonthlyRollup,
    EarningSummary,
    EarningYearlyRollup,
    Invoice,
    InvoiceLineItem,
    PaymentMethod,
    Subscription,
    Transaction,
)
from rigger_billing.models.marketplace import AppUser, Job

__all__ = [
    "Base",
    "TimestampMixin",
    "as_utc_naive",
    "new_id",
    "utcnow",
    "ALLOCATION_SPLIT",
    "TRANSACTION_KINDS",
    "TRANSACTION_STATUSES",
    "Transaction",
    "ContributionRecord",
    "EarningSummary",
    "EarningMonthlyRollup",
    "EarningYearlyRollup",
    "Subscription",
    "Invoice",
    "InvoiceLineItem",
    "PaymentMethod",
    "AppUser",
    "Job",
]
