"""Billing models.

Covers money movement and the records derived from it:
- Payment transactions (with fee breakdown and contribution sub-record)
- Contribution records (NGO transparency ledger, 1:1 with a transaction)
- Worker earning summaries and their monthly/yearly rollups
- Subscriptions, invoices and tokenized payment methods
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rigger_billing.models.base import Base, TimestampMixin, new_id, utcnow

TRANSACTION_KINDS = (
    "job_payment",
    "subscription",
    "recruitment_fee",
    "platform_fee",
    "refund",
    "chargeback",
)

TRANSACTION_STATUSES = (
    "pending",
    "processing",
    "completed",
    "failed",
    "cancelled",
    "refunded",
)

# Fixed split of every contribution across impact categories.
ALLOCATION_SPLIT: dict[str, Decimal] = {
    "workerSafety": Decimal("0.40"),
    "trainingPrograms": Decimal("0.30"),
    "communitySupport": Decimal("0.20"),
    "operations": Decimal("0.10"),
}


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class Transaction(Base, TimestampMixin):
    """One monetary movement between a payer and a payee or the platform.

    ``fee_total`` holds platform + processor fees. The contribution lives in
    its own sub-record, so ``net_amount + fee_total + contribution_amount``
    equals ``amount``.
    """

    __tablename__ = "payment_transaction"

    transaction_id: Mapped[str] = mapped_column(String(96), primary_key=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    fee_platform: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    fee_processor: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    fee_total: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    payer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payer_name: Mapped[str | None] = mapped_column(String, nullable=True)
    payer_email: Mapped[str | None] = mapped_column(String, nullable=True)
    payee_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payee_name: Mapped[str | None] = mapped_column(String, nullable=True)
    payee_email: Mapped[str | None] = mapped_column(String, nullable=True)
    platform_fee_percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)

    job_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    subscription_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invoice_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_method_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reverses_transaction_id: Mapped[str | None] = mapped_column(
        String(96),
        ForeignKey("payment_transaction.transaction_id"),
        nullable=True,
    )

    processor_name: Mapped[str | None] = mapped_column(String(32), nullable=True)
    processor_charge_id: Mapped[str | None] = mapped_column(String, nullable=True)

    contribution_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False, default=Decimal("0.005"))
    contribution_amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    contribution_tracked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    extra: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    processed_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint(_in_clause("kind", TRANSACTION_KINDS), name="payment_transaction_kind_check"),
        CheckConstraint(_in_clause("status", TRANSACTION_STATUSES), name="payment_transaction_status_check"),
        CheckConstraint("amount >= 0", name="payment_transaction_amount_check"),
        Index("ix_payment_transaction_payer_status", "payer_id", "status"),
        Index("ix_payment_transaction_payee_status", "payee_id", "status"),
        Index("ix_payment_transaction_created_at", "created_at"),
    )


class ContributionRecord(Base):
    """NGO contribution entry, always tied 1:1 to a transaction.

    Append-only: after creation only the publication fields change.
    """

    __tablename__ = "contribution_record"

    contribution_id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    transaction_id: Mapped[str] = mapped_column(
        String(96),
        ForeignKey("payment_transaction.transaction_id"),
        nullable=False,
    )
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_quarter: Mapped[int] = mapped_column(Integer, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    source_kind: Mapped[str] = mapped_column(String(32), nullable=False)

    alloc_worker_safety: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, default=ALLOCATION_SPLIT["workerSafety"]
    )
    alloc_training_programs: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, default=ALLOCATION_SPLIT["trainingPrograms"]
    )
    alloc_community_support: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, default=ALLOCATION_SPLIT["communitySupport"]
    )
    alloc_operations: Mapped[Decimal] = mapped_column(
        Numeric(5, 4), nullable=False, default=ALLOCATION_SPLIT["operations"]
    )

    published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    report_url: Mapped[str | None] = mapped_column(String, nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("transaction_id", name="contribution_record_one_per_transaction"),
        CheckConstraint("period_month BETWEEN 1 AND 12", name="contribution_record_month_check"),
        CheckConstraint("period_quarter BETWEEN 1 AND 4", name="contribution_record_quarter_check"),
        Index("ix_contribution_record_period", "period_year", "period_month"),
    )

    @property
    def allocation(self) -> dict[str, Decimal]:
        return {
            "workerSafety": self.alloc_worker_safety,
            "trainingPrograms": self.alloc_training_programs,
            "communitySupport": self.alloc_community_support,
            "operations": self.alloc_operations,
        }


class EarningSummary(Base, TimestampMixin):
    """Per-worker earnings rollup, maintained incrementally."""

    __tablename__ = "earning_summary"

    worker_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_earnings: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    total_jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    average_job_value: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    average_hourly_rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))

    tax_id: Mapped[str | None] = mapped_column(String, nullable=True)
    business_type: Mapped[str | None] = mapped_column(String, nullable=True)
    w9_on_file: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tax_1099_threshold: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("600"))

    monthly: Mapped[list[EarningMonthlyRollup]] = relationship(
        order_by=lambda: (EarningMonthlyRollup.year, EarningMonthlyRollup.month),
        lazy="selectin",
        viewonly=True,
    )
    yearly: Mapped[list[EarningYearlyRollup]] = relationship(
        order_by=lambda: EarningYearlyRollup.year,
        lazy="selectin",
        viewonly=True,
    )


class EarningMonthlyRollup(Base):
    """Monthly earnings bucket keyed by (worker, year, month)."""

    __tablename__ = "earning_monthly_rollup"

    worker_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("earning_summary.worker_id", ondelete="CASCADE"), primary_key=True
    )
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    month: Mapped[int] = mapped_column(Integer, primary_key=True)
    earnings: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hours: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    last_updated: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("month BETWEEN 1 AND 12", name="earning_monthly_rollup_month_check"),
    )


class EarningYearlyRollup(Base):
    """Yearly earnings bucket keyed by (worker, year)."""

    __tablename__ = "earning_yearly_rollup"

    worker_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("earning_summary.worker_id", ondelete="CASCADE"), primary_key=True
    )
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    earnings: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hours: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    last_updated: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)


class Subscription(Base, TimestampMixin):
    """Recurring plan billed per period."""

    __tablename__ = "subscription"

    subscription_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    plan_type: Mapped[str] = mapped_column(String(32), nullable=False)
    plan_name: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    interval: Mapped[str] = mapped_column(String(16), nullable=False, default="monthly")
    interval_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    start_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)
    current_period_start: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    current_period_end: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    trial_end: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    payment_method_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    usage_current_period_jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    usage_max_jobs: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)  # -1 = unlimited
    usage_current_period_connections: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    usage_max_connections: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)

    __table_args__ = (
        CheckConstraint(
            "plan_type IN ('basic', 'professional', 'enterprise', 'rigger_premium')",
            name="subscription_plan_type_check",
        ),
        CheckConstraint(
            "\"interval\" IN ('monthly', 'quarterly', 'yearly')",
            name="subscription_interval_check",
        ),
        CheckConstraint(
            "status IN ('active', 'past_due', 'cancelled', 'paused', 'trialing')",
            name="subscription_status_check",
        ),
        Index("ix_subscription_user_status", "user_id", "status"),
    )


class Invoice(Base, TimestampMixin):
    """Invoice with line items and totals."""

    __tablename__ = "invoice"

    invoice_id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    invoice_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")

    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    discount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    issued_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)
    due_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    subscription_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(96), nullable=True)

    contribution_included: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    contribution_amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    transparency_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    extra: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    items: Mapped[list[InvoiceLineItem]] = relationship(
        back_populates="invoice",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(
            "kind IN ('subscription', 'job_fee', 'recruitment_fee', 'platform_fee', 'one_time')",
            name="invoice_kind_check",
        ),
        CheckConstraint(
            "status IN ('draft', 'sent', 'paid', 'overdue', 'cancelled', 'refunded')",
            name="invoice_status_check",
        ),
        Index("ix_invoice_user_status", "user_id", "status"),
    )


class InvoiceLineItem(Base):
    """Single line on an invoice."""

    __tablename__ = "invoice_line_item"

    invoice_line_item_id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    invoice_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("invoice.invoice_id", ondelete="CASCADE"), nullable=False
    )
    description: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="items")


class PaymentMethod(Base, TimestampMixin):
    """Tokenized payment method. Never stores raw card or account numbers."""

    __tablename__ = "payment_method"

    payment_method_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    method_type: Mapped[str] = mapped_column(String(32), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last4: Mapped[str | None] = mapped_column(String(4), nullable=True)
    brand: Mapped[str | None] = mapped_column(String, nullable=True)
    processor_name: Mapped[str] = mapped_column(String(32), nullable=False, default="stripe")
    processor_customer_ref: Mapped[str | None] = mapped_column(String, nullable=True)
    processor_method_ref: Mapped[str | None] = mapped_column(String, nullable=True)
    verification_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    __table_args__ = (
        CheckConstraint(
            "method_type IN ('credit_card', 'debit_card', 'bank_account', 'paypal', 'apple_pay', 'google_pay')",
            name="payment_method_type_check",
        ),
        Index("ix_payment_method_user_default", "user_id", "is_default"),
    )
