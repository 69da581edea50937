"""Marketplace read models used by billing: users and jobs.

The marketplace owns these rows; billing only reads them and writes the
job's payment fields.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rigger_billing.models.base import Base, TimestampMixin


class AppUser(Base, TimestampMixin):
    """Marketplace user (worker, employer or admin)."""

    __tablename__ = "app_user"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="worker")
    company_name: Mapped[str | None] = mapped_column(String, nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Job(Base, TimestampMixin):
    """Posted job with its assignment and payment state."""

    __tablename__ = "job"

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    posted_by_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("app_user.user_id"), nullable=False
    )
    assigned_to_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("app_user.user_id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")

    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    estimated_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    actual_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="unpaid")
    payment_transaction_id: Mapped[str | None] = mapped_column(String(96), nullable=True)
    payment_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    payment_net_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    payment_platform_fee: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    payment_contribution: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    payment_processed_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    posted_by: Mapped[AppUser] = relationship(foreign_keys=[posted_by_id], lazy="selectin")
    assigned_to: Mapped[AppUser | None] = relationship(foreign_keys=[assigned_to_id], lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "status IN ('open', 'assigned', 'in_progress', 'completed', 'cancelled')",
            name="job_status_check",
        ),
        CheckConstraint(
            "payment_status IN ('unpaid', 'processing', 'paid', 'failed')",
            name="job_payment_status_check",
        ),
    )

    @property
    def billable_hours(self) -> Decimal:
        """Actual hours when recorded, otherwise the estimate."""
        return self.actual_hours if self.actual_hours is not None else self.estimated_hours
