"""Billing reports for workers, employers and platform operators.

Read-only: every report is built from the transaction store and the
earnings rollups inside a single session and returned as a ``Result``.
"""

from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import select

from rigger_billing.calculators.fees import quantize_money
from rigger_billing.errors import NotFoundError
from rigger_billing.models import AppUser, EarningSummary, Invoice, Subscription, Transaction, utcnow
from rigger_billing.services.base import UseCaseService
from rigger_billing.services.earnings import EarningsAggregator
from rigger_billing.services.results import Result
from rigger_billing.services.transaction_store import TransactionFilters, TransactionStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
REPORT_PERIODS = ("weekly", "monthly", "yearly")
TOP_PARTICIPANTS = 10


def period_start(now: datetime, period: str) -> datetime:
    """Start of a trailing window: one week, one calendar month or one year back.

    Days that do not exist in the target month clamp to its last day.
    """
    if period == "weekly":
        return now - timedelta(days=7)
    if period == "monthly":
        year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
        day = min(now.day, calendar.monthrange(year, month)[1])
        return now.replace(year=year, month=month, day=day)
    if period == "yearly":
        year = now.year - 1
        day = min(now.day, calendar.monthrange(year, now.month)[1])
        return now.replace(year=year, day=day)
    raise ValueError(f"Unknown report period '{period}'")


def _money(value: Decimal) -> Decimal:
    return quantize_money(value)


@dataclass(frozen=True)
class WorkerEarningsReport:
    """Earnings summary plus the requested rollup series."""

    worker: dict[str, Any]
    summary: dict[str, Any]
    period: str
    period_data: list[dict[str, Any]]
    tax_info: dict[str, Any]
    generated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class EmployerBillingSummary:
    employer_id: str
    period: str
    period_start: datetime
    total_spent: Decimal
    total_transactions: int
    active_subscriptions: int
    monthly_subscription_cost: Decimal
    outstanding_invoices: int
    contributions: Decimal
    transactions: list[Transaction]
    subscriptions: list[Subscription]
    invoices: list[Invoice]


@dataclass(frozen=True)
class WorkerTaxSummary:
    """Per-year earnings grouped by payer, with the 1099 threshold check."""

    worker_id: str
    year: int
    gross_earnings: Decimal
    net_earnings: Decimal
    platform_fees: Decimal
    contributions: Decimal
    job_count: int
    threshold: Decimal
    requires_1099: bool
    payers: list[dict[str, Any]]
    payers_over_threshold: list[dict[str, Any]]
    w9_on_file: bool


@dataclass(frozen=True)
class PaymentReport:
    """Completed-transaction activity over a trailing period."""

    period: str
    start: datetime
    end: datetime
    total_transactions: int
    total_volume: Decimal
    average_transaction: Decimal
    platform_fees: Decimal
    contributions: Decimal
    by_type: dict[str, Decimal]
    by_status: dict[str, int]
    top_payers: list[dict[str, Any]]
    top_payees: list[dict[str, Any]]


class BillingReportService(UseCaseService):
    """Worker, employer, tax and platform payment reports."""

    async def generate_worker_earnings_report(
        self,
        worker_id: str,
        period: str = "monthly",
    ) -> Result[WorkerEarningsReport]:
        """Earnings report with monthly, yearly or summary-only period data."""
        return await self.run("worker_earnings_report", lambda: self._worker_earnings(worker_id, period))

    async def _worker_earnings(self, worker_id: str, period: str) -> WorkerEarningsReport:
        async with self.session_factory() as session:
            summary = await EarningsAggregator(session).get_summary(worker_id)
            if summary is None:
                raise NotFoundError("Earnings data", worker_id)
            worker = await session.get(AppUser, worker_id)

            totals = {
                "total_earnings": summary.total_earnings,
                "total_jobs": summary.total_jobs,
                "total_hours": summary.total_hours,
                "average_job_value": _money(summary.average_job_value),
                "average_hourly_rate": _money(summary.average_hourly_rate),
            }
            if period == "monthly":
                period_data = [
                    {"year": m.year, "month": m.month, "earnings": m.earnings, "jobs": m.jobs, "hours": m.hours}
                    for m in summary.monthly
                ]
            elif period == "yearly":
                period_data = [
                    {"year": y.year, "earnings": y.earnings, "jobs": y.jobs, "hours": y.hours}
                    for y in summary.yearly
                ]
            else:
                period_data = [totals]

            return WorkerEarningsReport(
                worker={
                    "worker_id": worker_id,
                    "name": worker.full_name if worker else None,
                    "email": worker.email if worker else None,
                },
                summary=totals,
                period=period,
                period_data=period_data,
                tax_info=_tax_info(summary),
                generated_at=self.clock(),
            )

    async def generate_employer_billing_summary(
        self,
        employer_id: str,
        period: str = "monthly",
    ) -> Result[EmployerBillingSummary]:
        """What an employer spent over the last month or year."""
        return await self.run("employer_billing_summary", lambda: self._employer_summary(employer_id, period))

    async def _employer_summary(self, employer_id: str, period: str) -> EmployerBillingSummary:
        start = period_start(self.clock(), period)
        async with self.session_factory() as session:
            transactions = await TransactionStore(session).find_all(
                TransactionFilters(payer_id=employer_id, created_from=start)
            )
            subscriptions = list(
                (
                    await session.execute(
                        select(Subscription).where(
                            Subscription.user_id == employer_id,
                            Subscription.status == "active",
                        )
                    )
                )
                .scalars()
                .all()
            )
            invoices = list(
                (
                    await session.execute(
                        select(Invoice).where(Invoice.user_id == employer_id, Invoice.issued_at >= start)
                    )
                )
                .scalars()
                .all()
            )

        return EmployerBillingSummary(
            employer_id=employer_id,
            period=period,
            period_start=start,
            total_spent=sum((t.amount for t in transactions), ZERO),
            total_transactions=len(transactions),
            active_subscriptions=len(subscriptions),
            monthly_subscription_cost=sum((s.amount for s in subscriptions), ZERO),
            outstanding_invoices=sum(1 for i in invoices if i.status != "paid"),
            contributions=sum((t.contribution_amount for t in transactions), ZERO),
            transactions=transactions,
            subscriptions=subscriptions,
            invoices=invoices,
        )

    async def generate_worker_tax_summary(self, worker_id: str, year: int) -> Result[WorkerTaxSummary]:
        """Year-end summary of job payments received, grouped by payer."""
        return await self.run("worker_tax_summary", lambda: self._tax_summary(worker_id, year))

    async def _tax_summary(self, worker_id: str, year: int) -> WorkerTaxSummary:
        start = datetime(year, 1, 1)
        end = datetime(year, 12, 31, 23, 59, 59, 999999)
        async with self.session_factory() as session:
            summary = await EarningsAggregator(session).get_summary(worker_id)
            payments = await TransactionStore(session).find_all(
                TransactionFilters(
                    kind="job_payment",
                    payee_id=worker_id,
                    status="completed",
                    created_from=start,
                    created_to=end,
                )
            )

        payers: dict[str, dict[str, Any]] = {}
        for txn in payments:
            entry = payers.setdefault(
                txn.payer_id,
                {"payer_id": txn.payer_id, "name": txn.payer_name, "gross": ZERO, "net": ZERO, "jobs": 0},
            )
            entry["gross"] += txn.amount
            entry["net"] += txn.net_amount
            entry["jobs"] += 1

        threshold = summary.tax_1099_threshold if summary else Decimal("600")
        net = sum((t.net_amount for t in payments), ZERO)
        ranked = sorted(payers.values(), key=lambda p: p["net"], reverse=True)
        return WorkerTaxSummary(
            worker_id=worker_id,
            year=year,
            gross_earnings=sum((t.amount for t in payments), ZERO),
            net_earnings=net,
            platform_fees=sum((t.fee_platform for t in payments), ZERO),
            contributions=sum((t.contribution_amount for t in payments), ZERO),
            job_count=len(payments),
            threshold=threshold,
            requires_1099=net >= threshold,
            payers=ranked,
            payers_over_threshold=[p for p in ranked if p["net"] >= threshold],
            w9_on_file=summary.w9_on_file if summary else False,
        )

    async def generate_payment_report(self, period: str = "monthly") -> Result[PaymentReport]:
        """Platform-wide completed transactions over a trailing period."""
        return await self.run("payment_report", lambda: self._payment_report(period))

    async def _payment_report(self, period: str) -> PaymentReport:
        end = self.clock()
        start = period_start(end, period)
        async with self.session_factory() as session:
            transactions = await TransactionStore(session).find_all(
                TransactionFilters(status="completed", created_from=start, created_to=end)
            )

        volume = sum((t.amount for t in transactions), ZERO)
        by_type: dict[str, Decimal] = defaultdict(lambda: ZERO)
        by_status: dict[str, int] = defaultdict(int)
        for txn in transactions:
            by_type[txn.kind] += txn.amount
            by_status[txn.status] += 1

        return PaymentReport(
            period=period,
            start=start,
            end=end,
            total_transactions=len(transactions),
            total_volume=volume,
            average_transaction=_money(volume / len(transactions)) if transactions else ZERO,
            platform_fees=sum((t.fee_platform for t in transactions), ZERO),
            contributions=sum((t.contribution_amount for t in transactions), ZERO),
            by_type=dict(by_type),
            by_status=dict(by_status),
            top_payers=_top_participants(transactions, payer=True),
            top_payees=_top_participants(transactions, payer=False),
        )


def _tax_info(summary: EarningSummary) -> dict[str, Any]:
    return {
        "tax_id_on_file": bool(summary.tax_id),
        "business_type": summary.business_type,
        "w9_on_file": summary.w9_on_file,
        "tax_1099_threshold": summary.tax_1099_threshold,
    }


def _top_participants(transactions: list[Transaction], payer: bool) -> list[dict[str, Any]]:
    """Largest payers by gross paid, or payees by net received."""
    totals: dict[str, dict[str, Any]] = {}
    for txn in transactions:
        user_id = txn.payer_id if payer else txn.payee_id
        if not user_id:
            continue
        entry = totals.setdefault(
            user_id,
            {
                "user_id": user_id,
                "name": txn.payer_name if payer else txn.payee_name,
                "total": ZERO,
                "transaction_count": 0,
            },
        )
        entry["total"] += txn.amount if payer else txn.net_amount
        entry["transaction_count"] += 1
    return sorted(totals.values(), key=lambda e: e["total"], reverse=True)[:TOP_PARTICIPANTS]
