"""Transparency reporting over the contribution ledger.

Yearly and monthly reports, the public dashboard, and the reconciliation
check between transactions and ledger records. Everything here reads the
ledger; the only write is attaching publication metadata to a month's
records.

Impact metrics are illustrative estimates derived from fixed cost-per-unit
divisors, not figures reported by the NGO.
"""

from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Any

from rigger_billing.calculators.fees import CONTRIBUTION_RATE, quantize_money
from rigger_billing.events import ContributionsReconciled, EventMetadata
from rigger_billing.models import ALLOCATION_SPLIT, ContributionRecord, utcnow
from rigger_billing.services.base import UseCaseService
from rigger_billing.services.contribution_ledger import ContributionLedger, ReconciliationReport
from rigger_billing.services.results import Result

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

QUARTERS = (("Q1", (1, 2, 3)), ("Q2", (4, 5, 6)), ("Q3", (7, 8, 9)), ("Q4", (10, 11, 12)))

# Estimated cost per unit of impact, per allocation category
IMPACT_DIVISORS: dict[str, dict[str, Decimal]] = {
    "workerSafety": {
        "safetyTrainingHours": Decimal("25"),
        "safetyEquipmentProvided": Decimal("150"),
        "safetyIncidentsReduced": Decimal("1000"),
        "workersImpacted": Decimal("100"),
    },
    "trainingPrograms": {
        "programsOffered": Decimal("500"),
        "workersTrained": Decimal("200"),
        "certificationsPaid": Decimal("300"),
        "skillsWorkshops": Decimal("150"),
    },
    "communitySupport": {
        "familiesSupported": Decimal("250"),
        "emergencyAssistance": Decimal("500"),
        "communityEvents": Decimal("1000"),
        "scholarships": Decimal("2000"),
    },
}
STAFF_SUPPORT_COST = Decimal("3000")
OPERATIONS_SPLIT = {
    "technologyMaintenance": Decimal("0.3"),
    "facilitiesUpkeep": Decimal("0.4"),
    "administrativeCosts": Decimal("0.3"),
}

ALLOCATION_DESCRIPTIONS = {
    "workerSafety": "Safety training, equipment, and incident prevention",
    "trainingPrograms": "Skills development and professional certifications",
    "communitySupport": "Family support and emergency assistance",
    "operations": "Administrative costs and infrastructure",
}

DASHBOARD_TITLE = "Rigger Community NGO - Transparency Dashboard"
DASHBOARD_MISSION = "Improving worker safety and supporting the rigger community through technology and education"


def report_url(year: int, month: int) -> str:
    return f"/transparency/reports/{year}/{month}"


def _floor(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def allocate(total: Decimal) -> dict[str, Decimal]:
    """Split an amount across impact categories (40/30/20/10)."""
    return {category: total * share for category, share in ALLOCATION_SPLIT.items()}


def impact_metrics(total: Decimal) -> dict[str, dict[str, Any]]:
    """Estimated impact counts for a contribution total."""
    allocation = allocate(total)
    metrics: dict[str, dict[str, Any]] = {
        category: {name: _floor(allocation[category] / divisor) for name, divisor in divisors.items()}
        for category, divisors in IMPACT_DIVISORS.items()
    }
    operations: dict[str, Any] = {"staffSupported": _floor(allocation["operations"] / STAFF_SUPPORT_COST)}
    operations.update({name: allocation["operations"] * share for name, share in OPERATIONS_SPLIT.items()})
    metrics["operations"] = operations
    return metrics


@dataclass(frozen=True)
class MonthBucket:
    month: int
    month_name: str
    amount: Decimal
    transactions: int


@dataclass(frozen=True)
class QuarterBucket:
    quarter: str
    amount: Decimal
    transactions: int
    months: list[MonthBucket]


@dataclass(frozen=True)
class SourceShare:
    amount: Decimal
    count: int
    percentage: Decimal


@dataclass(frozen=True)
class TransparencySummary:
    total_contributions: Decimal
    total_transactions: int
    average_contribution: Decimal
    contribution_rate: Decimal = CONTRIBUTION_RATE


@dataclass(frozen=True)
class TransparencyReport:
    """Yearly contribution report."""

    year: int
    summary: TransparencySummary
    sources: dict[str, SourceShare]
    monthly_breakdown: list[MonthBucket]
    quarterly_breakdown: list[QuarterBucket]
    impact_allocation: dict[str, Decimal]
    impact_metrics: dict[str, dict[str, Any]]
    published_records: int
    generated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PublicDashboard:
    """Public view of a yearly report, without record-level detail."""

    year: int
    title: str
    mission: str
    total_contributions: Decimal
    total_transactions: int
    impact_highlights: list[str]
    monthly_trends: list[MonthBucket]
    impact_allocation: dict[str, dict[str, Any]]
    stories: list[dict[str, str]]
    last_updated: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class MonthlyTransparencyReport:
    year: int
    month: int
    period: str
    total_contributions: Decimal
    transaction_count: int
    average_contribution: Decimal
    by_source: dict[str, Decimal]
    allocation: dict[str, Decimal]
    report_url: str
    published_records: int


def monthly_buckets(year: int, records: list[ContributionRecord]) -> list[MonthBucket]:
    """Twelve buckets, zero-filled for months with no contributions."""
    amounts: dict[int, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[int, int] = defaultdict(int)
    for record in records:
        amounts[record.period_month] += record.amount
        counts[record.period_month] += 1
    return [
        MonthBucket(month=m, month_name=calendar.month_name[m], amount=amounts[m], transactions=counts[m])
        for m in range(1, 13)
    ]


def quarterly_buckets(months: list[MonthBucket]) -> list[QuarterBucket]:
    quarters = []
    for name, members in QUARTERS:
        in_quarter = [m for m in months if m.month in members]
        quarters.append(
            QuarterBucket(
                quarter=name,
                amount=sum((m.amount for m in in_quarter), ZERO),
                transactions=sum(m.transactions for m in in_quarter),
                months=in_quarter,
            )
        )
    return quarters


def source_shares(records: list[ContributionRecord], total: Decimal) -> dict[str, SourceShare]:
    amounts: dict[str, Decimal] = defaultdict(lambda: ZERO)
    counts: dict[str, int] = defaultdict(int)
    for record in records:
        amounts[record.source_kind] += record.amount
        counts[record.source_kind] += 1
    return {
        kind: SourceShare(
            amount=amount,
            count=counts[kind],
            percentage=(amount / total * 100) if total else ZERO,
        )
        for kind, amount in amounts.items()
    }


class TransparencyService(UseCaseService):
    """Contribution transparency reports and validation."""

    async def generate_report(self, year: int) -> Result[TransparencyReport]:
        return await self.run("transparency_report", lambda: self._build_report(year))

    async def _build_report(self, year: int) -> TransparencyReport:
        async with self.session_factory() as session:
            records = await ContributionLedger(session, self.config).query_by_period(year)

        total = sum((r.amount for r in records), ZERO)
        months = monthly_buckets(year, records)
        return TransparencyReport(
            year=year,
            summary=TransparencySummary(
                total_contributions=total,
                total_transactions=len(records),
                average_contribution=quantize_money(total / len(records)) if records else ZERO,
            ),
            sources=source_shares(records, total),
            monthly_breakdown=months,
            quarterly_breakdown=quarterly_buckets(months),
            impact_allocation=allocate(total),
            impact_metrics=impact_metrics(total),
            published_records=sum(1 for r in records if r.published),
            generated_at=self.clock(),
        )

    async def generate_public_dashboard(self, year: int) -> Result[PublicDashboard]:
        return await self.run("public_dashboard", lambda: self._build_dashboard(year))

    async def _build_dashboard(self, year: int) -> PublicDashboard:
        report = await self._build_report(year)
        metrics = report.impact_metrics
        safety = metrics["workerSafety"]
        training = metrics["trainingPrograms"]
        community = metrics["communitySupport"]

        return PublicDashboard(
            year=year,
            title=DASHBOARD_TITLE,
            mission=DASHBOARD_MISSION,
            total_contributions=quantize_money(report.summary.total_contributions),
            total_transactions=report.summary.total_transactions,
            impact_highlights=[
                f"{safety['workersImpacted']} workers positively impacted",
                f"{safety['safetyTrainingHours']} hours of safety training provided",
                f"{training['workersTrained']} workers received professional training",
                f"{community['familiesSupported']} families received emergency support",
            ],
            monthly_trends=report.monthly_breakdown,
            impact_allocation={
                category: {
                    "percentage": int(share * 100),
                    "amount": quantize_money(report.impact_allocation[category]),
                    "description": ALLOCATION_DESCRIPTIONS[category],
                }
                for category, share in ALLOCATION_SPLIT.items()
            },
            stories=[
                {
                    "title": "Safety First Initiative",
                    "category": "Worker Safety",
                    "description": (
                        f"This year, we provided {safety['safetyTrainingHours']} hours of safety training and "
                        f"distributed {safety['safetyEquipmentProvided']} safety equipment kits to riggers "
                        "across the industry."
                    ),
                },
                {
                    "title": "Skills for the Future",
                    "category": "Professional Development",
                    "description": (
                        f"Our training programs helped {training['workersTrained']} workers develop new skills "
                        "and earn professional certifications."
                    ),
                },
                {
                    "title": "Community Support Network",
                    "category": "Community Support",
                    "description": (
                        f"We provided emergency assistance to {community['familiesSupported']} rigger families "
                        f"and organized {community['communityEvents']} community events."
                    ),
                },
            ],
            last_updated=self.clock(),
        )

    async def create_monthly_report(self, year: int, month: int) -> Result[MonthlyTransparencyReport]:
        """Summarize a month and mark its ledger records as published."""
        return await self.run("monthly_transparency_report", lambda: self._monthly_report(year, month))

    async def _monthly_report(self, year: int, month: int) -> MonthlyTransparencyReport:
        if not 1 <= month <= 12:
            raise ValueError("month must be between 1 and 12")
        url = report_url(year, month)
        async with self.unit_of_work() as (session, _batch):
            ledger = ContributionLedger(session, self.config)
            records = await ledger.query_by_period(year, month)
            published = await ledger.publish(year, month, url, published_at=self.clock())

        total = sum((r.amount for r in records), ZERO)
        by_source: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for record in records:
            by_source[record.source_kind] += record.amount

        return MonthlyTransparencyReport(
            year=year,
            month=month,
            period=f"{calendar.month_name[month]} {year}",
            total_contributions=total,
            transaction_count=len(records),
            average_contribution=quantize_money(total / len(records)) if records else ZERO,
            by_source=dict(by_source),
            allocation=allocate(total),
            report_url=url,
            published_records=published,
        )

    async def validate_contributions(self, start: datetime, end: datetime) -> Result[ReconciliationReport]:
        """Reconcile tracked transactions against the ledger for a range."""
        return await self.run("validate_contributions", lambda: self._validate(start, end))

    async def _validate(self, start: datetime, end: datetime) -> ReconciliationReport:
        async with self.unit_of_work() as (session, batch):
            report = await ContributionLedger(session, self.config).reconcile(start, end)
            batch.add(
                ContributionsReconciled(
                    metadata=EventMetadata.create(),
                    period_start=start,
                    period_end=end,
                    transaction_total=report.transaction_total,
                    ledger_total=report.ledger_total,
                    discrepancy_count=len(report.discrepancies),
                    validation_passed=report.validation_passed,
                )
            )
        self.stats.gauge("billing_reconciliation_discrepancies", len(report.discrepancies))
        return report
