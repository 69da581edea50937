"""Contribution ledger - append-only NGO contribution records.

One record per contribution-tracked transaction, enforced by a unique
constraint on ``transaction_id`` so that recording is idempotent and safe to
retry after a partial failure. Reconciliation compares the ledger against
the transaction store and reports drift; it never corrects anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rigger_billing.config import BillingConfig
from rigger_billing.database import insert_ignore
from rigger_billing.models import ALLOCATION_SPLIT, ContributionRecord, Transaction, new_id, utcnow
from rigger_billing.services.state_machine import TransactionStatus

logger = logging.getLogger(__name__)

# Statuses whose contributions count once tracking waits for completion.
# Refunded transactions were completed first, so their record stands.
SETTLED_STATUSES = (TransactionStatus.COMPLETED.value, TransactionStatus.REFUNDED.value)


def quarter_of(month: int) -> int:
    return (month - 1) // 3 + 1


@dataclass(frozen=True)
class Discrepancy:
    """A single reconciliation finding."""

    kind: str  # amount_mismatch, count_mismatch, missing_record, orphan_record
    message: str
    expected: Decimal | int | None = None
    actual: Decimal | int | None = None
    reference_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "expected": self.expected,
            "actual": self.actual,
            "reference_id": self.reference_id,
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """Transaction-side totals vs ledger-side totals for a date range.

    A mismatch is data, not an error: callers decide how severe it is.
    """

    period_start: datetime
    period_end: datetime
    transaction_total: Decimal
    ledger_total: Decimal
    transaction_count: int
    ledger_count: int
    discrepancies: list[Discrepancy] = field(default_factory=list)
    missing_transaction_ids: list[str] = field(default_factory=list)
    orphan_contribution_ids: list[str] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utcnow)

    @property
    def difference(self) -> Decimal:
        return self.transaction_total - self.ledger_total

    @property
    def validation_passed(self) -> bool:
        return not self.discrepancies

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": {"start": self.period_start, "end": self.period_end},
            "transaction_total": self.transaction_total,
            "ledger_total": self.ledger_total,
            "transaction_count": self.transaction_count,
            "ledger_count": self.ledger_count,
            "difference": self.difference,
            "validation_passed": self.validation_passed,
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "missing_transaction_ids": list(self.missing_transaction_ids),
            "orphan_contribution_ids": list(self.orphan_contribution_ids),
            "generated_at": self.generated_at,
        }


class ContributionLedger:
    """Record, query, publish and reconcile contribution records."""

    def __init__(self, session: AsyncSession, config: BillingConfig | None = None):
        self.session = session
        self.config = config or BillingConfig()

    async def record(self, txn: Transaction) -> ContributionRecord:
        """Record the contribution for a transaction.

        Idempotent: recording the same transaction twice returns the first
        record unchanged. The period comes from the transaction's creation
        time, not from when this is called.

        Raises:
            ValueError: the transaction is not contribution-tracked.
        """
        if not txn.contribution_tracked:
            raise ValueError(f"Transaction {txn.transaction_id} is not contribution-tracked")

        created = txn.created_at
        is_new = await insert_ignore(
            self.session,
            ContributionRecord,
            {
                "contribution_id": new_id(),
                "transaction_id": txn.transaction_id,
                "period_year": created.year,
                "period_month": created.month,
                "period_quarter": quarter_of(created.month),
                "amount": txn.contribution_amount,
                "currency": txn.currency,
                "rate": txn.contribution_rate,
                "source_kind": txn.kind,
                "alloc_worker_safety": ALLOCATION_SPLIT["workerSafety"],
                "alloc_training_programs": ALLOCATION_SPLIT["trainingPrograms"],
                "alloc_community_support": ALLOCATION_SPLIT["communitySupport"],
                "alloc_operations": ALLOCATION_SPLIT["operations"],
                "published": False,
                "created_at": created,
            },
            index_elements=["transaction_id"],
        )

        record = await self.get_for_transaction(txn.transaction_id)
        if record is None:
            raise RuntimeError(f"Contribution record for {txn.transaction_id} vanished after insert")

        if is_new:
            logger.info(
                "Recorded contribution %s for %s: %s (%s-%02d)",
                record.contribution_id,
                txn.transaction_id,
                record.amount,
                record.period_year,
                record.period_month,
            )
        else:
            logger.debug("Contribution for %s already recorded", txn.transaction_id)
        return record

    async def get_for_transaction(self, transaction_id: str) -> ContributionRecord | None:
        stmt = select(ContributionRecord).where(ContributionRecord.transaction_id == transaction_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def query_by_period(self, year: int, month: int | None = None) -> list[ContributionRecord]:
        """Records for a year, or for one month of it, oldest first."""
        stmt = select(ContributionRecord).where(ContributionRecord.period_year == year)
        if month is not None:
            stmt = stmt.where(ContributionRecord.period_month == month)
        stmt = stmt.order_by(ContributionRecord.created_at, ContributionRecord.contribution_id)
        return list((await self.session.execute(stmt)).scalars().all())

    async def query_range(self, start: datetime, end: datetime) -> list[ContributionRecord]:
        """Records whose transaction was created in [start, end]."""
        stmt = (
            select(ContributionRecord)
            .where(ContributionRecord.created_at >= start, ContributionRecord.created_at <= end)
            .order_by(ContributionRecord.created_at, ContributionRecord.contribution_id)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def publish(
        self,
        year: int,
        month: int,
        report_url: str,
        published_at: datetime | None = None,
    ) -> int:
        """Attach public-report metadata to a month's records.

        Returns:
            Number of records marked published.
        """
        result = await self.session.execute(
            update(ContributionRecord)
            .where(
                ContributionRecord.period_year == year,
                ContributionRecord.period_month == month,
            )
            .values(
                published=True,
                report_url=report_url,
                published_at=published_at or utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        logger.info("Published %d contribution records for %s-%02d at %s", result.rowcount, year, month, report_url)
        return result.rowcount

    async def reconcile(self, start: datetime, end: datetime) -> ReconciliationReport:
        """Cross-check tracked transactions against ledger records in a range.

        Read-only. Flags a total mismatch beyond the configured epsilon, a
        count mismatch, tracked transactions with no record, and records
        whose transaction is not among the tracked transactions in range.
        """
        if end < start:
            raise ValueError("end must not be before start")

        txn_stmt = select(Transaction.transaction_id, Transaction.contribution_amount).where(
            Transaction.contribution_tracked.is_(True),
            Transaction.created_at >= start,
            Transaction.created_at <= end,
        )
        if not self.config.tracks_at_creation:
            txn_stmt = txn_stmt.where(Transaction.status.in_(SETTLED_STATUSES))
        txn_rows = (await self.session.execute(txn_stmt)).all()

        ledger_stmt = select(
            ContributionRecord.contribution_id,
            ContributionRecord.transaction_id,
            ContributionRecord.amount,
        ).where(ContributionRecord.created_at >= start, ContributionRecord.created_at <= end)
        ledger_rows = (await self.session.execute(ledger_stmt)).all()

        transaction_total = sum((Decimal(str(r.contribution_amount)) for r in txn_rows), Decimal("0"))
        ledger_total = sum((Decimal(str(r.amount)) for r in ledger_rows), Decimal("0"))

        tracked_ids = {r.transaction_id for r in txn_rows}
        recorded_ids = {r.transaction_id for r in ledger_rows}
        missing = sorted(tracked_ids - recorded_ids)
        orphans = sorted(r.contribution_id for r in ledger_rows if r.transaction_id not in tracked_ids)

        discrepancies: list[Discrepancy] = []
        if abs(transaction_total - ledger_total) > self.config.reconciliation_epsilon:
            discrepancies.append(
                Discrepancy(
                    kind="amount_mismatch",
                    message="Transaction and ledger contribution totals differ",
                    expected=transaction_total,
                    actual=ledger_total,
                )
            )
        if len(txn_rows) != len(ledger_rows):
            discrepancies.append(
                Discrepancy(
                    kind="count_mismatch",
                    message="Transaction and ledger record counts differ",
                    expected=len(txn_rows),
                    actual=len(ledger_rows),
                )
            )
        for transaction_id in missing:
            discrepancies.append(
                Discrepancy(
                    kind="missing_record",
                    message="Tracked transaction has no contribution record",
                    reference_id=transaction_id,
                )
            )
        for contribution_id in orphans:
            discrepancies.append(
                Discrepancy(
                    kind="orphan_record",
                    message="Contribution record has no matching tracked transaction",
                    reference_id=contribution_id,
                )
            )

        report = ReconciliationReport(
            period_start=start,
            period_end=end,
            transaction_total=transaction_total,
            ledger_total=ledger_total,
            transaction_count=len(txn_rows),
            ledger_count=len(ledger_rows),
            discrepancies=discrepancies,
            missing_transaction_ids=missing,
            orphan_contribution_ids=orphans,
        )
        if report.validation_passed:
            logger.info("Contributions reconciled for %s..%s: %s", start, end, ledger_total)
        else:
            logger.warning(
                "Contribution reconciliation found %d discrepancies for %s..%s",
                len(discrepancies),
                start,
                end,
            )
        return report
