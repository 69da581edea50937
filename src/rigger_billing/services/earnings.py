"""Earnings aggregator - per-worker running totals and rollups.

Every counter moves through a single ``UPDATE ... SET col = col + :delta``
so concurrent payments to the same worker never lose an update, whether
they come from one process or many. Averages are recomputed inside the
same statement: right-hand sides see the row as it was before the update,
so the new totals are written out in full there.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rigger_billing.calculators.fees import to_decimal
from rigger_billing.database import insert_ignore
from rigger_billing.errors import InvalidAmountError
from rigger_billing.models import (
    EarningMonthlyRollup,
    EarningSummary,
    EarningYearlyRollup,
    utcnow,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class EarningsAggregator:
    """Maintains EarningSummary rows and their monthly/yearly buckets."""

    def __init__(self, session: AsyncSession, clock=utcnow):
        self.session = session
        self._clock = clock

    async def apply_payment(
        self,
        worker_id: str,
        amount: Decimal | int | str,
        hours: Decimal | int | str | None = None,
        at: datetime | None = None,
    ) -> EarningSummary:
        """Add one paid job to a worker's totals.

        Args:
            worker_id: Worker (payee) id. The summary is created on first use.
            amount: Net amount credited to the worker.
            hours: Hours worked, when known. Without hours the hourly
                average is left untouched.
            at: Payment time, selects the monthly/yearly bucket.

        Returns:
            The updated summary with its rollups loaded.
        """
        delta = to_decimal(amount)
        if delta <= 0:
            raise InvalidAmountError("Amount must be positive")
        hours_delta = to_decimal(hours) if hours is not None else None
        if hours_delta is not None and hours_delta < 0:
            raise InvalidAmountError("Hours cannot be negative")

        now = at or self._clock()

        await insert_ignore(
            self.session,
            EarningSummary,
            {
                "worker_id": worker_id,
                "total_earnings": ZERO,
                "total_jobs": 0,
                "total_hours": ZERO,
                "average_job_value": ZERO,
                "average_hourly_rate": ZERO,
                "w9_on_file": False,
                "tax_1099_threshold": Decimal("600"),
                "created_at": now,
                "updated_at": now,
            },
            index_elements=["worker_id"],
        )

        s = EarningSummary
        new_total = s.total_earnings + delta
        values = {
            s.total_earnings: new_total,
            s.total_jobs: s.total_jobs + 1,
            s.average_job_value: new_total / (s.total_jobs + 1),
            s.updated_at: now,
        }
        if hours_delta is not None:
            new_hours = s.total_hours + hours_delta
            values[s.total_hours] = new_hours
            values[s.average_hourly_rate] = case(
                (new_hours > 0, new_total / new_hours),
                else_=s.average_hourly_rate,
            )

        await self.session.execute(
            update(s)
            .where(s.worker_id == worker_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )

        await self._bump_monthly(worker_id, now, delta, hours_delta or ZERO)
        await self._bump_yearly(worker_id, now, delta, hours_delta or ZERO)

        summary = await self.get_summary(worker_id, refresh=True)
        if summary is None:
            raise RuntimeError(f"Earning summary for {worker_id} vanished after update")
        logger.info(
            "Applied payment of %s to worker %s (total=%s, jobs=%s)",
            delta,
            worker_id,
            summary.total_earnings,
            summary.total_jobs,
        )
        return summary

    async def get_summary(self, worker_id: str, refresh: bool = False) -> EarningSummary | None:
        stmt = select(EarningSummary).where(EarningSummary.worker_id == worker_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def monthly(self, worker_id: str, year: int | None = None) -> list[EarningMonthlyRollup]:
        stmt = select(EarningMonthlyRollup).where(EarningMonthlyRollup.worker_id == worker_id)
        if year is not None:
            stmt = stmt.where(EarningMonthlyRollup.year == year)
        stmt = stmt.order_by(EarningMonthlyRollup.year, EarningMonthlyRollup.month).execution_options(
            populate_existing=True
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def _bump_monthly(self, worker_id: str, at: datetime, amount: Decimal, hours: Decimal) -> None:
        await insert_ignore(
            self.session,
            EarningMonthlyRollup,
            {
                "worker_id": worker_id,
                "year": at.year,
                "month": at.month,
                "earnings": ZERO,
                "jobs": 0,
                "hours": ZERO,
                "last_updated": at,
            },
            index_elements=["worker_id", "year", "month"],
        )
        m = EarningMonthlyRollup
        await self.session.execute(
            update(m)
            .where(m.worker_id == worker_id, m.year == at.year, m.month == at.month)
            .values(
                {
                    m.earnings: m.earnings + amount,
                    m.jobs: m.jobs + 1,
                    m.hours: m.hours + hours,
                    m.last_updated: at,
                }
            )
            .execution_options(synchronize_session=False)
        )

    async def _bump_yearly(self, worker_id: str, at: datetime, amount: Decimal, hours: Decimal) -> None:
        await insert_ignore(
            self.session,
            EarningYearlyRollup,
            {
                "worker_id": worker_id,
                "year": at.year,
                "earnings": ZERO,
                "jobs": 0,
                "hours": ZERO,
                "last_updated": at,
            },
            index_elements=["worker_id", "year"],
        )
        y = EarningYearlyRollup
        await self.session.execute(
            update(y)
            .where(y.worker_id == worker_id, y.year == at.year)
            .values(
                {
                    y.earnings: y.earnings + amount,
                    y.jobs: y.jobs + 1,
                    y.hours: y.hours + hours,
                    y.last_updated: at,
                }
            )
            .execution_options(synchronize_session=False)
        )
