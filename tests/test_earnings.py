"""Tests for the earnings aggregator."""

import asyncio
from datetime import datetime
from decimal import Decimal

import pytest

from rigger_billing.errors import InvalidAmountError
from rigger_billing.services import EarningsAggregator


@pytest.fixture
def aggregator(session, clock) -> EarningsAggregator:
    return EarningsAggregator(session, clock=clock)


class TestApplyPayment:
    async def test_first_payment_creates_summary(self, aggregator, clock):
        summary = await aggregator.apply_payment("wrk_1", Decimal("386.00"), hours=Decimal("8"))

        assert summary.total_earnings == Decimal("386.00")
        assert summary.total_jobs == 1
        assert summary.total_hours == Decimal("8")
        assert summary.average_job_value == Decimal("386.00")
        assert summary.average_hourly_rate == Decimal("48.25")
        assert summary.tax_1099_threshold == Decimal("600")
        assert [(m.year, m.month, m.jobs) for m in summary.monthly] == [(clock.now.year, clock.now.month, 1)]
        assert [(y.year, y.earnings) for y in summary.yearly] == [(clock.now.year, Decimal("386.00"))]

    async def test_averages_follow_totals(self, aggregator):
        await aggregator.apply_payment("wrk_1", "100", hours="4")
        summary = await aggregator.apply_payment("wrk_1", "300", hours="6")

        assert summary.total_earnings == Decimal("400")
        assert summary.total_jobs == 2
        assert summary.average_job_value == Decimal("200")
        assert summary.average_hourly_rate == Decimal("40")

    async def test_payment_without_hours_keeps_hourly_rate(self, aggregator):
        await aggregator.apply_payment("wrk_1", "100", hours="4")
        summary = await aggregator.apply_payment("wrk_1", "100")

        assert summary.total_hours == Decimal("4")
        assert summary.average_hourly_rate == Decimal("25")
        assert summary.average_job_value == Decimal("100")

    async def test_rollups_bucket_by_payment_time(self, aggregator):
        await aggregator.apply_payment("wrk_1", "100", at=datetime(2023, 12, 30))
        await aggregator.apply_payment("wrk_1", "50", at=datetime(2024, 1, 2))
        await aggregator.apply_payment("wrk_1", "25", at=datetime(2024, 1, 20))

        months = await aggregator.monthly("wrk_1")
        assert [(m.year, m.month, m.earnings, m.jobs) for m in months] == [
            (2023, 12, Decimal("100"), 1),
            (2024, 1, Decimal("75"), 2),
        ]
        assert len(await aggregator.monthly("wrk_1", year=2024)) == 1

        summary = await aggregator.get_summary("wrk_1", refresh=True)
        assert {y.year: y.jobs for y in summary.yearly} == {2023: 1, 2024: 2}

    @pytest.mark.parametrize("amount", ["0", "-1"])
    async def test_rejects_non_positive_amount(self, aggregator, amount):
        with pytest.raises(InvalidAmountError):
            await aggregator.apply_payment("wrk_1", amount)

    async def test_rejects_negative_hours(self, aggregator):
        with pytest.raises(InvalidAmountError):
            await aggregator.apply_payment("wrk_1", "10", hours="-1")

    async def test_unknown_worker(self, aggregator):
        assert await aggregator.get_summary("nobody") is None

    async def test_missing_summary_after_update_raises(self, aggregator, monkeypatch):
        async def deleted(worker_id, refresh=False):
            return None

        monkeypatch.setattr(aggregator, "get_summary", deleted)

        with pytest.raises(RuntimeError, match="wrk_1"):
            await aggregator.apply_payment("wrk_1", "100")


class TestConcurrentPayments:
    """Concurrent payments to one worker, each in its own session, lose nothing."""

    async def test_no_lost_updates(self, session_factory, clock):
        payments = 25

        async def pay(i: int) -> None:
            async with session_factory() as session:
                await EarningsAggregator(session, clock=clock).apply_payment("wrk_busy", Decimal("10.00"), hours="1")
                await session.commit()

        await asyncio.gather(*(pay(i) for i in range(payments)))

        async with session_factory() as session:
            summary = await EarningsAggregator(session).get_summary("wrk_busy")
            assert summary.total_earnings == Decimal("250.00")
            assert summary.total_jobs == payments
            assert summary.total_hours == Decimal("25")
            assert summary.average_job_value == Decimal("10")
            assert summary.monthly[0].jobs == payments
            assert summary.yearly[0].earnings == Decimal("250.00")
