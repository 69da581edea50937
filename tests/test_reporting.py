"""Tests for billing reports."""

from datetime import datetime
from decimal import Decimal

import pytest

from rigger_billing.errors import ErrorCode
from rigger_billing.services.reporting import period_start


class TestPeriodStart:
    @pytest.mark.parametrize(
        ("now", "period", "expected"),
        [
            (datetime(2024, 3, 15), "weekly", datetime(2024, 3, 8)),
            (datetime(2024, 3, 15), "monthly", datetime(2024, 2, 15)),
            (datetime(2024, 3, 31), "monthly", datetime(2024, 2, 29)),
            (datetime(2024, 1, 10), "monthly", datetime(2023, 12, 10)),
            (datetime(2024, 2, 29), "yearly", datetime(2023, 2, 28)),
        ],
    )
    def test_windows(self, now, period, expected):
        assert period_start(now, period) == expected

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            period_start(datetime(2024, 1, 1), "daily")


class TestWorkerEarningsReport:
    async def test_monthly_report(self, orchestrator, seed, employer, worker, clock):
        job = await seed.job(employer, worker)
        await orchestrator.process_job_completion_payment(job.job_id)

        report = (await orchestrator.generate_worker_earnings_report(worker.user_id, "monthly")).value

        assert report.worker["name"] == "Wes Hand"
        assert report.summary["total_earnings"] == Decimal("386.00")
        assert report.summary["average_hourly_rate"] == Decimal("48.25")
        assert report.period_data == [
            {"year": 2024, "month": 3, "earnings": Decimal("386.00"), "jobs": 1, "hours": Decimal("8")}
        ]
        assert report.tax_info["tax_1099_threshold"] == Decimal("600")
        assert report.tax_info["w9_on_file"] is False

    async def test_yearly_and_summary_periods(self, orchestrator, seed, employer, worker):
        job = await seed.job(employer, worker)
        await orchestrator.process_job_completion_payment(job.job_id)

        yearly = (await orchestrator.generate_worker_earnings_report(worker.user_id, "yearly")).value
        summary = (await orchestrator.generate_worker_earnings_report(worker.user_id, "summary")).value

        assert [p["year"] for p in yearly.period_data] == [2024]
        assert summary.period_data == [summary.summary]

    async def test_no_earnings(self, orchestrator, worker):
        result = await orchestrator.generate_worker_earnings_report(worker.user_id)

        assert result.code == ErrorCode.NOT_FOUND
        assert result.message == "Earnings data not found"


class TestEmployerSummary:
    async def test_spend_and_subscriptions(self, orchestrator, seed, employer, worker, clock):
        job = await seed.job(employer, worker)
        await orchestrator.process_job_completion_payment(job.job_id)
        await orchestrator.process_recruitment_fee(employer.user_id, job.job_id, "250")
        await orchestrator.create_subscription_billing(employer.user_id, "basic")

        summary = (await orchestrator.reports.generate_employer_billing_summary(employer.user_id)).value

        assert summary.total_transactions == 2
        assert summary.total_spent == Decimal("650.00")
        assert summary.contributions == Decimal("3.25")
        assert summary.active_subscriptions == 1
        assert summary.monthly_subscription_cost == Decimal("29.99")
        assert summary.outstanding_invoices == 1


class TestTaxSummary:
    @staticmethod
    async def settled_payment(orchestrator, job):
        txn = (await orchestrator.process_job_completion_payment(job.job_id)).value.transaction
        assert (await orchestrator.settle_transaction(txn.transaction_id, "completed")).success
        return txn

    async def test_groups_by_payer(self, orchestrator, seed, employer, worker):
        other = await seed.user(role="employer", first_name="Ola", last_name="Crane")
        for payer, rate in [(employer, "50"), (employer, "25"), (other, "100")]:
            await self.settled_payment(orchestrator, await seed.job(payer, worker, hourly_rate=rate))

        tax = (await orchestrator.reports.generate_worker_tax_summary(worker.user_id, 2024)).value

        # 400 + 200 + 800 gross, 96.5% net
        assert tax.gross_earnings == Decimal("1400.00")
        assert tax.net_earnings == Decimal("1351.00")
        assert tax.job_count == 3
        assert tax.requires_1099 is True
        assert [p["payer_id"] for p in tax.payers] == [other.user_id, employer.user_id]
        assert tax.payers[1]["jobs"] == 2
        # 772.00 from Ola clears 600, 579.00 from Erin does not
        assert [p["payer_id"] for p in tax.payers_over_threshold] == [other.user_id]

    async def test_unsettled_payments_do_not_count(self, orchestrator, seed, employer, worker):
        job = await seed.job(employer, worker, hourly_rate="100")
        assert (await orchestrator.process_job_completion_payment(job.job_id)).success

        tax = (await orchestrator.reports.generate_worker_tax_summary(worker.user_id, 2024)).value

        assert tax.job_count == 0
        assert tax.net_earnings == 0
        assert tax.requires_1099 is False
        assert tax.payers == []

    async def test_below_threshold(self, orchestrator, seed, employer, worker):
        await self.settled_payment(orchestrator, await seed.job(employer, worker, hourly_rate="10"))

        tax = (await orchestrator.reports.generate_worker_tax_summary(worker.user_id, 2024)).value

        assert tax.net_earnings == Decimal("77.20")
        assert tax.requires_1099 is False
        assert tax.payers_over_threshold == []

    async def test_failed_payments_do_not_count(self, orchestrator, seed, employer, worker):
        job = await seed.job(employer, worker)
        txn = (await orchestrator.process_job_completion_payment(job.job_id)).value.transaction
        await orchestrator.settle_transaction(txn.transaction_id, "failed")

        tax = (await orchestrator.reports.generate_worker_tax_summary(worker.user_id, 2024)).value

        assert tax.job_count == 0
        assert tax.net_earnings == 0


class TestPaymentReport:
    async def test_completed_transactions_only(self, orchestrator, seed, employer, worker, clock):
        job = await seed.job(employer, worker)
        paid = (await orchestrator.process_job_completion_payment(job.job_id)).value.transaction
        await orchestrator.settle_transaction(paid.transaction_id, "completed")
        await orchestrator.process_recruitment_fee(employer.user_id, job.job_id, "250")

        report = (await orchestrator.reports.generate_payment_report("monthly")).value

        assert report.total_transactions == 1
        assert report.total_volume == Decimal("400.00")
        assert report.by_type == {"job_payment": Decimal("400.00")}
        assert report.by_status == {"completed": 1}
        assert report.top_payers[0]["user_id"] == employer.user_id
        assert report.top_payees[0]["total"] == Decimal("386.00")

    async def test_window_excludes_old_activity(self, orchestrator, seed, employer, worker, clock):
        job = await seed.job(employer, worker)
        paid = (await orchestrator.process_job_completion_payment(job.job_id)).value.transaction
        await orchestrator.settle_transaction(paid.transaction_id, "completed")
        clock.now = datetime(2024, 5, 1)

        report = (await orchestrator.reports.generate_payment_report("weekly")).value

        assert report.total_transactions == 0
        assert report.average_transaction == 0
