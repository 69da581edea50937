"""Tests for the billing orchestrator use cases."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rigger_billing.config import BillingConfig
from rigger_billing.errors import ErrorCode
from rigger_billing.events import (
    ContributionRecorded,
    JobPaymentProcessed,
    RecruitmentFeeCharged,
    SubscriptionPastDue,
    SubscriptionRenewed,
    TransactionRefunded,
)
from rigger_billing.models import ContributionRecord, Invoice, Job, Subscription, Transaction
from rigger_billing.providers import StubPaymentProcessor
from rigger_billing.services import BillingOrchestrator, ContributionLedger, EarningsAggregator


async def count_rows(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def load(session_factory, model, key):
    async with session_factory() as session:
        return await session.get(model, key)


class TestJobCompletionPayment:
    async def test_pays_worker(self, orchestrator, seed, employer, worker, session_factory, emitted, stats):
        job = await seed.job(employer, worker, hourly_rate="50", estimated_hours="8")

        result = await orchestrator.process_job_completion_payment(job.job_id)

        assert result.success
        txn = result.value.transaction
        assert txn.kind == "job_payment"
        assert txn.status == "pending"
        assert txn.transaction_id.startswith(f"job_{job.job_id}_")
        assert (txn.amount, txn.fee_platform, txn.contribution_amount, txn.net_amount) == (
            Decimal("400.00"),
            Decimal("12.00"),
            Decimal("2.00"),
            Decimal("386.00"),
        )
        assert txn.platform_fee_percentage == Decimal("0.03")
        assert txn.payer_id == employer.user_id
        assert txn.payer_name == "Erin Boss"
        assert txn.payee_id == worker.user_id
        assert txn.payee_name == "Wes Hand"

        stored_job = await load(session_factory, Job, job.job_id)
        assert stored_job.payment_status == "paid"
        assert stored_job.payment_transaction_id == txn.transaction_id
        assert stored_job.payment_net_amount == Decimal("386.00")
        assert stored_job.payment_contribution == Decimal("2.00")

        async with session_factory() as session:
            record = await ContributionLedger(session).get_for_transaction(txn.transaction_id)
            summary = await EarningsAggregator(session).get_summary(worker.user_id)
        assert record.amount == Decimal("2.00")
        assert summary.total_earnings == Decimal("386.00")
        assert summary.total_hours == Decimal("8")
        assert summary.total_jobs == 1

        assert [type(e) for e in emitted] == [ContributionRecorded, JobPaymentProcessed]
        assert emitted[1].net_amount == Decimal("386.00")
        assert stats.counter_value("billing_operations_total", operation="job_payment", outcome="success") == 1

    async def test_actual_hours_take_precedence(self, orchestrator, seed, employer, worker):
        job = await seed.job(employer, worker, hourly_rate="40", estimated_hours="8", actual_hours="10")

        result = await orchestrator.process_job_completion_payment(job.job_id)

        assert result.value.transaction.amount == Decimal("400.00")

    async def test_second_payment_is_rejected(self, orchestrator, seed, employer, worker, session_factory):
        job = await seed.job(employer, worker)
        await orchestrator.process_job_completion_payment(job.job_id)

        result = await orchestrator.process_job_completion_payment(job.job_id)

        assert not result.success
        assert result.code == ErrorCode.ALREADY_PROCESSED
        assert await count_rows(session_factory, Transaction) == 1
        assert await count_rows(session_factory, ContributionRecord) == 1
        async with session_factory() as session:
            summary = await EarningsAggregator(session).get_summary(worker.user_id)
        assert summary.total_jobs == 1
        assert summary.total_earnings == Decimal("386.00")

    async def test_missing_job(self, orchestrator):
        result = await orchestrator.process_job_completion_payment("job_missing")

        assert result.code == ErrorCode.NOT_FOUND
        assert result.message == "Job not found"

    async def test_job_must_be_completed(self, orchestrator, seed, employer, worker, session_factory):
        job = await seed.job(employer, worker, status="in_progress")

        result = await orchestrator.process_job_completion_payment(job.job_id)

        assert result.code == ErrorCode.INVALID_STATE_TRANSITION
        assert await count_rows(session_factory, Transaction) == 0
        assert (await load(session_factory, Job, job.job_id)).payment_status == "unpaid"

    async def test_job_must_have_worker(self, orchestrator, seed, employer):
        job = await seed.job(employer, None)

        result = await orchestrator.process_job_completion_payment(job.job_id)

        assert result.code == ErrorCode.INVALID_STATE_TRANSITION

    async def test_zero_value_job_rolls_back(self, orchestrator, seed, employer, worker, session_factory, emitted):
        job = await seed.job(employer, worker, hourly_rate="0")

        result = await orchestrator.process_job_completion_payment(job.job_id)

        assert result.code == ErrorCode.INVALID_AMOUNT
        assert (await load(session_factory, Job, job.job_id)).payment_status == "unpaid"
        assert emitted == []


class TestRecruitmentFee:
    async def test_charges_employer(self, orchestrator, employer, session_factory, emitted):
        result = await orchestrator.process_recruitment_fee(employer.user_id, "job_42", Decimal("250"))

        txn = result.value.transaction
        assert txn.kind == "recruitment_fee"
        assert txn.transaction_id.startswith("recruit_")
        assert (txn.fee_platform, txn.contribution_amount, txn.net_amount) == (
            Decimal("12.50"),
            Decimal("1.25"),
            Decimal("236.25"),
        )
        assert txn.payee_id is None
        assert txn.payer_name == "Erin Boss"
        assert await count_rows(session_factory, ContributionRecord) == 1
        assert [type(e) for e in emitted] == [ContributionRecorded, RecruitmentFeeCharged]

    async def test_unknown_employer_still_charged(self, orchestrator):
        result = await orchestrator.process_recruitment_fee("emp_external", "job_42", "100")

        assert result.success
        assert result.value.transaction.payer_name is None

    @pytest.mark.parametrize("amount", ["0", "-20", "lots"])
    async def test_invalid_amount(self, orchestrator, employer, session_factory, amount):
        result = await orchestrator.process_recruitment_fee(employer.user_id, "job_42", amount)

        assert result.code == ErrorCode.INVALID_AMOUNT
        assert await count_rows(session_factory, Transaction) == 0


class TestSubscriptionRenewal:
    async def test_renews_due_subscription(
        self, orchestrator, seed, employer, clock, processor, session_factory, emitted
    ):
        period_end = clock.now - timedelta(hours=1)
        subscription = await seed.subscription(employer, period_end)

        result = await orchestrator.process_subscription_renewal(subscription.subscription_id)

        assert result.success
        renewed, txn = result.value.subscription, result.value.transaction
        assert renewed.current_period_start == period_end
        assert renewed.current_period_end == period_end + timedelta(days=30)
        assert renewed.usage_current_period_jobs == 0
        assert renewed.usage_current_period_connections == 0
        assert txn.kind == "subscription"
        assert txn.status == "completed"
        assert txn.amount == Decimal("79.99")
        assert txn.fee_platform == 0
        assert txn.contribution_amount == Decimal("0.40")
        assert txn.net_amount == Decimal("79.59")
        assert txn.processor_name == "stub"
        assert processor.charges[txn.processor_charge_id]["status"] == "succeeded"

        assert await count_rows(session_factory, ContributionRecord) == 1
        assert [type(e) for e in emitted] == [ContributionRecorded, SubscriptionRenewed]

    async def test_yearly_interval(self, orchestrator, seed, employer, clock):
        period_end = clock.now - timedelta(days=1)
        subscription = await seed.subscription(employer, period_end, plan_type="enterprise", amount="199.99", interval="yearly")

        result = await orchestrator.process_subscription_renewal(subscription.subscription_id)

        assert result.value.subscription.current_period_end == period_end + timedelta(days=365)

    async def test_not_due(self, orchestrator, seed, employer, clock, session_factory):
        subscription = await seed.subscription(employer, clock.now + timedelta(days=3))

        result = await orchestrator.process_subscription_renewal(subscription.subscription_id)

        assert result.code == ErrorCode.NOT_DUE
        assert await count_rows(session_factory, Transaction) == 0
        stored = await load(session_factory, Subscription, subscription.subscription_id)
        assert stored.current_period_end == clock.now + timedelta(days=3)

    @pytest.mark.parametrize("status", ["cancelled", "past_due"])
    async def test_inactive_subscription(self, orchestrator, seed, employer, clock, status):
        subscription = await seed.subscription(employer, clock.now - timedelta(days=1), status=status)

        result = await orchestrator.process_subscription_renewal(subscription.subscription_id)

        assert result.code == ErrorCode.NOT_FOUND

    async def test_declined_charge_marks_past_due(self, seed, employer, clock, session_factory, events, emitted):
        orchestrator = BillingOrchestrator(
            session_factory,
            StubPaymentProcessor(fail_charges=True),
            events=events,
            clock=clock,
        )
        subscription = await seed.subscription(employer, clock.now - timedelta(days=1))

        result = await orchestrator.process_subscription_renewal(subscription.subscription_id)

        assert result.code == ErrorCode.PROCESSOR_FAILURE
        assert result.message == "Payment failed"
        stored = await load(session_factory, Subscription, subscription.subscription_id)
        assert stored.status == "past_due"
        assert stored.current_period_end == subscription.current_period_end
        assert await count_rows(session_factory, Transaction) == 0
        assert [type(e) for e in emitted] == [SubscriptionPastDue]
        assert emitted[0].reason == "Card declined"

    async def test_processor_timeout_is_a_failure(self, seed, employer, clock, session_factory):
        orchestrator = BillingOrchestrator(
            session_factory,
            StubPaymentProcessor(latency_seconds=0.5),
            config=BillingConfig(processor_timeout_seconds=0.05),
            clock=clock,
        )
        subscription = await seed.subscription(employer, clock.now - timedelta(days=1))

        result = await orchestrator.process_subscription_renewal(subscription.subscription_id)

        assert result.code == ErrorCode.PROCESSOR_FAILURE
        assert (await load(session_factory, Subscription, subscription.subscription_id)).status == "past_due"

    async def test_processor_error_marks_past_due(self, seed, employer, clock, session_factory, stats, events, emitted):
        class ExplodingProcessor(StubPaymentProcessor):
            async def create_charge(self, amount, currency, metadata):
                raise ConnectionError("socket closed: secret-host:443")

        orchestrator = BillingOrchestrator(
            session_factory,
            ExplodingProcessor(),
            stats=stats,
            events=events,
            clock=clock,
        )
        subscription = await seed.subscription(employer, clock.now - timedelta(days=1))

        result = await orchestrator.process_subscription_renewal(subscription.subscription_id)

        assert result.code == ErrorCode.PROCESSOR_FAILURE
        assert "secret-host" not in result.message
        assert (await load(session_factory, Subscription, subscription.subscription_id)).status == "past_due"
        assert await count_rows(session_factory, Transaction) == 0
        assert [type(e) for e in emitted] == [SubscriptionPastDue]
        assert emitted[0].reason == "processor error"
        assert stats.counter_value("billing_failures_total", operation="subscription_renewal", code="ProcessorFailure") == 1


class TestSubscriptionBilling:
    async def test_creates_subscription_and_invoice(self, orchestrator, employer, clock, session_factory):
        result = await orchestrator.create_subscription_billing(employer.user_id, "professional", "quarterly")

        subscription, invoice = result.value.subscription, result.value.invoice
        assert subscription.status == "active"
        assert subscription.amount == Decimal("79.99")
        assert subscription.plan_name == "Professional Plan"
        assert subscription.current_period_end == clock.now + timedelta(days=30)
        assert invoice.invoice_number.startswith("INV-")
        assert len(invoice.invoice_number.split("-")[-1]) == 6
        assert invoice.status == "sent"
        assert invoice.total == Decimal("79.99")
        assert invoice.contribution_amount == Decimal("0.40")
        assert invoice.due_at == clock.now + timedelta(days=7)
        assert [i.description for i in invoice.items] == ["Professional Plan Subscription - quarterly"]
        assert await count_rows(session_factory, Invoice) == 1

    async def test_unknown_plan(self, orchestrator, employer, session_factory):
        result = await orchestrator.create_subscription_billing(employer.user_id, "platinum")

        assert result.code == ErrorCode.NOT_FOUND
        assert await count_rows(session_factory, Subscription) == 0


class TestSettlementAndRefunds:
    async def test_at_completion_records_on_settle(self, seed, employer, worker, clock, session_factory):
        orchestrator = BillingOrchestrator(
            session_factory,
            StubPaymentProcessor(),
            config=BillingConfig(contribution_tracking="at_completion"),
            clock=clock,
        )
        job = await seed.job(employer, worker)
        txn = (await orchestrator.process_job_completion_payment(job.job_id)).value.transaction
        assert await count_rows(session_factory, ContributionRecord) == 0

        settled = await orchestrator.settle_transaction(txn.transaction_id, "completed")

        assert settled.value.status == "completed"
        assert await count_rows(session_factory, ContributionRecord) == 1

    async def test_failed_settlement_records_nothing_extra(self, orchestrator, seed, employer, worker, session_factory):
        job = await seed.job(employer, worker)
        txn = (await orchestrator.process_job_completion_payment(job.job_id)).value.transaction

        result = await orchestrator.settle_transaction(txn.transaction_id, "failed")

        assert result.value.status == "failed"
        assert await count_rows(session_factory, ContributionRecord) == 1

    async def test_settle_terminal_transaction(self, orchestrator, seed, employer, worker):
        job = await seed.job(employer, worker)
        txn = (await orchestrator.process_job_completion_payment(job.job_id)).value.transaction
        await orchestrator.settle_transaction(txn.transaction_id, "cancelled")

        result = await orchestrator.settle_transaction(txn.transaction_id, "completed")

        assert result.code == ErrorCode.INVALID_STATE_TRANSITION

    async def test_refund_completed_job_payment(self, orchestrator, seed, employer, worker, emitted):
        job = await seed.job(employer, worker)
        txn = (await orchestrator.process_job_completion_payment(job.job_id)).value.transaction
        await orchestrator.settle_transaction(txn.transaction_id, "completed")

        result = await orchestrator.refund_transaction(txn.transaction_id, "Work not delivered")

        assert result.value.original.status == "refunded"
        reversal = result.value.reversal
        assert reversal.payer_id == worker.user_id
        assert reversal.payee_id == employer.user_id
        assert reversal.amount == Decimal("400.00")
        assert isinstance(emitted[-1], TransactionRefunded)

    async def test_refund_goes_through_processor(self, orchestrator, seed, employer, clock, processor):
        subscription = await seed.subscription(employer, clock.now - timedelta(days=1))
        txn = (await orchestrator.process_subscription_renewal(subscription.subscription_id)).value.transaction

        result = await orchestrator.refund_transaction(txn.transaction_id, "Accidental renewal")

        assert result.value.reversal.processor_charge_id.startswith("re_stub_")
        assert processor.charges[txn.processor_charge_id]["refunded_minor"] == 7999

    async def test_refund_pending_transaction(self, orchestrator, seed, employer, worker):
        job = await seed.job(employer, worker)
        txn = (await orchestrator.process_job_completion_payment(job.job_id)).value.transaction

        result = await orchestrator.refund_transaction(txn.transaction_id, "Too early")

        assert result.code == ErrorCode.INVALID_STATE_TRANSITION

    async def test_refund_missing_transaction(self, orchestrator):
        result = await orchestrator.refund_transaction("txn_missing", "n/a")

        assert result.code == ErrorCode.NOT_FOUND
