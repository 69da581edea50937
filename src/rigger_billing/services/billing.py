"""Billing orchestrator - job payments, renewals and recruitment fees.

Each public method is a short transaction script returning ``Result``:

- process_job_completion_payment: pay a completed job's worker
- process_subscription_renewal: charge a due subscription and roll its period
- process_recruitment_fee: charge an employer a recruitment fee
- create_subscription_billing: start a subscription and issue its first invoice
- settle_transaction / refund_transaction: drive a transaction's lifecycle
- generate_worker_earnings_report: read-side earnings report

Money movement, the contribution record and the earnings rollup commit in
one database transaction. Contribution recording is keyed by transaction id,
so a retried use case never double-counts.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rigger_billing.calculators.fees import compute_contribution, compute_fees, quantize_money
from rigger_billing.calculators.plans import FIRST_PERIOD_DAYS, get_plan, interval_length
from rigger_billing.config import BillingConfig
from rigger_billing.errors import (
    AlreadyProcessedError,
    InvalidStateTransitionError,
    NotDueError,
    NotFoundError,
    ProcessorFailureError,
)
from rigger_billing.events import (
    AsyncEventBatch,
    AsyncEventEmitter,
    ContributionRecorded,
    EventMetadata,
    JobPaymentProcessed,
    RecruitmentFeeCharged,
    SubscriptionPastDue,
    SubscriptionRenewed,
    TransactionRefunded,
)
from rigger_billing.metrics import StatsRecorder
from rigger_billing.models import AppUser, Invoice, InvoiceLineItem, Job, Subscription, Transaction, utcnow
from rigger_billing.providers import PaymentProcessor
from rigger_billing.services.base import UseCaseService
from rigger_billing.services.contribution_ledger import ContributionLedger
from rigger_billing.services.earnings import EarningsAggregator
from rigger_billing.services.reporting import BillingReportService, WorkerEarningsReport
from rigger_billing.services.results import Result
from rigger_billing.services.state_machine import TransactionStatus
from rigger_billing.services.transaction_store import TransactionDraft, TransactionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

PAYABLE_JOB_STATUSES = ("unpaid", "failed")
TRANSPARENCY_NOTE = "0.5% of this payment supports the NGO's worker safety and training programs"


@dataclass(frozen=True)
class JobPaymentOutcome:
    transaction: Transaction
    job: Job


@dataclass(frozen=True)
class RenewalOutcome:
    subscription: Subscription
    transaction: Transaction


@dataclass(frozen=True)
class RecruitmentFeeOutcome:
    transaction: Transaction


@dataclass(frozen=True)
class SubscriptionBillingOutcome:
    subscription: Subscription
    invoice: Invoice


@dataclass(frozen=True)
class RefundOutcome:
    original: Transaction
    reversal: Transaction


def generate_invoice_number(now: datetime) -> str:
    """INV-<epoch millis>-<6 random uppercase alphanumerics>."""
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"INV-{int(now.timestamp() * 1000)}-{suffix}"


class BillingOrchestrator(UseCaseService):
    """Billing use cases.

    Args:
        session_factory: Creates one session per use case.
        processor: External payment processor.
        config: Billing behaviour (contribution tracking mode, timeouts).
        stats: Stats port; one per process, flushed at shutdown.
        events: Emitter for domain events (NGO tracking, notifications).
        clock: Returns the current naive UTC time.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        processor: PaymentProcessor,
        *,
        config: BillingConfig | None = None,
        stats: StatsRecorder | None = None,
        events: AsyncEventEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(session_factory, config=config, stats=stats, events=events, clock=clock)
        self.processor = processor
        self.reports = BillingReportService(session_factory, config=self.config, stats=self.stats, clock=clock)

    # =========================================================================
    # Job completion payment
    # =========================================================================

    async def process_job_completion_payment(self, job_id: str) -> Result[JobPaymentOutcome]:
        return await self.run("job_payment", lambda: self._pay_job(job_id))

    async def _pay_job(self, job_id: str) -> JobPaymentOutcome:
        async with self.unit_of_work() as (session, batch):
            job = await session.get(Job, job_id)
            if job is None:
                raise NotFoundError("Job", job_id)
            if job.status != "completed":
                raise InvalidStateTransitionError(job.status, "paid", "job is not completed")
            if job.assigned_to_id is None:
                raise InvalidStateTransitionError(job.status, "paid", "job has no assigned worker")
            if job.payment_status not in PAYABLE_JOB_STATUSES:
                raise AlreadyProcessedError("Payment already processed")

            # Claim the job; a concurrent payment attempt loses here
            claimed = await session.execute(
                update(Job)
                .where(Job.job_id == job_id, Job.payment_status.in_(PAYABLE_JOB_STATUSES))
                .values(payment_status="processing")
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise AlreadyProcessedError("Payment already processed")

            hours = job.billable_hours
            fees = compute_fees(hours * job.hourly_rate, "job_payment")
            employer, worker = job.posted_by, job.assigned_to

            store = TransactionStore(session, clock=self.clock)
            txn = await store.create(
                TransactionDraft.from_fees(
                    "job_payment",
                    fees,
                    payer_id=job.posted_by_id,
                    payer_name=employer.full_name if employer else None,
                    payer_email=employer.email if employer else None,
                    payee_id=job.assigned_to_id,
                    payee_name=worker.full_name if worker else None,
                    payee_email=worker.email if worker else None,
                    platform_fee_percentage=fees.platform_fee_rate,
                    job_id=job.job_id,
                    currency=self.config.currency,
                    transaction_id=f"job_{job.job_id}_{uuid.uuid4().hex[:12]}",
                    description=f"Payment for job {job.title}",
                )
            )
            if self.config.tracks_at_creation:
                await self._record_contribution(session, batch, txn)

            job.payment_status = "paid"
            job.payment_transaction_id = txn.transaction_id
            job.payment_amount = txn.amount
            job.payment_net_amount = txn.net_amount
            job.payment_platform_fee = txn.fee_platform
            job.payment_contribution = txn.contribution_amount
            job.payment_processed_at = txn.created_at
            await session.flush()

            await EarningsAggregator(session, clock=self.clock).apply_payment(
                job.assigned_to_id,
                txn.net_amount,
                hours=hours,
                at=txn.created_at,
            )

            batch.add(
                JobPaymentProcessed(
                    metadata=EventMetadata.create(),
                    transaction_id=txn.transaction_id,
                    job_id=job.job_id,
                    employer_id=job.posted_by_id,
                    worker_id=job.assigned_to_id,
                    amount=txn.amount,
                    platform_fee=txn.fee_platform,
                    contribution_amount=txn.contribution_amount,
                    net_amount=txn.net_amount,
                )
            )

        self.stats.increment("billing_amount_total", txn.amount, kind="job_payment")
        logger.info("Paid job %s: gross=%s net=%s", job_id, txn.amount, txn.net_amount)
        return JobPaymentOutcome(transaction=txn, job=job)

    # =========================================================================
    # Subscription renewal
    # =========================================================================

    async def process_subscription_renewal(self, subscription_id: str) -> Result[RenewalOutcome]:
        return await self.run("subscription_renewal", lambda: self._renew(subscription_id))

    async def _renew(self, subscription_id: str) -> RenewalOutcome:
        failure: ProcessorFailureError | None = None
        async with self.unit_of_work() as (session, batch):
            # Row lock on PostgreSQL so two renewals cannot both charge
            subscription = (
                await session.execute(
                    select(Subscription)
                    .where(Subscription.subscription_id == subscription_id)
                    .with_for_update()
                )
            ).scalar_one_or_none()
            if subscription is None or subscription.status != "active":
                raise NotFoundError("Active subscription", subscription_id)

            now = self.clock()
            if now < subscription.current_period_end:
                raise NotDueError("Renewal not yet due")

            charge_id, reason = await self._charge(
                subscription.amount,
                subscription.currency,
                {
                    "subscription_id": subscription.subscription_id,
                    "user_id": subscription.user_id,
                    "type": "subscription_renewal",
                },
            )
            if charge_id is None:
                subscription.status = "past_due"
                batch.add(
                    SubscriptionPastDue(
                        metadata=EventMetadata.create(),
                        subscription_id=subscription.subscription_id,
                        user_id=subscription.user_id,
                        amount=subscription.amount,
                        reason=reason,
                    )
                )
                logger.warning("Renewal charge failed for %s: %s", subscription_id, reason)
                failure = ProcessorFailureError("Payment failed")
            else:
                step = interval_length(subscription.interval, subscription.interval_count)
                subscription.current_period_start = subscription.current_period_end
                subscription.current_period_end = subscription.current_period_end + step
                subscription.usage_current_period_jobs = 0
                subscription.usage_current_period_connections = 0

                user = await session.get(AppUser, subscription.user_id)
                store = TransactionStore(session, clock=self.clock)
                txn = await store.create(
                    TransactionDraft.from_fees(
                        "subscription",
                        compute_fees(subscription.amount, "subscription"),
                        payer_id=subscription.user_id,
                        payer_name=user.full_name if user else None,
                        payer_email=user.email if user else None,
                        subscription_id=subscription.subscription_id,
                        payment_method_id=subscription.payment_method_id,
                        currency=subscription.currency,
                        processor_name=self.processor.processor_name,
                        processor_charge_id=charge_id,
                        transaction_id=f"sub_renewal_{subscription.subscription_id}_{uuid.uuid4().hex[:12]}",
                        description=f"{subscription.plan_name or subscription.plan_type} renewal",
                    )
                )
                txn = await store.transition(txn.transaction_id, TransactionStatus.COMPLETED)
                await self._record_contribution(session, batch, txn)
                await session.flush()

                batch.add(
                    SubscriptionRenewed(
                        metadata=EventMetadata.create(),
                        subscription_id=subscription.subscription_id,
                        user_id=subscription.user_id,
                        transaction_id=txn.transaction_id,
                        amount=txn.amount,
                        period_start=subscription.current_period_start,
                        period_end=subscription.current_period_end,
                    )
                )

        if failure is not None:
            raise failure
        self.stats.increment("billing_amount_total", txn.amount, kind="subscription")
        logger.info("Renewed subscription %s until %s", subscription_id, subscription.current_period_end)
        return RenewalOutcome(subscription=subscription, transaction=txn)

    async def _charge(
        self,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
    ) -> tuple[str | None, str]:
        """Create and capture a charge. Returns (charge_id, "") or (None, reason)."""
        timeout = self.config.processor_timeout_seconds
        try:
            charge = await self._bounded(self.processor.create_charge(amount, currency, metadata), timeout)
            if not charge.success or charge.charge_id is None:
                return None, charge.message or "charge declined"
            capture = await self._bounded(self.processor.capture_charge(charge.charge_id, amount), timeout)
            if not capture.success:
                return None, capture.message or "capture declined"
            return charge.charge_id, ""
        except asyncio.TimeoutError:
            return None, f"processor timed out after {timeout}s"
        except Exception:
            logger.exception("Payment processor call failed")
            return None, "processor error"

    @staticmethod
    async def _bounded(call: Awaitable[T], timeout: float) -> T:
        return await asyncio.wait_for(call, timeout=timeout)

    # =========================================================================
    # Recruitment fee
    # =========================================================================

    async def process_recruitment_fee(
        self,
        employer_id: str,
        job_id: str,
        amount: Decimal | int | str,
        payment_method_id: str | None = None,
    ) -> Result[RecruitmentFeeOutcome]:
        return await self.run(
            "recruitment_fee",
            lambda: self._charge_recruitment_fee(employer_id, job_id, amount, payment_method_id),
        )

    async def _charge_recruitment_fee(
        self,
        employer_id: str,
        job_id: str,
        amount: Decimal | int | str,
        payment_method_id: str | None,
    ) -> RecruitmentFeeOutcome:
        fees = compute_fees(amount, "recruitment_fee")
        async with self.unit_of_work() as (session, batch):
            employer = await session.get(AppUser, employer_id)
            store = TransactionStore(session, clock=self.clock)
            # Fee flows to the platform: no payee
            txn = await store.create(
                TransactionDraft.from_fees(
                    "recruitment_fee",
                    fees,
                    payer_id=employer_id,
                    payer_name=employer.full_name if employer else None,
                    payer_email=employer.email if employer else None,
                    platform_fee_percentage=fees.platform_fee_rate,
                    job_id=job_id,
                    payment_method_id=payment_method_id,
                    currency=self.config.currency,
                    description=f"Recruitment fee for job {job_id}",
                )
            )
            if self.config.tracks_at_creation:
                await self._record_contribution(session, batch, txn)

            batch.add(
                RecruitmentFeeCharged(
                    metadata=EventMetadata.create(),
                    transaction_id=txn.transaction_id,
                    job_id=job_id,
                    employer_id=employer_id,
                    amount=txn.amount,
                    platform_fee=txn.fee_platform,
                    contribution_amount=txn.contribution_amount,
                )
            )

        self.stats.increment("billing_amount_total", txn.amount, kind="recruitment_fee")
        return RecruitmentFeeOutcome(transaction=txn)

    # =========================================================================
    # Subscription billing and invoices
    # =========================================================================

    async def create_subscription_billing(
        self,
        user_id: str,
        plan_type: str,
        interval: str = "monthly",
        payment_method_id: str | None = None,
    ) -> Result[SubscriptionBillingOutcome]:
        return await self.run(
            "subscription_billing",
            lambda: self._create_subscription(user_id, plan_type, interval, payment_method_id),
        )

    async def _create_subscription(
        self,
        user_id: str,
        plan_type: str,
        interval: str,
        payment_method_id: str | None,
    ) -> SubscriptionBillingOutcome:
        plan = get_plan(plan_type)
        if plan is None:
            raise NotFoundError("Subscription plan", plan_type)

        now = self.clock()
        async with self.unit_of_work() as (session, _batch):
            subscription = Subscription(
                subscription_id=f"sub_{uuid.uuid4().hex}",
                user_id=user_id,
                plan_type=plan.plan_type,
                plan_name=plan.name,
                amount=plan.amount,
                currency=self.config.currency,
                interval=interval,
                status="active",
                start_at=now,
                current_period_start=now,
                current_period_end=now + timedelta(days=FIRST_PERIOD_DAYS),
                payment_method_id=payment_method_id,
            )
            session.add(subscription)
            await session.flush()
            invoice = await self.generate_subscription_invoice(session, subscription)

        logger.info("Created %s subscription %s for %s", plan_type, subscription.subscription_id, user_id)
        return SubscriptionBillingOutcome(subscription=subscription, invoice=invoice)

    async def generate_subscription_invoice(self, session: AsyncSession, subscription: Subscription) -> Invoice:
        """Issue an invoice for one period of a subscription (inside the caller's session)."""
        now = self.clock()
        amount = quantize_money(subscription.amount)
        invoice = Invoice(
            invoice_number=generate_invoice_number(now),
            user_id=subscription.user_id,
            kind="subscription",
            status="sent",
            subtotal=amount,
            total=amount,
            currency=subscription.currency,
            issued_at=now,
            due_at=now + timedelta(days=self.config.invoice_due_days),
            subscription_id=subscription.subscription_id,
            contribution_included=True,
            contribution_amount=quantize_money(compute_contribution(amount)),
            transparency_note=TRANSPARENCY_NOTE,
            items=[
                InvoiceLineItem(
                    description=f"{subscription.plan_name} Subscription - {subscription.interval}",
                    quantity=1,
                    unit_price=amount,
                    total=amount,
                )
            ],
        )
        session.add(invoice)
        await session.flush()
        return invoice

    # =========================================================================
    # Transaction lifecycle
    # =========================================================================

    async def settle_transaction(self, transaction_id: str, status: str) -> Result[Transaction]:
        """Record the processor's verdict on a pending transaction.

        In ``at_completion`` tracking mode this is where the contribution is
        recorded.
        """
        return await self.run("settle_transaction", lambda: self._settle(transaction_id, status))

    async def _settle(self, transaction_id: str, status: str) -> Transaction:
        async with self.unit_of_work() as (session, batch):
            store = TransactionStore(session, clock=self.clock)
            txn = await store.transition(transaction_id, status)
            if (
                txn.status == TransactionStatus.COMPLETED.value
                and txn.contribution_tracked
                and not self.config.tracks_at_creation
            ):
                await self._record_contribution(session, batch, txn)
        return txn

    async def refund_transaction(
        self,
        transaction_id: str,
        reason: str,
        kind: str = "refund",
    ) -> Result[RefundOutcome]:
        """Refund (or record a chargeback against) a completed transaction."""
        return await self.run("refund", lambda: self._refund(transaction_id, reason, kind))

    async def _refund(self, transaction_id: str, reason: str, kind: str) -> RefundOutcome:
        async with self.unit_of_work() as (session, batch):
            store = TransactionStore(session, clock=self.clock)
            original = await store.require(transaction_id)
            if original.status != TransactionStatus.COMPLETED.value:
                raise InvalidStateTransitionError(
                    original.status,
                    TransactionStatus.REFUNDED,
                    "only completed transactions can be reversed",
                )

            refund_id = None
            if kind == "refund" and original.processor_charge_id:
                try:
                    result = await self._bounded(
                        self.processor.refund(original.processor_charge_id, original.amount, reason),
                        self.config.processor_timeout_seconds,
                    )
                except asyncio.TimeoutError:
                    raise ProcessorFailureError("Refund failed") from None
                if not result.success:
                    raise ProcessorFailureError("Refund failed")
                refund_id = result.refund_id

            reversal = await store.reverse(transaction_id, kind=kind, reason=reason, processor_charge_id=refund_id)
            original = await store.require(transaction_id)
            batch.add(
                TransactionRefunded(
                    metadata=EventMetadata.create(),
                    transaction_id=transaction_id,
                    reversal_transaction_id=reversal.transaction_id,
                    kind=kind,
                    amount=reversal.amount,
                )
            )
        return RefundOutcome(original=original, reversal=reversal)

    # =========================================================================
    # Reports
    # =========================================================================

    async def generate_worker_earnings_report(
        self,
        worker_id: str,
        period: str = "monthly",
    ) -> Result[WorkerEarningsReport]:
        return await self.reports.generate_worker_earnings_report(worker_id, period)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _record_contribution(
        self,
        session: AsyncSession,
        batch: AsyncEventBatch,
        txn: Transaction,
    ) -> None:
        record = await ContributionLedger(session, self.config).record(txn)
        self.stats.increment("billing_contributions_total", record.amount, kind=txn.kind)
        batch.add(
            ContributionRecorded(
                metadata=EventMetadata.create(),
                contribution_id=record.contribution_id,
                transaction_id=txn.transaction_id,
                source_kind=record.source_kind,
                amount=record.amount,
                period_year=record.period_year,
                period_month=record.period_month,
            )
        )
