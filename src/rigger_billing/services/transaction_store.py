"""Transaction store.

Persists payment transactions with their fee breakdown and enforces the
status lifecycle. Every method works inside the caller's session; the
caller owns the commit.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rigger_billing.calculators.fees import FeeBreakdown, quantize_money, to_decimal
from rigger_billing.errors import InvalidAmountError, InvalidStateTransitionError, NotFoundError
from rigger_billing.models import Transaction, utcnow
from rigger_billing.services.state_machine import TransactionStateMachine, TransactionStatus

logger = logging.getLogger(__name__)

ID_PREFIXES = {
    "job_payment": "job",
    "recruitment_fee": "recruit",
    "subscription": "sub_renewal",
    "platform_fee": "fee",
    "refund": "refund",
    "chargeback": "chargeback",
}

REVERSAL_KINDS = ("refund", "chargeback")

SUMMABLE_FIELDS = (
    "amount",
    "fee_platform",
    "fee_processor",
    "fee_total",
    "net_amount",
    "contribution_amount",
)

# Lifecycle timestamp stamped when a transaction enters the status
_STATUS_TIMESTAMPS = {
    TransactionStatus.PROCESSING: "processed_at",
    TransactionStatus.COMPLETED: "completed_at",
    TransactionStatus.FAILED: "failed_at",
}


@dataclass
class TransactionDraft:
    """Everything needed to create a transaction.

    ``net_amount`` is never supplied; the store derives it so that
    ``net_amount + fee_total + contribution_amount == amount`` always holds.
    """

    kind: str
    amount: Decimal
    payer_id: str
    fee_platform: Decimal = Decimal("0")
    fee_processor: Decimal = Decimal("0")
    contribution_rate: Decimal = Decimal("0.005")
    contribution_amount: Decimal = Decimal("0")
    contribution_tracked: bool = True
    transaction_id: str | None = None
    currency: str = "USD"
    payer_name: str | None = None
    payer_email: str | None = None
    payee_id: str | None = None
    payee_name: str | None = None
    payee_email: str | None = None
    platform_fee_percentage: Decimal | None = None
    job_id: str | None = None
    subscription_id: str | None = None
    invoice_id: str | None = None
    payment_method_id: str | None = None
    reverses_transaction_id: str | None = None
    processor_name: str | None = None
    processor_charge_id: str | None = None
    description: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_fees(cls, kind: str, fees: FeeBreakdown, payer_id: str, **kwargs: Any) -> TransactionDraft:
        """Build a draft from a fee breakdown, rounded to cents."""
        rounded = fees.quantized()
        return cls(
            kind=kind,
            amount=rounded.amount,
            payer_id=payer_id,
            fee_platform=rounded.platform_fee,
            contribution_rate=rounded.contribution_rate,
            contribution_amount=rounded.contribution_amount,
            **kwargs,
        )


@dataclass(frozen=True)
class TransactionFilters:
    """Filters for find/sum_by. ``None`` means "any"."""

    kind: str | Sequence[str] | None = None
    status: str | Sequence[str] | None = None
    payer_id: str | None = None
    payee_id: str | None = None
    job_id: str | None = None
    subscription_id: str | None = None
    contribution_tracked: bool | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None

    def clauses(self) -> list[Any]:
        conditions: list[Any] = []
        for column, value in (
            (Transaction.kind, self.kind),
            (Transaction.status, self.status),
        ):
            if value is None:
                continue
            if isinstance(value, str):
                conditions.append(column == value)
            else:
                conditions.append(column.in_(list(value)))

        for column, value in (
            (Transaction.payer_id, self.payer_id),
            (Transaction.payee_id, self.payee_id),
            (Transaction.job_id, self.job_id),
            (Transaction.subscription_id, self.subscription_id),
            (Transaction.contribution_tracked, self.contribution_tracked),
        ):
            if value is not None:
                conditions.append(column == value)

        if self.created_from is not None:
            conditions.append(Transaction.created_at >= self.created_from)
        if self.created_to is not None:
            conditions.append(Transaction.created_at <= self.created_to)
        return conditions


@dataclass(frozen=True)
class Page:
    """One page of transactions, newest first."""

    items: list[Transaction]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def generate_transaction_id(kind: str) -> str:
    return f"{ID_PREFIXES.get(kind, 'txn')}_{uuid.uuid4().hex}"


class TransactionStore:
    """Create, transition, reverse and query transactions."""

    def __init__(self, session: AsyncSession, clock=utcnow):
        self.session = session
        self._clock = clock

    async def create(self, draft: TransactionDraft) -> Transaction:
        """Persist a new transaction in ``pending``.

        Raises:
            InvalidAmountError: amount is not a positive number.
        """
        amount = quantize_money(to_decimal(draft.amount))
        if amount <= 0:
            raise InvalidAmountError("Amount must be positive")

        fee_platform = quantize_money(to_decimal(draft.fee_platform))
        fee_processor = quantize_money(to_decimal(draft.fee_processor))
        contribution = quantize_money(to_decimal(draft.contribution_amount))
        if min(fee_platform, fee_processor, contribution) < 0:
            raise InvalidAmountError("Fees cannot be negative")

        fee_total = fee_platform + fee_processor
        net_amount = amount - fee_total - contribution
        if net_amount < 0:
            raise InvalidAmountError("Fees exceed the transaction amount")

        txn = Transaction(
            transaction_id=draft.transaction_id or generate_transaction_id(draft.kind),
            kind=draft.kind,
            status=TransactionStatus.PENDING.value,
            amount=amount,
            currency=draft.currency,
            fee_platform=fee_platform,
            fee_processor=fee_processor,
            fee_total=fee_total,
            net_amount=net_amount,
            payer_id=draft.payer_id,
            payer_name=draft.payer_name,
            payer_email=draft.payer_email,
            payee_id=draft.payee_id,
            payee_name=draft.payee_name,
            payee_email=draft.payee_email,
            platform_fee_percentage=draft.platform_fee_percentage,
            job_id=draft.job_id,
            subscription_id=draft.subscription_id,
            invoice_id=draft.invoice_id,
            payment_method_id=draft.payment_method_id,
            reverses_transaction_id=draft.reverses_transaction_id,
            processor_name=draft.processor_name,
            processor_charge_id=draft.processor_charge_id,
            contribution_rate=draft.contribution_rate,
            contribution_amount=contribution,
            contribution_tracked=draft.contribution_tracked,
            description=draft.description,
            extra=dict(draft.extra),
            created_at=self._clock(),
        )
        self.session.add(txn)
        await self.session.flush()

        logger.info(
            "Created transaction %s kind=%s amount=%s net=%s",
            txn.transaction_id,
            txn.kind,
            txn.amount,
            txn.net_amount,
        )
        return txn

    async def get(self, transaction_id: str) -> Transaction | None:
        return await self.session.get(Transaction, transaction_id)

    async def require(self, transaction_id: str) -> Transaction:
        txn = await self.get(transaction_id)
        if txn is None:
            raise NotFoundError("Transaction", transaction_id)
        return txn

    async def transition(self, transaction_id: str, new_status: str | TransactionStatus) -> Transaction:
        """Move a transaction to a new status.

        The update is conditional on the status read here, so two racing
        transitions cannot both succeed.

        Raises:
            NotFoundError: no transaction with that id.
            InvalidStateTransitionError: edge not allowed (terminal states
                included; reversals go through ``reverse``).
        """
        target = TransactionStatus(new_status)
        txn = await self.require(transaction_id)
        current = txn.status
        TransactionStateMachine.validate_transition(current, target)

        await self._set_status(txn, current, target)
        return await self._reload(transaction_id)

    async def reverse(
        self,
        transaction_id: str,
        kind: str = "refund",
        reason: str | None = None,
        processor_charge_id: str | None = None,
    ) -> Transaction:
        """Spawn a linked refund/chargeback and mark the original refunded.

        Reversals carry no fees or contribution: the full gross goes back to
        the payer.

        Returns:
            The new reversing transaction (already ``completed``).
        """
        if kind not in REVERSAL_KINDS:
            raise ValueError(f"Reversal kind must be one of {REVERSAL_KINDS}")

        original = await self.require(transaction_id)
        if not TransactionStateMachine.can_reverse(original.status):
            raise InvalidStateTransitionError(
                original.status,
                TransactionStatus.REFUNDED,
                "only completed transactions can be reversed",
            )

        await self._set_status(original, original.status, TransactionStatus.REFUNDED)
        await self._reload(original.transaction_id)

        reversal = await self.create(
            TransactionDraft(
                kind=kind,
                amount=original.amount,
                payer_id=original.payee_id or "platform",
                payee_id=original.payer_id,
                payee_name=original.payer_name,
                payee_email=original.payer_email,
                contribution_rate=Decimal("0"),
                contribution_tracked=False,
                currency=original.currency,
                job_id=original.job_id,
                subscription_id=original.subscription_id,
                invoice_id=original.invoice_id,
                reverses_transaction_id=original.transaction_id,
                processor_name=original.processor_name,
                processor_charge_id=processor_charge_id,
                description=reason or f"{kind.capitalize()} of {original.transaction_id}",
            )
        )
        await self._set_status(reversal, TransactionStatus.PENDING, TransactionStatus.COMPLETED)
        logger.info("Reversed transaction %s with %s %s", transaction_id, kind, reversal.transaction_id)
        return await self._reload(reversal.transaction_id)

    async def find(
        self,
        filters: TransactionFilters | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> Page:
        """Filtered, paginated listing ordered by creation time, newest first."""
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")
        conditions = (filters or TransactionFilters()).clauses()

        count_stmt = select(func.count()).select_from(Transaction).where(*conditions)
        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = (
            select(Transaction)
            .where(*conditions)
            .order_by(Transaction.created_at.desc(), Transaction.transaction_id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list((await self.session.execute(stmt)).scalars().all())
        return Page(items=items, total=total, page=page, limit=limit)

    async def find_all(self, filters: TransactionFilters | None = None) -> list[Transaction]:
        """Unpaginated listing for reports."""
        conditions = (filters or TransactionFilters()).clauses()
        stmt = select(Transaction).where(*conditions).order_by(Transaction.created_at)
        return list((await self.session.execute(stmt)).scalars().all())

    async def count(self, filters: TransactionFilters | None = None) -> int:
        conditions = (filters or TransactionFilters()).clauses()
        stmt = select(func.count()).select_from(Transaction).where(*conditions)
        return (await self.session.execute(stmt)).scalar_one()

    async def sum_by(self, filters: TransactionFilters | None, field_name: str) -> Decimal:
        """Sum a money column over the filtered transactions (0 when none)."""
        if field_name not in SUMMABLE_FIELDS:
            raise ValueError(f"Cannot sum field '{field_name}'")
        column = getattr(Transaction, field_name)
        conditions = (filters or TransactionFilters()).clauses()
        stmt = select(func.coalesce(func.sum(column), 0)).where(*conditions)
        total = (await self.session.execute(stmt)).scalar_one()
        return quantize_money(Decimal(str(total)))

    async def _set_status(
        self,
        txn: Transaction,
        current: str,
        target: TransactionStatus,
    ) -> None:
        now = self._clock()
        values: dict[str, Any] = {"status": target.value, "updated_at": now}
        stamp = _STATUS_TIMESTAMPS.get(target)
        if stamp is not None:
            values[stamp] = now

        result = await self.session.execute(
            update(Transaction)
            .where(
                Transaction.transaction_id == txn.transaction_id,
                Transaction.status == TransactionStatus(current).value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateTransitionError(
                current,
                target,
                "status changed concurrently",
            )

    async def _reload(self, transaction_id: str) -> Transaction:
        stmt = (
            select(Transaction)
            .where(Transaction.transaction_id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return (await self.session.execute(stmt)).scalar_one()
