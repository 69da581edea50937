"""Platform fee and NGO contribution policy.

Pure functions only. Amounts are ``Decimal`` end to end and are not rounded
here: callers quantize at persistence or display time so that monthly and
yearly aggregation never sums already-rounded values.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from rigger_billing.errors import InvalidAmountError

CONTRIBUTION_RATE = Decimal("0.005")
DEFAULT_PLATFORM_FEE_RATE = Decimal("0.03")

PLATFORM_FEE_RATES: dict[str, Decimal] = {
    "job_payment": Decimal("0.03"),
    "recruitment_fee": Decimal("0.05"),
    "subscription": Decimal("0"),
    "platform_fee": Decimal("0"),
}

MONEY_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class FeeBreakdown:
    """Split of a gross amount into fees, contribution and net."""

    amount: Decimal
    platform_fee_rate: Decimal
    platform_fee: Decimal
    contribution_rate: Decimal
    contribution_amount: Decimal

    @property
    def total_fees(self) -> Decimal:
        """Platform fee plus contribution."""
        return self.platform_fee + self.contribution_amount

    @property
    def net_amount(self) -> Decimal:
        return self.amount - self.total_fees

    def quantized(self) -> FeeBreakdown:
        """Copy rounded to cents, with the net absorbing any rounding."""
        return FeeBreakdown(
            amount=quantize_money(self.amount),
            platform_fee_rate=self.platform_fee_rate,
            platform_fee=quantize_money(self.platform_fee),
            contribution_rate=self.contribution_rate,
            contribution_amount=quantize_money(self.contribution_amount),
        )


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert a caller-supplied amount to Decimal without float artefacts."""
    if isinstance(value, bool):
        raise InvalidAmountError("Amount must be numeric")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise InvalidAmountError("Amount must be numeric") from None
    if not result.is_finite():
        raise InvalidAmountError("Amount must be numeric")
    return result


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def platform_fee_rate(kind: str) -> Decimal:
    """Platform fee rate for a transaction kind (3% when unrecognized)."""
    return PLATFORM_FEE_RATES.get(kind, DEFAULT_PLATFORM_FEE_RATE)


def compute_fees(amount: Decimal | int | float | str, kind: str) -> FeeBreakdown:
    """Compute platform fee, contribution and net amount.

    Args:
        amount: Positive gross amount.
        kind: Transaction kind (job_payment, recruitment_fee, ...).

    Returns:
        FeeBreakdown where platform_fee + contribution_amount + net_amount == amount.

    Raises:
        InvalidAmountError: amount is not a positive number.
    """
    gross = to_decimal(amount)
    if gross <= 0:
        raise InvalidAmountError("Amount must be positive")

    rate = platform_fee_rate(kind)
    return FeeBreakdown(
        amount=gross,
        platform_fee_rate=rate,
        platform_fee=gross * rate,
        contribution_rate=CONTRIBUTION_RATE,
        contribution_amount=gross * CONTRIBUTION_RATE,
    )


def compute_contribution(amount: Decimal | int | float | str) -> Decimal:
    """Contribution owed on a gross amount."""
    return to_decimal(amount) * CONTRIBUTION_RATE
