"""Base protocol and types for payment processors.

All processor adapters (Stripe, PayPal, ...) must implement the
PaymentProcessor protocol. Card capture itself happens at the processor;
billing only sees these results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Protocol


@dataclass(frozen=True)
class ChargeResult:
    """Result of creating a charge."""

    success: bool
    charge_id: str | None = None
    message: str = ""
    status: str = "requires_capture"


@dataclass(frozen=True)
class CaptureResult:
    """Result of capturing a previously created charge."""

    success: bool
    charge_id: str
    amount: Decimal = Decimal("0")
    message: str = ""


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund request."""

    success: bool
    refund_id: str | None = None
    message: str = ""
    raw: dict[str, Any] = field(default_factory=dict)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to integer minor units (cents)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentProcessor(Protocol):
    """Protocol for payment processor adapters.

    Calls may fail or be slow; callers bound them with a timeout and treat
    a timeout as a failed call. No retries happen at this layer.
    """

    processor_name: str

    async def create_charge(
        self,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
    ) -> ChargeResult:
        """Create a charge (payment intent) for the amount.

        Args:
            amount: Gross amount in major units.
            currency: ISO currency code.
            metadata: Opaque references (subscription id, user id, purpose).

        Returns:
            ChargeResult with the processor's charge id on success.
        """
        ...

    async def capture_charge(self, charge_id: str, amount: Decimal) -> CaptureResult:
        """Capture funds for a created charge."""
        ...

    async def refund(self, charge_id: str, amount: Decimal, reason: str) -> RefundResult:
        """Refund all or part of a captured charge."""
        ...
