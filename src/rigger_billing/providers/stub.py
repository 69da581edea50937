"""Stub payment processor for local development and testing.

Replace with a real processor adapter (Stripe PaymentIntents, etc.) for
production.
"""

from __future__ import annotations

import asyncio
import uuid
from decimal import Decimal
from typing import Any

from rigger_billing.providers.base import (
    CaptureResult,
    ChargeResult,
    RefundResult,
    to_minor_units,
)


class StubPaymentProcessor:
    """In-memory processor.

    Args:
        fail_charges: If True, every create_charge is declined.
        fail_captures: If True, every capture is declined.
        latency_seconds: Artificial delay added to every call, for
            exercising caller timeouts.
    """

    processor_name = "stub"

    def __init__(
        self,
        fail_charges: bool = False,
        fail_captures: bool = False,
        latency_seconds: float = 0.0,
    ):
        self.fail_charges = fail_charges
        self.fail_captures = fail_captures
        self.latency_seconds = latency_seconds
        self._charges: dict[str, dict[str, Any]] = {}
        self._refunds: dict[str, dict[str, Any]] = {}

    @property
    def charges(self) -> dict[str, dict[str, Any]]:
        return self._charges

    async def _delay(self) -> None:
        if self.latency_seconds > 0:
            await asyncio.sleep(self.latency_seconds)

    async def create_charge(
        self,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
    ) -> ChargeResult:
        await self._delay()
        if self.fail_charges:
            return ChargeResult(success=False, message="Card declined")

        charge_id = f"ch_stub_{uuid.uuid4().hex[:16]}"
        self._charges[charge_id] = {
            "amount_minor": to_minor_units(amount),
            "currency": currency.lower(),
            "metadata": dict(metadata),
            "status": "requires_capture",
            "refunded_minor": 0,
        }
        return ChargeResult(success=True, charge_id=charge_id, message="Stub charge created")

    async def capture_charge(self, charge_id: str, amount: Decimal) -> CaptureResult:
        await self._delay()
        charge = self._charges.get(charge_id)
        if charge is None:
            return CaptureResult(success=False, charge_id=charge_id, message=f"Charge {charge_id} not found")
        if self.fail_captures:
            return CaptureResult(success=False, charge_id=charge_id, message="Capture declined")
        if to_minor_units(amount) > charge["amount_minor"]:
            return CaptureResult(success=False, charge_id=charge_id, message="Capture exceeds charge amount")

        charge["status"] = "succeeded"
        charge["captured_minor"] = to_minor_units(amount)
        return CaptureResult(success=True, charge_id=charge_id, amount=amount, message="Stub capture succeeded")

    async def refund(self, charge_id: str, amount: Decimal, reason: str) -> RefundResult:
        await self._delay()
        charge = self._charges.get(charge_id)
        if charge is None or charge["status"] != "succeeded":
            return RefundResult(success=False, message=f"Charge {charge_id} is not refundable")

        remaining = charge.get("captured_minor", 0) - charge["refunded_minor"]
        if to_minor_units(amount) > remaining:
            return RefundResult(success=False, message="Refund exceeds captured amount")

        refund_id = f"re_stub_{uuid.uuid4().hex[:16]}"
        charge["refunded_minor"] += to_minor_units(amount)
        self._refunds[refund_id] = {"charge_id": charge_id, "amount_minor": to_minor_units(amount), "reason": reason}
        return RefundResult(success=True, refund_id=refund_id, message="Stub refund succeeded")
