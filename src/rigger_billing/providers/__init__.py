"""Payment processor adapters."""

from rigger_billing.providers.base import (
    CaptureResult,
    ChargeResult,
    PaymentProcessor,
    RefundResult,
)
from rigger_billing.providers.stub import StubPaymentProcessor

__all__ = [
    "CaptureResult",
    "ChargeResult",
    "PaymentProcessor",
    "RefundResult",
    "StubPaymentProcessor",
]
