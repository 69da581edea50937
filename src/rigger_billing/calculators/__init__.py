"""Fee policy and plan pricing."""

from rigger_billing.calculators.fees import (
    CONTRIBUTION_RATE,
    FeeBreakdown,
    compute_contribution,
    compute_fees,
    platform_fee_rate,
    quantize_money,
)
from rigger_billing.calculators.plans import (
    INTERVAL_DAYS,
    SUBSCRIPTION_PLANS,
    SubscriptionPlan,
    get_plan,
    interval_length,
)

__all__ = [
    "CONTRIBUTION_RATE",
    "FeeBreakdown",
    "compute_contribution",
    "compute_fees",
    "platform_fee_rate",
    "quantize_money",
    "INTERVAL_DAYS",
    "SUBSCRIPTION_PLANS",
    "SubscriptionPlan",
    "get_plan",
    "interval_length",
]
