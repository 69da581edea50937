"""Subscription plan catalog and billing intervals."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

# Fixed day offsets, not calendar-month arithmetic
INTERVAL_DAYS: dict[str, int] = {
    "monthly": 30,
    "quarterly": 90,
    "yearly": 365,
}

FIRST_PERIOD_DAYS = 30


@dataclass(frozen=True)
class SubscriptionPlan:
    """A purchasable plan."""

    plan_type: str
    name: str
    description: str
    amount: Decimal
    features: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "plan_type": self.plan_type,
            "name": self.name,
            "description": self.description,
            "amount": self.amount,
            "features": list(self.features),
        }


SUBSCRIPTION_PLANS: dict[str, SubscriptionPlan] = {
    "basic": SubscriptionPlan(
        plan_type="basic",
        name="Basic Plan",
        description="Essential features for individual riggers",
        amount=Decimal("29.99"),
        features=("Basic job matching", "Profile creation", "Basic safety resources"),
    ),
    "professional": SubscriptionPlan(
        plan_type="professional",
        name="Professional Plan",
        description="Advanced features for experienced riggers",
        amount=Decimal("79.99"),
        features=("Advanced job matching", "Premium profile", "Priority support", "Certification tracking"),
    ),
    "enterprise": SubscriptionPlan(
        plan_type="enterprise",
        name="Enterprise Plan",
        description="Full-featured plan for companies",
        amount=Decimal("199.99"),
        features=("Unlimited job postings", "Team management", "Advanced analytics", "Custom integrations"),
    ),
    "rigger_premium": SubscriptionPlan(
        plan_type="rigger_premium",
        name="Rigger Premium",
        description="Premium features for professional riggers",
        amount=Decimal("49.99"),
        features=("Priority job visibility", "Enhanced safety tools", "Training resources", "Earnings analytics"),
    ),
}


def get_plan(plan_type: str) -> SubscriptionPlan | None:
    return SUBSCRIPTION_PLANS.get(plan_type)


def interval_length(interval: str, count: int = 1) -> timedelta:
    """Length of ``count`` billing intervals (unknown intervals count as monthly)."""
    return timedelta(days=INTERVAL_DAYS.get(interval, INTERVAL_DAYS["monthly"]) * max(count, 1))
