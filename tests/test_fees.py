"""Tests for the platform fee and contribution policy."""

from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from rigger_billing.calculators import (
    CONTRIBUTION_RATE,
    SUBSCRIPTION_PLANS,
    compute_contribution,
    compute_fees,
    get_plan,
    interval_length,
    platform_fee_rate,
    quantize_money,
)
from rigger_billing.errors import ErrorCode, InvalidAmountError

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
kinds = st.sampled_from(["job_payment", "recruitment_fee", "subscription", "platform_fee", "other"])


class TestComputeFees:
    """Worked examples for each transaction kind."""

    def test_job_payment(self):
        fees = compute_fees(Decimal("400"), "job_payment")

        assert fees.platform_fee == Decimal("12.00")
        assert fees.contribution_amount == Decimal("2.000")
        assert fees.net_amount == Decimal("386.000")
        assert fees.platform_fee_rate == Decimal("0.03")

    def test_recruitment_fee(self):
        fees = compute_fees(Decimal("250"), "recruitment_fee")

        assert fees.platform_fee == Decimal("12.50")
        assert fees.contribution_amount == Decimal("1.250")
        assert fees.net_amount == Decimal("236.250")

    def test_subscription_has_no_platform_fee(self):
        fees = compute_fees(Decimal("79.99"), "subscription")

        assert fees.platform_fee == 0
        assert fees.contribution_amount == Decimal("0.39995")

    def test_unknown_kind_uses_default_rate(self):
        assert platform_fee_rate("mystery") == Decimal("0.03")

    def test_fees_are_not_rounded(self):
        fees = compute_fees(Decimal("10.01"), "job_payment")

        assert fees.platform_fee == Decimal("0.3003")
        assert fees.contribution_amount == Decimal("0.05005")

    def test_quantized_rounds_half_up(self):
        fees = compute_fees(Decimal("10.01"), "job_payment").quantized()

        assert fees.platform_fee == Decimal("0.30")
        assert fees.contribution_amount == Decimal("0.05")
        assert fees.net_amount == Decimal("9.66")

    def test_accepts_strings_and_ints(self):
        assert compute_fees("400", "job_payment").platform_fee == Decimal("12.00")
        assert compute_fees(400, "job_payment").platform_fee == Decimal("12.00")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "abc", "NaN", "Infinity", True])
    def test_rejects_non_positive_or_non_numeric(self, amount):
        with pytest.raises(InvalidAmountError) as exc_info:
            compute_fees(amount, "job_payment")

        assert exc_info.value.code == ErrorCode.INVALID_AMOUNT


class TestFeeProperties:
    """Invariants that hold for any amount."""

    @given(amount=amounts, kind=kinds)
    @settings(max_examples=200)
    def test_parts_sum_to_amount(self, amount, kind):
        fees = compute_fees(amount, kind)

        assert fees.platform_fee + fees.contribution_amount + fees.net_amount == amount

    @given(amount=amounts, kind=kinds)
    def test_contribution_rate_is_constant(self, amount, kind):
        fees = compute_fees(amount, kind)

        assert fees.contribution_rate == CONTRIBUTION_RATE
        assert fees.contribution_amount == amount * Decimal("0.005")

    @given(amount=amounts, kind=kinds)
    def test_net_is_positive(self, amount, kind):
        assert compute_fees(amount, kind).net_amount > 0

    @given(amount=amounts)
    def test_contribution_matches_breakdown(self, amount):
        assert compute_contribution(amount) == compute_fees(amount, "job_payment").contribution_amount

    @given(amount=amounts, kind=kinds)
    def test_quantized_parts_sum_to_amount(self, amount, kind):
        fees = compute_fees(amount, kind).quantized()

        assert fees.platform_fee + fees.contribution_amount + fees.net_amount == quantize_money(amount)


class TestPlans:
    def test_catalog_prices(self):
        assert SUBSCRIPTION_PLANS["basic"].amount == Decimal("29.99")
        assert SUBSCRIPTION_PLANS["professional"].amount == Decimal("79.99")
        assert SUBSCRIPTION_PLANS["enterprise"].amount == Decimal("199.99")
        assert SUBSCRIPTION_PLANS["rigger_premium"].amount == Decimal("49.99")

    def test_unknown_plan(self):
        assert get_plan("platinum") is None

    @pytest.mark.parametrize(
        ("interval", "count", "days"),
        [("monthly", 1, 30), ("quarterly", 1, 90), ("yearly", 1, 365), ("monthly", 2, 60)],
    )
    def test_interval_length(self, interval, count, days):
        assert interval_length(interval, count).days == days
