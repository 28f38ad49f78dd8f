"""Tests for rental price calculation."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from gearshare.core.errors import InvalidAmount, InvalidDateRange, UnknownInsuranceTier
from gearshare.core.policy import RentalPolicy
from gearshare.core.pricing import PricingCalculator, iter_nights, round2


def _override(day: date, custom_rate: str | None = None, is_available: bool = True) -> SimpleNamespace:
    return SimpleNamespace(
        date=day,
        is_available=is_available,
        custom_rate=Decimal(custom_rate) if custom_rate is not None else None,
    )


class TestCalculate:
    def test_five_day_rental_without_insurance(self):
        breakdown = PricingCalculator().calculate(Decimal("100"), date(2024, 6, 15), date(2024, 6, 20))

        assert breakdown.days == 5
        assert breakdown.subtotal == Decimal("500.00")
        assert breakdown.service_fee == Decimal("25.00")
        assert breakdown.insurance_cost == Decimal("0.00")
        assert breakdown.total == Decimal("525.00")

    def test_total_is_sum_of_parts(self):
        breakdown = PricingCalculator().calculate(
            Decimal("33.33"), date(2024, 6, 1), date(2024, 6, 4), insurance_tier="premium"
        )
        assert breakdown.total == breakdown.subtotal + breakdown.service_fee + breakdown.insurance_cost

    def test_zero_days_is_priced_at_zero(self):
        breakdown = PricingCalculator().calculate(Decimal("100"), date(2024, 6, 15), date(2024, 6, 15))
        assert breakdown.days == 0
        assert breakdown.total == Decimal("0.00")

    def test_custom_rate_override_replaces_daily_rate(self):
        overrides = [_override(date(2024, 6, 16), "150.00")]
        breakdown = PricingCalculator().calculate(
            Decimal("100"), date(2024, 6, 15), date(2024, 6, 18), overrides
        )
        assert breakdown.subtotal == Decimal("350.00")

    def test_override_outside_range_is_ignored(self):
        overrides = [_override(date(2024, 6, 18), "999.00")]
        breakdown = PricingCalculator().calculate(
            Decimal("100"), date(2024, 6, 15), date(2024, 6, 18), overrides
        )
        assert breakdown.subtotal == Decimal("300.00")

    def test_unavailable_override_uses_default_rate(self):
        overrides = [_override(date(2024, 6, 16), "150.00", is_available=False)]
        breakdown = PricingCalculator().calculate(
            Decimal("100"), date(2024, 6, 15), date(2024, 6, 17), overrides
        )
        assert breakdown.subtotal == Decimal("200.00")

    @pytest.mark.parametrize(
        "tier,expected",
        [("none", Decimal("0.00")), ("basic", Decimal("25.00")), ("premium", Decimal("50.00"))],
    )
    def test_insurance_is_a_share_of_subtotal(self, tier, expected):
        breakdown = PricingCalculator().calculate(
            Decimal("100"), date(2024, 6, 15), date(2024, 6, 20), insurance_tier=tier
        )
        assert breakdown.insurance_cost == expected

    def test_rounding_is_half_up(self):
        # 3 x 10.05 = 30.15; 5% fee = 1.5075 -> 1.51
        breakdown = PricingCalculator().calculate(Decimal("10.05"), date(2024, 6, 1), date(2024, 6, 4))
        assert breakdown.service_fee == Decimal("1.51")

    def test_deposit_is_reported_but_not_in_total(self):
        breakdown = PricingCalculator().calculate(
            Decimal("100"), date(2024, 6, 15), date(2024, 6, 17), deposit=Decimal("250")
        )
        assert breakdown.total == Decimal("210.00")
        assert breakdown.amount_due == Decimal("460.00")
        assert breakdown.escrow_amount == Decimal("200.00")

    def test_policy_fee_rate_is_used(self):
        calculator = PricingCalculator(RentalPolicy(service_fee_rate=Decimal("0.10")))
        breakdown = calculator.calculate(Decimal("100"), date(2024, 6, 15), date(2024, 6, 16))
        assert breakdown.service_fee == Decimal("10.00")


class TestCalculateErrors:
    def test_end_before_start(self):
        with pytest.raises(InvalidDateRange):
            PricingCalculator().calculate(Decimal("100"), date(2024, 6, 20), date(2024, 6, 15))

    def test_non_positive_rate(self):
        with pytest.raises(InvalidAmount):
            PricingCalculator().calculate(Decimal("0"), date(2024, 6, 15), date(2024, 6, 16))

    def test_negative_deposit(self):
        with pytest.raises(InvalidAmount):
            PricingCalculator().calculate(
                Decimal("100"), date(2024, 6, 15), date(2024, 6, 16), deposit=Decimal("-1")
            )

    def test_unknown_insurance_tier(self):
        with pytest.raises(UnknownInsuranceTier):
            PricingCalculator().calculate(
                Decimal("100"), date(2024, 6, 15), date(2024, 6, 16), insurance_tier="platinum"
            )


def test_iter_nights_is_half_open():
    assert list(iter_nights(date(2024, 6, 30), date(2024, 7, 2))) == [date(2024, 6, 30), date(2024, 7, 1)]


def test_round2():
    assert round2(Decimal("2.675")) == Decimal("2.68")
