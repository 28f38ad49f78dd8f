"""Rental price calculation.

Money is handled as :class:`~decimal.Decimal` throughout and rounded
half-up to cents.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from gearshare.core.errors import InvalidAmount, InvalidDateRange, UnknownInsuranceTier
from gearshare.core.policy import DEFAULT_POLICY, INSURANCE_NONE, RentalPolicy

if TYPE_CHECKING:
    from gearshare.models.equipment import RateOverride

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def round2(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def iter_nights(start_date: date, end_date: date) -> Iterable[date]:
    """Yield every date in the half-open range ``[start_date, end_date)``."""
    current = start_date
    while current < end_date:
        yield current
        current += timedelta(days=1)


@dataclass(frozen=True)
class PricingBreakdown:
    """Itemized cost of a rental. ``total`` excludes the refundable deposit."""

    days: int
    daily_rate: Decimal
    subtotal: Decimal
    service_fee_rate: Decimal
    service_fee: Decimal
    insurance_tier: str
    insurance_cost: Decimal
    deposit: Decimal
    total: Decimal

    @property
    def amount_due(self) -> Decimal:
        """What the renter is charged now: rental total plus deposit."""
        return self.total + self.deposit

    @property
    def escrow_amount(self) -> Decimal:
        """Portion held in escrow until the claim window settles."""
        return self.subtotal + self.insurance_cost


class PricingCalculator:
    """Computes :class:`PricingBreakdown` values under a :class:`RentalPolicy`."""

    def __init__(self, policy: RentalPolicy = DEFAULT_POLICY) -> None:
        self.policy = policy

    def nightly_rate(self, daily_rate: Decimal, override: RateOverride | None) -> Decimal:
        if override is not None and override.is_available and override.custom_rate is not None:
            return Decimal(override.custom_rate)
        return daily_rate

    def calculate(
        self,
        daily_rate: Decimal,
        start_date: date,
        end_date: date,
        overrides: Iterable = (),
        insurance_tier: str = INSURANCE_NONE,
        deposit: Decimal = ZERO,
    ) -> PricingBreakdown:
        """Price the rental of ``[start_date, end_date)``.

        Overrides are objects with ``date``, ``is_available`` and
        ``custom_rate`` attributes. Dates marked unavailable are assumed to
        have been rejected by the availability check and are priced at the
        default rate.

        Raises:
            InvalidAmount: daily_rate is not positive or deposit is negative.
            InvalidDateRange: end_date is before start_date.
            UnknownInsuranceTier: insurance_tier is not in the policy.
        """
        daily_rate = Decimal(daily_rate)
        deposit = Decimal(deposit)
        if daily_rate <= 0:
            raise InvalidAmount("daily_rate must be greater than zero")
        if deposit < 0:
            raise InvalidAmount("deposit cannot be negative")
        days = (end_date - start_date).days
        if days < 0:
            raise InvalidDateRange()
        if insurance_tier not in self.policy.insurance_rates:
            raise UnknownInsuranceTier(f"Unknown insurance tier '{insurance_tier}'")

        by_date = {o.date: o for o in overrides}
        nightly = (self.nightly_rate(daily_rate, by_date.get(night)) for night in iter_nights(start_date, end_date))
        subtotal = round2(sum(nightly, ZERO))

        service_fee = round2(subtotal * self.policy.service_fee_rate)
        insurance_cost = round2(subtotal * self.policy.insurance_rates[insurance_tier])

        return PricingBreakdown(
            days=days,
            daily_rate=daily_rate,
            subtotal=subtotal,
            service_fee_rate=self.policy.service_fee_rate,
            service_fee=service_fee,
            insurance_tier=insurance_tier,
            insurance_cost=insurance_cost,
            deposit=round2(deposit),
            total=subtotal + service_fee + insurance_cost,
        )
