"""Rental policy: the versioned business constants the booking engine runs on."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gearshare.config import Settings

INSURANCE_NONE = "none"
INSURANCE_BASIC = "basic"
INSURANCE_PREMIUM = "premium"


def _default_insurance_rates() -> dict[str, Decimal]:
    return {
        INSURANCE_NONE: Decimal("0"),
        INSURANCE_BASIC: Decimal("0.05"),
        INSURANCE_PREMIUM: Decimal("0.10"),
    }


@dataclass(frozen=True)
class RentalPolicy:
    """Fee rates, duration bounds, and settlement timings.

    Insurance rates are fractions of the rental subtotal.
    """

    service_fee_rate: Decimal = Decimal("0.05")
    insurance_rates: dict[str, Decimal] = field(default_factory=_default_insurance_rates)
    min_days: int = 1
    max_days: int = 30
    release_buffer_hours: int = 24
    default_claim_window_hours: int = 48
    version: str = "2024-06"

    @property
    def insurance_tiers(self) -> frozenset[str]:
        return frozenset(self.insurance_rates)

    def claim_window_hours(self, configured: int | None) -> int:
        """Resource-configured claim window, falling back to the policy default."""
        if configured is None or configured <= 0:
            return self.default_claim_window_hours
        return configured


def policy_from_settings(settings: Settings) -> RentalPolicy:
    """Build a RentalPolicy from application settings."""
    return RentalPolicy(
        service_fee_rate=settings.service_fee_rate,
        insurance_rates={
            INSURANCE_NONE: Decimal("0"),
            INSURANCE_BASIC: settings.insurance_basic_rate,
            INSURANCE_PREMIUM: settings.insurance_premium_rate,
        },
        min_days=settings.min_rental_days,
        max_days=settings.max_rental_days,
        release_buffer_hours=settings.release_buffer_hours,
        default_claim_window_hours=settings.default_claim_window_hours,
        version=settings.policy_version,
    )


DEFAULT_POLICY = RentalPolicy()
