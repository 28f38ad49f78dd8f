"""Booking lifecycle and financial settlement engine.

Pure, synchronous components. Nothing here touches the database or the
network; callers pass in snapshots and an explicit ``now``.
"""

from gearshare.core.availability import AvailabilityResolver, Conflict
from gearshare.core.claim_window import ClaimWindow, ClaimWindowGuard
from gearshare.core.escrow import EscrowLedger, PayoutInstruction
from gearshare.core.lifecycle import BookingLifecycle, BookingQuote
from gearshare.core.policy import RentalPolicy, policy_from_settings
from gearshare.core.pricing import PricingBreakdown, PricingCalculator

__all__ = [
    "AvailabilityResolver",
    "BookingLifecycle",
    "BookingQuote",
    "ClaimWindow",
    "ClaimWindowGuard",
    "Conflict",
    "EscrowLedger",
    "PayoutInstruction",
    "PricingBreakdown",
    "PricingCalculator",
    "RentalPolicy",
    "policy_from_settings",
]
