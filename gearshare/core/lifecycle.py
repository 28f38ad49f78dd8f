"""Booking lifecycle orchestration.

Booking statuses::

    pending -> approved -> active -> completed
       |          |
       +----------+--> cancelled | declined (declined from pending only)

:class:`BookingLifecycle` applies these transitions to booking records and
calls the pricing, availability, escrow and claim-window components at the
points where each one decides whether the move is allowed. Every check runs
before the first attribute is written.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from gearshare.core.availability import AvailabilityResolver, Conflict
from gearshare.core.claim_window import ClaimWindow, ClaimWindowGuard
from gearshare.core.errors import BookingConflict, ImmutableState, InvalidTransition
from gearshare.core.escrow import HELD, REFUNDED, RELEASED, EscrowLedger
from gearshare.core.policy import DEFAULT_POLICY, INSURANCE_NONE, RentalPolicy
from gearshare.core.pricing import ZERO, PricingBreakdown, PricingCalculator

if TYPE_CHECKING:
    from gearshare.models.booking import Booking
    from gearshare.models.damage_claim import DamageClaim
    from gearshare.models.equipment import Equipment
    from gearshare.models.inspection import Inspection
    from gearshare.models.payment import Payment

PENDING = "pending"
APPROVED = "approved"
ACTIVE = "active"
COMPLETED = "completed"
CANCELLED = "cancelled"
DECLINED = "declined"

BOOKING_STATUSES: frozenset[str] = frozenset({PENDING, APPROVED, ACTIVE, COMPLETED, CANCELLED, DECLINED})

# event -> (allowed source statuses, target status)
BOOKING_TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    "approve": (frozenset({PENDING}), APPROVED),
    "decline": (frozenset({PENDING}), DECLINED),
    "activate": (frozenset({APPROVED}), ACTIVE),
    "complete": (frozenset({ACTIVE}), COMPLETED),
    "cancel": (frozenset({PENDING, APPROVED}), CANCELLED),
}

OPEN_CLAIM_STATUSES: frozenset[str] = frozenset({"pending", "disputed", "escalated"})


def next_status(current: str, event: str) -> str:
    """Target status for ``event`` from ``current``; raises InvalidTransition if not allowed."""
    try:
        sources, target = BOOKING_TRANSITIONS[event]
    except KeyError:
        raise InvalidTransition(current, event, f"Unknown booking event '{event}'") from None
    if current not in sources:
        raise InvalidTransition(current, event)
    return target


def claim_is_open(claim: DamageClaim | None) -> bool:
    return claim is not None and claim.status in OPEN_CLAIM_STATUSES


@dataclass(frozen=True)
class BookingQuote:
    """A validated, priced booking request ready to be persisted."""

    equipment_id: uuid.UUID
    start_date: date
    end_date: date
    pricing: PricingBreakdown


class BookingLifecycle:
    """Drives booking status changes under one :class:`RentalPolicy`."""

    def __init__(self, policy: RentalPolicy = DEFAULT_POLICY) -> None:
        self.policy = policy
        self.pricing = PricingCalculator(policy)
        self.availability = AvailabilityResolver(policy)
        self.claim_window = ClaimWindowGuard()

    def ledger(self, payment: Payment) -> EscrowLedger:
        return EscrowLedger(payment, self.policy)

    # ------------------------------------------------------------------
    # Request and approval
    # ------------------------------------------------------------------

    def conflicts_for(
        self,
        equipment_id: uuid.UUID,
        start_date: date,
        end_date: date,
        existing_bookings: Iterable,
        overrides: Iterable = (),
        exclude_booking_id: uuid.UUID | None = None,
    ) -> list[Conflict]:
        return self.availability.check_conflicts(
            equipment_id, start_date, end_date, existing_bookings, overrides, exclude_booking_id
        )

    def request(
        self,
        equipment: Equipment,
        start_date: date,
        end_date: date,
        existing_bookings: Iterable,
        overrides: Iterable = (),
        insurance_tier: str = INSURANCE_NONE,
    ) -> BookingQuote:
        """Validate and price a new booking request.

        Pricing only runs once the range is free of conflicts, so a same-day
        request is rejected by the minimum-duration rule and never priced.

        Raises:
            BookingConflict: the range has one or more conflicts.
        """
        overrides = list(overrides)
        conflicts = self.conflicts_for(equipment.id, start_date, end_date, existing_bookings, overrides)
        if conflicts:
            raise BookingConflict(conflicts)
        pricing = self.pricing.calculate(
            equipment.daily_rate,
            start_date,
            end_date,
            overrides,
            insurance_tier=insurance_tier,
            deposit=equipment.deposit_amount or ZERO,
        )
        return BookingQuote(equipment.id, start_date, end_date, pricing)

    def approve(self, booking: Booking, existing_bookings: Iterable, overrides: Iterable = ()) -> None:
        """pending → approved, re-checking availability against a fresh snapshot."""
        target = next_status(booking.status, "approve")
        conflicts = self.conflicts_for(
            booking.equipment_id,
            booking.start_date,
            booking.end_date,
            existing_bookings,
            overrides,
            exclude_booking_id=booking.id,
        )
        if conflicts:
            raise BookingConflict(conflicts)
        booking.status = target

    def decline(self, booking: Booking) -> None:
        booking.status = next_status(booking.status, "decline")

    # ------------------------------------------------------------------
    # Activation and completion
    # ------------------------------------------------------------------

    def activate(self, booking: Booking, payment: Payment | None, now: datetime) -> None:
        """approved → active once payment is authorized and escrow is held."""
        target = next_status(booking.status, "activate")
        if payment is None or payment.escrow_status != HELD:
            raise InvalidTransition(booking.status, "activate", "Payment must be authorized and held in escrow")
        booking.status = target
        booking.activated_at = now

    def evaluate_claim_window(
        self,
        return_inspection: Inspection | None,
        claim_window_hours: int | None,
        now: datetime,
        claim: DamageClaim | None = None,
    ) -> ClaimWindow:
        hours = self.policy.claim_window_hours(claim_window_hours)
        return self.claim_window.evaluate(return_inspection, hours, now, claim_filed=claim is not None)

    def return_settled(self, window: ClaimWindow, claim: DamageClaim | None) -> bool:
        """Return counts as settled: owner confirmed, auto-accepted, or its claim closed."""
        if window.deadline is None:
            return False
        if claim is not None:
            return not claim_is_open(claim)
        return window.accepted

    def complete(
        self,
        booking: Booking,
        payment: Payment | None,
        window: ClaimWindow,
        claim: DamageClaim | None,
        now: datetime,
    ) -> None:
        """active → completed once the return is settled and escrow has left custody."""
        target = next_status(booking.status, "complete")
        if not self.return_settled(window, claim):
            raise InvalidTransition(booking.status, "complete", "Return inspection has not been accepted yet")
        if payment is None or payment.escrow_status not in (RELEASED, REFUNDED):
            raise InvalidTransition(booking.status, "complete", "Escrow has not been released or resolved")
        booking.status = target
        booking.completed_at = now

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(
        self,
        booking: Booking,
        payment: Payment | None,
        now: datetime,
        refund_eligible: bool = True,
    ) -> Decimal:
        """pending/approved → cancelled, refunding escrow if funds were authorized.

        Returns the refunded escrow amount (zero when nothing was collected).

        Raises:
            ImmutableState: escrow has already moved past ``held``.
            InvalidTransition: the booking is not pending or approved.
        """
        if payment is not None and payment.escrow_status != HELD:
            raise ImmutableState()
        target = next_status(booking.status, "cancel")
        refunded = ZERO
        if payment is not None:
            refunded = self.ledger(payment).refund(refund_eligible)
        booking.status = target
        booking.cancelled_at = now
        return refunded
