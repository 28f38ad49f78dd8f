"""Escrow ledger: the custody state machine for one payment record.

States and allowed moves::

    held -----> released
      |  \\----> refunded
      v
    disputed --> released | refunded

``released`` and ``refunded`` are terminal. The ledger mutates the record it
wraps (an ORM row or any object with the same attributes) and only after every
check has passed, so a rejected transition leaves the record untouched.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from gearshare.core.errors import (
    AllocationMismatch,
    InvalidAmount,
    InvalidTransition,
    OpenClaimExists,
    ReleaseNotYetEligible,
)
from gearshare.core.policy import DEFAULT_POLICY, RentalPolicy
from gearshare.core.pricing import ZERO, round2

if TYPE_CHECKING:
    from gearshare.models.payment import Payment

HELD = "held"
RELEASED = "released"
REFUNDED = "refunded"
DISPUTED = "disputed"

ESCROW_STATUSES: frozenset[str] = frozenset({HELD, RELEASED, REFUNDED, DISPUTED})

ESCROW_TRANSITIONS: dict[str, frozenset[str]] = {
    HELD: frozenset({RELEASED, REFUNDED, DISPUTED}),
    DISPUTED: frozenset({RELEASED, REFUNDED}),
    RELEASED: frozenset(),
    REFUNDED: frozenset(),
}

# Events accepted by EscrowLedger.transition
RELEASE = "release"
DISPUTE = "dispute"
RESOLVE = "resolve"
REFUND = "refund"
ESCROW_EVENTS: frozenset[str] = frozenset({RELEASE, DISPUTE, RESOLVE, REFUND})

# Deposit sub-ledger
DEPOSIT_HELD = "held"
DEPOSIT_RELEASED = "released"  # returned to the renter in full
DEPOSIT_CLAIMED = "claimed"  # partly or fully paid out for damages
DEPOSIT_REFUNDED = "refunded"  # returned on cancellation


@dataclass(frozen=True)
class PayoutInstruction:
    """Emitted when escrowed funds are released to the owner."""

    payment_id: uuid.UUID
    booking_id: uuid.UUID
    amount: Decimal
    created_at: datetime


class EscrowLedger:
    """Wraps a payment record and enforces escrow transitions on it."""

    def __init__(self, record: Payment, policy: RentalPolicy = DEFAULT_POLICY) -> None:
        self.record = record
        self.policy = policy

    @property
    def status(self) -> str:
        return self.record.escrow_status

    @property
    def held_amount(self) -> Decimal:
        """Funds still in custody: neither paid to the owner nor refunded."""
        return (
            Decimal(self.record.escrow_amount)
            - Decimal(self.record.owner_payout_amount or ZERO)
            - Decimal(self.record.refunded_amount or ZERO)
        )

    def _check(self, target: str, event: str) -> None:
        if target not in ESCROW_TRANSITIONS.get(self.status, frozenset()):
            raise InvalidTransition(self.status, event, f"Escrow cannot {event} from '{self.status}'")

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release_eligible_at(self, booking_end_date: date) -> datetime:
        """Earliest moment escrow may be released for a booking ending on ``booking_end_date``."""
        return datetime.combine(booking_end_date, time.min) + timedelta(hours=self.policy.release_buffer_hours)

    def can_release(self, booking_end_date: date, now: datetime, has_open_claim: bool) -> bool:
        return (
            self.status == HELD
            and not has_open_claim
            and now >= self.release_eligible_at(booking_end_date)
        )

    def release(self, booking_end_date: date, now: datetime, has_open_claim: bool = False) -> PayoutInstruction:
        """held → released. Pays the full held amount to the owner.

        Raises:
            InvalidTransition: escrow is not held.
            OpenClaimExists: a damage claim is still open.
            ReleaseNotYetEligible: the release buffer after the rental end has not passed.
        """
        if self.status != HELD:
            raise InvalidTransition(self.status, RELEASE, f"Escrow cannot {RELEASE} from '{self.status}'")
        if has_open_claim:
            raise OpenClaimExists()
        eligible_at = self.release_eligible_at(booking_end_date)
        if now < eligible_at:
            raise ReleaseNotYetEligible(f"Escrow can be released from {eligible_at.isoformat()}")
        amount = self.held_amount
        self.record.owner_payout_amount = Decimal(self.record.owner_payout_amount or ZERO) + amount
        self.record.escrow_status = RELEASED
        return self._payout(amount, now)

    # ------------------------------------------------------------------
    # Dispute and resolution
    # ------------------------------------------------------------------

    def dispute(self) -> None:
        """held → disputed, when a damage claim is filed inside the window."""
        self._check(DISPUTED, DISPUTE)
        self.record.escrow_status = DISPUTED

    def resolve(self, owner_amount: Decimal, renter_amount: Decimal, now: datetime) -> PayoutInstruction | None:
        """disputed → released (owner share > 0) or refunded (owner share 0).

        ``owner_amount + renter_amount`` must equal the held amount.
        """
        owner_amount = round2(owner_amount)
        renter_amount = round2(renter_amount)
        target = RELEASED if owner_amount > 0 else REFUNDED
        if self.status != DISPUTED:
            raise InvalidTransition(self.status, RESOLVE, f"Escrow cannot {RESOLVE} from '{self.status}'")
        if owner_amount < 0 or renter_amount < 0:
            raise InvalidAmount("Settlement amounts cannot be negative")
        held = self.held_amount
        if owner_amount + renter_amount != held:
            raise AllocationMismatch(
                f"Settlement {owner_amount} + {renter_amount} does not equal escrowed {held}"
            )
        self.record.owner_payout_amount = Decimal(self.record.owner_payout_amount or ZERO) + owner_amount
        self.record.refunded_amount = Decimal(self.record.refunded_amount or ZERO) + renter_amount
        self.record.escrow_status = target
        return self._payout(owner_amount, now) if owner_amount > 0 else None

    # ------------------------------------------------------------------
    # Refund
    # ------------------------------------------------------------------

    def refund(self, refund_eligible: bool) -> Decimal:
        """held → refunded on cancellation before activation completes.

        ``refund_eligible`` is the cancellation policy's verdict; when it is
        false the funds stay held and InvalidTransition is raised.
        """
        self._check(REFUNDED, REFUND)
        if not refund_eligible:
            raise InvalidTransition(self.status, REFUND, "Cancellation is not eligible for a refund")
        amount = self.held_amount
        self.record.refunded_amount = Decimal(self.record.refunded_amount or ZERO) + amount
        self.record.escrow_status = REFUNDED
        if self.record.deposit_status == DEPOSIT_HELD:
            self.record.deposit_status = DEPOSIT_REFUNDED
            self.record.deposit_refund_amount = self.record.deposit_amount
        return amount

    def transition(self, event: str, *, now: datetime, **kwargs) -> PayoutInstruction | Decimal | None:
        """Dispatch a named event. Keyword arguments are those of the matching method."""
        if event == RELEASE:
            return self.release(kwargs["booking_end_date"], now, kwargs.get("has_open_claim", False))
        if event == DISPUTE:
            return self.dispute()
        if event == RESOLVE:
            return self.resolve(kwargs["owner_amount"], kwargs["renter_amount"], now)
        if event == REFUND:
            return self.refund(kwargs.get("refund_eligible", False))
        raise InvalidTransition(self.status, event, f"Unknown escrow event '{event}'")

    def _payout(self, amount: Decimal, now: datetime) -> PayoutInstruction:
        return PayoutInstruction(
            payment_id=self.record.id,
            booking_id=self.record.booking_id,
            amount=amount,
            created_at=now,
        )

    # ------------------------------------------------------------------
    # Deposit
    # ------------------------------------------------------------------

    def release_deposit(self) -> Decimal:
        """Return the whole deposit to the renter. Returns the amount refunded."""
        if self.record.deposit_status != DEPOSIT_HELD:
            raise InvalidTransition(
                str(self.record.deposit_status), "release deposit", "Deposit already processed"
            )
        self.record.deposit_status = DEPOSIT_RELEASED
        self.record.deposit_refund_amount = self.record.deposit_amount
        return Decimal(self.record.deposit_amount)

    def claim_deposit(self, claimed_amount: Decimal) -> Decimal:
        """Apply damages to the deposit. Returns the part paid from the deposit.

        Whatever the damages do not consume is refunded to the renter.
        """
        if self.record.deposit_status != DEPOSIT_HELD:
            raise InvalidTransition(
                str(self.record.deposit_status), "claim deposit", "Deposit already processed"
            )
        if claimed_amount < 0:
            raise InvalidAmount("Claimed amount cannot be negative")
        deposit = Decimal(self.record.deposit_amount)
        paid = min(deposit, round2(claimed_amount))
        self.record.deposit_refund_amount = deposit_refund(deposit, claimed_amount)
        self.record.deposit_status = DEPOSIT_CLAIMED if paid > 0 else DEPOSIT_RELEASED
        return paid


def deposit_refund(deposit_amount: Decimal, claimed_amount: Decimal) -> Decimal:
    """Deposit left for the renter after claim deductions."""
    return max(ZERO, round2(Decimal(deposit_amount) - Decimal(claimed_amount)))
