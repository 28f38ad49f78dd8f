"""Damage claim responses and settlement.

Claim statuses::

    pending --accept--> accepted                      (renter pays the claimed amount)
       |  --dispute/negotiate--> disputed --agree--> resolved      (owner takes the counter offer)
       |                            |
       +--escalate--> escalated <---+  --arbitrate--> resolved     (platform decides)

A claim is settled only by the renter accepting it, the owner agreeing to the
renter's counter offer, or arbitration of an escalated claim. Neither party
can close a claim on its own terms.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from gearshare.core.errors import InvalidAmount, InvalidTransition
from gearshare.core.escrow import DEPOSIT_HELD, EscrowLedger, PayoutInstruction
from gearshare.core.pricing import ZERO, round2

if TYPE_CHECKING:
    from gearshare.models.damage_claim import DamageClaim

CLAIM_PENDING = "pending"
CLAIM_ACCEPTED = "accepted"
CLAIM_DISPUTED = "disputed"
CLAIM_ESCALATED = "escalated"
CLAIM_RESOLVED = "resolved"

RESOLVED_BY_RENTER = "renter_acceptance"
RESOLVED_BY_AGREEMENT = "agreement"
RESOLVED_BY_ARBITRATION = "arbitration"

# action -> (allowed source statuses, target status)
CLAIM_TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    "accept": (frozenset({CLAIM_PENDING, CLAIM_DISPUTED}), CLAIM_ACCEPTED),
    "dispute": (frozenset({CLAIM_PENDING, CLAIM_DISPUTED}), CLAIM_DISPUTED),
    "negotiate": (frozenset({CLAIM_PENDING, CLAIM_DISPUTED}), CLAIM_DISPUTED),
    "escalate": (frozenset({CLAIM_PENDING, CLAIM_DISPUTED}), CLAIM_ESCALATED),
    "agree": (frozenset({CLAIM_DISPUTED}), CLAIM_RESOLVED),
    "arbitrate": (frozenset({CLAIM_ESCALATED}), CLAIM_RESOLVED),
}

# How each settlement route checks and moves the claim status
_SETTLEMENT_ACTIONS: dict[str, str] = {
    RESOLVED_BY_AGREEMENT: "agree",
    RESOLVED_BY_ARBITRATION: "arbitrate",
}


def next_claim_status(current: str, action: str) -> str:
    try:
        sources, target = CLAIM_TRANSITIONS[action]
    except KeyError:
        raise InvalidTransition(current, action, f"Unknown claim action '{action}'") from None
    if current not in sources:
        raise InvalidTransition(current, action, f"Claim cannot {action} from status '{current}'")
    return target


def record_response(
    claim: DamageClaim,
    action: str,
    now: datetime,
    counter_offer: Decimal | None = None,
    notes: str | None = None,
) -> str:
    """Store the renter's response on ``claim`` and return its new status.

    A counter offer may not exceed the claimed amount.
    """
    target = next_claim_status(claim.status, action)
    if counter_offer is not None:
        if counter_offer < 0:
            raise InvalidAmount("Counter offer must be a positive amount")
        if counter_offer > claim.estimated_cost:
            raise InvalidAmount(f"Counter offer cannot exceed claimed amount of {claim.estimated_cost}")
    claim.renter_response = {
        "action": action,
        "counter_offer": str(round2(counter_offer)) if counter_offer is not None else None,
        "notes": notes,
        "responded_at": now.isoformat(),
    }
    claim.status = target
    return target


def counter_offer_of(claim: DamageClaim) -> Decimal:
    """The renter's standing counter offer on a disputed claim.

    Raises:
        InvalidTransition: the renter has not made a counter offer.
    """
    response = claim.renter_response or {}
    raw = response.get("counter_offer")
    try:
        amount = Decimal(raw) if raw is not None else None
    except InvalidOperation:
        amount = None
    if amount is None:
        raise InvalidTransition(claim.status, "agree", "The renter has not made a counter offer")
    return amount


@dataclass(frozen=True)
class ClaimSettlement:
    final_amount: Decimal
    paid_from_deposit: Decimal
    additional_charge: Decimal
    escrow_to_owner: Decimal
    escrow_to_renter: Decimal
    payout: PayoutInstruction | None


def settle_claim(
    claim: DamageClaim,
    ledger: EscrowLedger,
    final_amount: Decimal,
    now: datetime,
    escrow_to_owner: Decimal | None = None,
    resolved_by: str = RESOLVED_BY_AGREEMENT,
) -> ClaimSettlement:
    """Close a claim and move its disputed escrow to released or refunded.

    ``resolved_by`` names the route: the renter's acceptance (claim already
    ``accepted``), an agreement on a disputed claim, or arbitration of an
    escalated one. The final amount can never exceed what the owner claimed.

    Damages are paid from the deposit first; anything above the deposit is an
    additional charge to the renter. ``escrow_to_owner`` defaults to the full
    escrowed amount and the rest of the escrow is refunded to the renter.
    """
    if final_amount < 0:
        raise InvalidAmount("Final amount cannot be negative")
    if final_amount > claim.estimated_cost:
        raise InvalidAmount(f"Final amount cannot exceed claimed amount of {claim.estimated_cost}")
    if resolved_by == RESOLVED_BY_RENTER:
        if claim.status != CLAIM_ACCEPTED:
            raise InvalidTransition(claim.status, "settle", "The renter has not accepted this claim")
        target_status = CLAIM_ACCEPTED
    elif resolved_by in _SETTLEMENT_ACTIONS:
        target_status = next_claim_status(claim.status, _SETTLEMENT_ACTIONS[resolved_by])
    else:
        raise InvalidTransition(claim.status, resolved_by, f"Unknown settlement route '{resolved_by}'")

    held = ledger.held_amount
    owner_share = held if escrow_to_owner is None else round2(escrow_to_owner)
    if owner_share > held:
        raise InvalidAmount(f"Owner share {owner_share} exceeds escrowed {held}")
    renter_share = held - owner_share

    # Deposit changes are applied only after the escrow move succeeds.
    payout = ledger.resolve(owner_share, renter_share, now)
    final_amount = round2(final_amount)
    paid = ZERO
    if ledger.record.deposit_status == DEPOSIT_HELD:
        paid = ledger.claim_deposit(final_amount)

    claim.final_amount = final_amount
    claim.paid_from_deposit = paid
    claim.additional_charge = final_amount - paid
    claim.escrow_to_owner = owner_share
    claim.escrow_to_renter = renter_share
    claim.resolved_at = now
    claim.resolved_by = resolved_by
    claim.status = target_status
    return ClaimSettlement(final_amount, paid, final_amount - paid, owner_share, renter_share, payout)
