"""Claim window evaluation.

The window opens when the renter confirms the return inspection and lasts
``claim_window_hours`` from the inspection timestamp. An owner confirming the
return closes it early; once it lapses without a claim the return counts as
accepted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gearshare.models.inspection import Inspection

RETURN_NOT_CONFIRMED = "ReturnNotConfirmed"
OWNER_ALREADY_CONFIRMED = "OwnerAlreadyConfirmed"
ALREADY_FILED = "AlreadyFiled"
WINDOW_EXPIRED = "WindowExpired"


@dataclass(frozen=True)
class ClaimWindow:
    can_file_claim: bool
    auto_accepted: bool
    deadline: datetime | None
    reason: str | None = None
    owner_confirmed: bool = False

    @property
    def accepted(self) -> bool:
        """Return accepted, explicitly by the owner or by silence."""
        return self.owner_confirmed or self.auto_accepted


def claim_deadline(return_inspection: Inspection, claim_window_hours: int) -> datetime:
    return return_inspection.timestamp + timedelta(hours=claim_window_hours)


class ClaimWindowGuard:
    """Stateless evaluator; all state lives on the inspection and claim records."""

    def evaluate(
        self,
        return_inspection: Inspection | None,
        claim_window_hours: int,
        now: datetime,
        claim_filed: bool = False,
    ) -> ClaimWindow:
        """Work out whether a damage claim can be filed at ``now``.

        Args:
            return_inspection: Object with ``timestamp``, ``verified_by_owner``
                and ``verified_by_renter``, or ``None`` when no return has been
                recorded yet.
            claim_window_hours: Length of the window for this resource.
            now: Current time (naive UTC).
            claim_filed: Whether a claim already exists for the booking.
        """
        if return_inspection is None or not return_inspection.verified_by_renter:
            return ClaimWindow(False, False, None, RETURN_NOT_CONFIRMED)

        deadline = claim_deadline(return_inspection, claim_window_hours)

        if claim_filed:
            return ClaimWindow(False, False, deadline, ALREADY_FILED, bool(return_inspection.verified_by_owner))
        if return_inspection.verified_by_owner:
            return ClaimWindow(False, False, deadline, OWNER_ALREADY_CONFIRMED, owner_confirmed=True)
        if now > deadline:
            return ClaimWindow(False, True, deadline, WINDOW_EXPIRED)
        return ClaimWindow(True, False, deadline)
