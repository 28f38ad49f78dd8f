"""Availability resolution: can a date range be booked against a snapshot?

Conflicts are returned as data, not raised, because several can apply at
once and the caller shows all of them.
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from gearshare.core.policy import DEFAULT_POLICY, RentalPolicy

MINIMUM_DAYS = "minimum_days"
MAXIMUM_DAYS = "maximum_days"
OVERLAP = "overlap"
UNAVAILABLE = "unavailable"

# Statuses that hold a resource's dates. Cancelled and declined bookings never conflict.
BLOCKING_STATUSES: frozenset[str] = frozenset({"pending", "approved", "active"})


@dataclass(frozen=True)
class Conflict:
    """A reason the requested range cannot be booked."""

    type: str
    message: str
    conflicting_dates: tuple[date, ...] = field(default_factory=tuple)


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Half-open interval overlap. Touching ranges (``a_end == b_start``) do not overlap."""
    return a_start < b_end and b_start < a_end


class AvailabilityResolver:
    """Checks a requested range against duration policy and existing bookings."""

    def __init__(self, policy: RentalPolicy = DEFAULT_POLICY) -> None:
        self.policy = policy

    def check_conflicts(
        self,
        resource_id: uuid.UUID,
        start_date: date,
        end_date: date,
        existing_bookings: Iterable,
        overrides: Iterable = (),
        exclude_booking_id: uuid.UUID | None = None,
    ) -> list[Conflict]:
        """Return every conflict for ``[start_date, end_date)``; empty means bookable.

        ``existing_bookings`` are objects with ``id``, ``equipment_id``,
        ``start_date``, ``end_date`` and ``status``. Bookings for other
        resources are ignored, as is ``exclude_booking_id`` (used when
        re-checking a booking against its own snapshot).
        """
        conflicts: list[Conflict] = []
        days = (end_date - start_date).days

        if days < self.policy.min_days:
            conflicts.append(
                Conflict(MINIMUM_DAYS, f"Minimum rental period is {self._days(self.policy.min_days)}")
            )
        if days > self.policy.max_days:
            conflicts.append(
                Conflict(MAXIMUM_DAYS, f"Maximum rental period is {self._days(self.policy.max_days)}")
            )

        overlapping = sorted(
            (
                b
                for b in existing_bookings
                if b.equipment_id == resource_id
                and b.id != exclude_booking_id
                and b.status in BLOCKING_STATUSES
                and ranges_overlap(start_date, end_date, b.start_date, b.end_date)
            ),
            key=lambda b: b.start_date,
        )
        # One conflict per intersecting booking, keyed by that booking's start date
        for b in overlapping:
            conflicts.append(
                Conflict(
                    OVERLAP,
                    f"Selected dates overlap with a booking from {b.start_date} to {b.end_date}",
                    (b.start_date,),
                )
            )

        blocked = sorted(
            o.date for o in overrides if not o.is_available and start_date <= o.date < end_date
        )
        if blocked:
            conflicts.append(
                Conflict(UNAVAILABLE, "Some selected dates are blocked by the owner", tuple(blocked))
            )

        return conflicts

    @staticmethod
    def _days(n: int) -> str:
        return "1 day" if n == 1 else f"{n} days"
