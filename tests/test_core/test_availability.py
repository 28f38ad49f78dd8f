"""Tests for availability conflict detection."""

import uuid
from datetime import date
from types import SimpleNamespace

from gearshare.core.availability import (
    MAXIMUM_DAYS,
    MINIMUM_DAYS,
    OVERLAP,
    UNAVAILABLE,
    AvailabilityResolver,
    ranges_overlap,
)

EQUIPMENT_ID = uuid.uuid4()


def _booking(start: date, end: date, status: str = "approved", equipment_id=EQUIPMENT_ID) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid.uuid4(), equipment_id=equipment_id, start_date=start, end_date=end, status=status
    )


def _types(conflicts) -> set[str]:
    return {c.type for c in conflicts}


class TestCheckConflicts:
    def test_free_range_has_no_conflicts(self):
        conflicts = AvailabilityResolver().check_conflicts(EQUIPMENT_ID, date(2024, 6, 15), date(2024, 6, 20), [])
        assert conflicts == []

    def test_overlapping_booking(self):
        existing = [_booking(date(2024, 6, 10), date(2024, 6, 15))]
        conflicts = AvailabilityResolver().check_conflicts(
            EQUIPMENT_ID, date(2024, 6, 13), date(2024, 6, 17), existing
        )
        assert _types(conflicts) == {OVERLAP}
        assert conflicts[0].conflicting_dates == (date(2024, 6, 10),)

    def test_one_overlap_per_intersecting_booking(self):
        existing = [
            _booking(date(2024, 6, 16), date(2024, 6, 18)),
            _booking(date(2024, 6, 10), date(2024, 6, 14), status="active"),
        ]
        conflicts = AvailabilityResolver().check_conflicts(
            EQUIPMENT_ID, date(2024, 6, 12), date(2024, 6, 17), existing
        )
        assert [c.type for c in conflicts] == [OVERLAP, OVERLAP]
        assert [c.conflicting_dates for c in conflicts] == [(date(2024, 6, 10),), (date(2024, 6, 16),)]

    def test_long_range_reports_every_conflict(self):
        existing = [_booking(date(2024, 6, 10), date(2024, 6, 15))]
        conflicts = AvailabilityResolver().check_conflicts(
            EQUIPMENT_ID, date(2024, 6, 1), date(2024, 7, 15), existing
        )
        assert {MAXIMUM_DAYS, OVERLAP} <= _types(conflicts)

    def test_back_to_back_ranges_do_not_conflict(self):
        existing = [_booking(date(2024, 6, 10), date(2024, 6, 15))]
        resolver = AvailabilityResolver()
        assert resolver.check_conflicts(EQUIPMENT_ID, date(2024, 6, 15), date(2024, 6, 18), existing) == []
        assert resolver.check_conflicts(EQUIPMENT_ID, date(2024, 6, 7), date(2024, 6, 10), existing) == []

    def test_same_day_request_is_below_minimum(self):
        conflicts = AvailabilityResolver().check_conflicts(EQUIPMENT_ID, date(2024, 6, 15), date(2024, 6, 15), [])
        assert _types(conflicts) == {MINIMUM_DAYS}

    def test_thirty_days_is_allowed(self):
        conflicts = AvailabilityResolver().check_conflicts(EQUIPMENT_ID, date(2024, 6, 1), date(2024, 7, 1), [])
        assert conflicts == []

    def test_non_blocking_statuses_are_ignored(self):
        existing = [
            _booking(date(2024, 6, 10), date(2024, 6, 20), status="cancelled"),
            _booking(date(2024, 6, 10), date(2024, 6, 20), status="declined"),
            _booking(date(2024, 6, 10), date(2024, 6, 20), status="completed"),
        ]
        conflicts = AvailabilityResolver().check_conflicts(
            EQUIPMENT_ID, date(2024, 6, 12), date(2024, 6, 14), existing
        )
        assert conflicts == []

    def test_pending_booking_blocks(self):
        existing = [_booking(date(2024, 6, 10), date(2024, 6, 20), status="pending")]
        conflicts = AvailabilityResolver().check_conflicts(
            EQUIPMENT_ID, date(2024, 6, 12), date(2024, 6, 14), existing
        )
        assert _types(conflicts) == {OVERLAP}

    def test_other_equipment_is_ignored(self):
        existing = [_booking(date(2024, 6, 10), date(2024, 6, 20), equipment_id=uuid.uuid4())]
        conflicts = AvailabilityResolver().check_conflicts(
            EQUIPMENT_ID, date(2024, 6, 12), date(2024, 6, 14), existing
        )
        assert conflicts == []

    def test_excluded_booking_is_ignored(self):
        booking = _booking(date(2024, 6, 10), date(2024, 6, 20), status="pending")
        conflicts = AvailabilityResolver().check_conflicts(
            EQUIPMENT_ID, booking.start_date, booking.end_date, [booking], exclude_booking_id=booking.id
        )
        assert conflicts == []

    def test_blocked_dates_inside_range(self):
        overrides = [
            SimpleNamespace(date=date(2024, 6, 16), is_available=False, custom_rate=None),
            SimpleNamespace(date=date(2024, 6, 20), is_available=False, custom_rate=None),
        ]
        conflicts = AvailabilityResolver().check_conflicts(
            EQUIPMENT_ID, date(2024, 6, 15), date(2024, 6, 20), [], overrides
        )
        assert _types(conflicts) == {UNAVAILABLE}
        assert conflicts[0].conflicting_dates == (date(2024, 6, 16),)


class TestRangesOverlap:
    def test_symmetric(self):
        a = (date(2024, 6, 10), date(2024, 6, 15))
        b = (date(2024, 6, 13), date(2024, 6, 17))
        assert ranges_overlap(*a, *b) == ranges_overlap(*b, *a) is True

    def test_touching_is_not_overlap(self):
        assert not ranges_overlap(date(2024, 6, 10), date(2024, 6, 15), date(2024, 6, 15), date(2024, 6, 16))

    def test_contained(self):
        assert ranges_overlap(date(2024, 6, 10), date(2024, 6, 20), date(2024, 6, 12), date(2024, 6, 13))
