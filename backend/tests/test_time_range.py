"""
SmartPark Reservation System - Time Range Tests
Tests for the half-open interval used by every overlap check.

Run: pytest tests/test_time_range.py -v
"""

import pytest
from datetime import datetime, timedelta, timezone

from models.reservation import Reservation, ReservationStatus, TimeRange
from models.parking import ZoneType


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2031, 3, 1, hour, minute, tzinfo=timezone.utc)


def tr(start_hour: int, end_hour: int) -> TimeRange:
    return TimeRange(start=at(start_hour), end=at(end_hour))


class TestOverlap:
    """Tests for the canonical overlap predicate."""

    @pytest.mark.parametrize("a, b, expected", [
        ((10, 12), (11, 13), True),    # partial overlap
        ((10, 11), (11, 12), False),   # touching boundaries
        ((11, 12), (10, 11), False),   # touching, reversed
        ((10, 14), (11, 12), True),    # nested
        ((11, 12), (10, 14), True),    # nesting
        ((10, 12), (10, 12), True),    # identical
        ((10, 11), (12, 13), False),   # disjoint
        ((10, 12), (10, 11), True),    # same start
        ((10, 12), (11, 12), True),    # same end
    ])
    def test_overlap_table(self, a, b, expected):
        """
        Test: overlaps() over edge cases
        Expected: Matches the half-open interval semantics, symmetrically
        """
        first, second = tr(*a), tr(*b)

        assert first.overlaps(second) is expected
        assert second.overlaps(first) is expected


class TestConstruction:
    """Tests for TimeRange construction rules."""

    def test_end_before_start_rejected(self):
        """
        Test: end earlier than start
        Expected: ValueError
        """
        with pytest.raises(ValueError):
            TimeRange(start=at(12), end=at(10))

    def test_empty_range_rejected(self):
        """
        Test: end equal to start
        Expected: ValueError
        """
        with pytest.raises(ValueError):
            TimeRange(start=at(10), end=at(10))

    def test_naive_datetimes_are_utc(self):
        """
        Test: Naive datetimes
        Expected: Interpreted as UTC
        """
        time_range = TimeRange(start=datetime(2031, 3, 1, 10), end=datetime(2031, 3, 1, 11))

        assert time_range.start == at(10)
        assert time_range.start.tzinfo is not None

    def test_offsets_are_normalized(self):
        """
        Test: Datetime with a +07:00 offset
        Expected: Same instant, expressed in UTC
        """
        jakarta = timezone(timedelta(hours=7))
        time_range = TimeRange(
            start=datetime(2031, 3, 1, 17, tzinfo=jakarta),
            end=datetime(2031, 3, 1, 18, tzinfo=jakarta)
        )

        assert time_range.start == at(10)
        assert time_range.start.utcoffset() == timedelta(0)


class TestContainsAndHours:
    """Tests for contains(), instant() and billable hours."""

    def test_contains_is_half_open(self):
        """
        Test: contains() at both bounds
        Expected: Start included, end excluded
        """
        time_range = tr(10, 12)

        assert time_range.contains(at(10))
        assert time_range.contains(at(11, 59))
        assert not time_range.contains(at(12))

    def test_instant_overlaps_only_its_range(self):
        """
        Test: instant() range against a booking ending at that moment
        Expected: No overlap at the end bound, overlap at the start bound
        """
        booking = tr(10, 12)

        assert not TimeRange.instant(at(12)).overlaps(booking)
        assert TimeRange.instant(at(10)).overlaps(booking)

    @pytest.mark.parametrize("minutes, hours", [(1, 1), (60, 1), (61, 2), (90, 2), (120, 2)])
    def test_billable_hours_round_up(self, minutes, hours):
        """
        Test: billable_hours for various durations
        Expected: Started hours count as full hours
        """
        time_range = TimeRange(start=at(10), end=at(10) + timedelta(minutes=minutes))

        assert time_range.billable_hours == hours


class TestReservationBlocks:
    """Tests for which reservations hold their spot."""

    def _reservation(self, status: ReservationStatus) -> Reservation:
        return Reservation(
            reservation_id="RES-TEST",
            user_id="user-123",
            location_id=1,
            spot_id=1,
            spot_number="A-01",
            zone=ZoneType.REGULAR,
            vehicle_id=1,
            start_time=at(10),
            end_time=at(12),
            status=status,
            total_cost=16000,
            created_at=at(9),
            updated_at=at(9),
        )

    @pytest.mark.parametrize("status, blocking", [
        (ReservationStatus.PENDING, True),
        (ReservationStatus.ACTIVE, True),
        (ReservationStatus.COMPLETED, False),
        (ReservationStatus.CANCELLED, False),
    ])
    def test_only_pending_and_active_block(self, status, blocking):
        """
        Test: blocks() for each status over an overlapping range
        Expected: Only pending and active reservations block
        """
        assert self._reservation(status).blocks(tr(11, 13)) is blocking
