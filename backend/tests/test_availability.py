"""
SmartPark Reservation System - Availability Index Tests
Tests for spot resolution and free-spot listings.

Run: pytest tests/test_availability.py -v
"""

import asyncio
from datetime import datetime, timezone

from models.parking import ZoneType
from models.reservation import AllocationRequest, BySpot, ByZone, TimeRange
from services.availability import AvailabilityIndex, MissReason


def at(hour: int) -> datetime:
    return datetime(2031, 3, 1, hour, tzinfo=timezone.utc)


WINDOW = TimeRange(start=at(10), end=at(12))


class TestFindAvailable:
    """Tests for AvailabilityIndex.find_available."""

    def test_free_spot(self, make_allocator):
        """
        Test: Explicit free spot
        Expected: Found
        """
        ledger = make_allocator().ledger

        result = asyncio.run(AvailabilityIndex().find_available(ledger, 1, BySpot(spot_id=1), WINDOW))

        assert result.found
        assert result.spot.spot_id == 1

    def test_missing_spot(self, make_allocator):
        """
        Test: Explicit spot that does not exist
        Expected: NOT_FOUND
        """
        ledger = make_allocator().ledger

        result = asyncio.run(AvailabilityIndex().find_available(ledger, 1, BySpot(spot_id=42), WINDOW))

        assert not result.found
        assert result.reason == MissReason.NOT_FOUND

    def test_zone_order_is_natural(self, make_allocator, user):
        """
        Test: Zone with 12 spots, A-01..A-09 held
        Expected: A-10 is next (natural order, not A-1x string order)
        """
        allocator = make_allocator([(ZoneType.REGULAR, 12)])
        index = AvailabilityIndex()

        async def scenario():
            for spot_id in range(1, 10):
                await allocator.allocate(AllocationRequest(
                    location_id=1, spot_id=spot_id, vehicle_id=1,
                    start_time=at(10), end_time=at(12)
                ), user)
            return await index.find_available(
                allocator.ledger, 1, ByZone(zone=ZoneType.REGULAR), WINDOW
            )

        result = asyncio.run(scenario())

        assert result.spot.spot_number == "A-10"


class TestListFreeSpots:
    """Tests for AvailabilityIndex.list_free_spots."""

    def test_window_excludes_overlapping_only(self, make_allocator, user):
        """
        Test: A-01 booked [10,12); list for [10,12) and for [12,13)
        Expected: A-01 missing from the first list, present in the second
        """
        allocator = make_allocator([(ZoneType.REGULAR, 3)])
        index = AvailabilityIndex()

        async def scenario():
            await allocator.allocate(AllocationRequest(
                location_id=1, spot_id=1, vehicle_id=1,
                start_time=at(10), end_time=at(12)
            ), user)
            during = await index.list_free_spots(allocator.ledger, 1, WINDOW)
            after = await index.list_free_spots(
                allocator.ledger, 1, TimeRange(start=at(12), end=at(13))
            )
            return during, after

        during, after = asyncio.run(scenario())

        assert [s.spot_number for s in during] == ["A-02", "A-03"]
        assert [s.spot_number for s in after] == ["A-01", "A-02", "A-03"]

    def test_no_window_uses_current_status(self, make_allocator, user):
        """
        Test: A-01 reserved, list without window
        Expected: Only spots whose status is available
        """
        allocator = make_allocator([(ZoneType.REGULAR, 2)])
        index = AvailabilityIndex()

        async def scenario():
            await allocator.allocate(AllocationRequest(
                location_id=1, spot_id=1, vehicle_id=1,
                start_time=at(10), end_time=at(12)
            ), user)
            return await index.list_free_spots(allocator.ledger, 1)

        free = asyncio.run(scenario())

        assert [s.spot_number for s in free] == ["A-02"]

    def test_zone_filter(self, make_allocator):
        """
        Test: Two zones, filter on the second
        Expected: Only its spots
        """
        allocator = make_allocator([(ZoneType.REGULAR, 2), (ZoneType.VIP, 2)])

        free = asyncio.run(AvailabilityIndex().list_free_spots(
            allocator.ledger, 1, WINDOW, ZoneType.VIP
        ))

        assert [s.spot_number for s in free] == ["B-01", "B-02"]
