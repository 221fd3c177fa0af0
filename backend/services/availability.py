"""
SmartPark Reservation System - Availability Index
Answers "is spot X free during [start, end)?" and "which spot of zone Z is free?".

Reads go through a CatalogView. During an allocation that view is the
ledger transaction, so the answer and the write that follows it are atomic.
"""

from pydantic import BaseModel
from typing import List, Optional
from enum import Enum
import logging

from database.ledger import CatalogView
from models.parking import ParkingSpot, SpotStatus, ZoneType
from models.reservation import AllocationTarget, BySpot, TimeRange

# Configure logging
logger = logging.getLogger(__name__)


class MissReason(str, Enum):
    """Why no spot could be resolved."""
    NOT_FOUND = "not_found"
    WRONG_LOCATION = "wrong_location"
    UNAVAILABLE = "unavailable"
    CONFLICT = "conflict"
    ZONE_EXHAUSTED = "zone_exhausted"


class Availability(BaseModel):
    """Resolved spot, or the reason there is none."""
    spot: Optional[ParkingSpot] = None
    reason: Optional[MissReason] = None

    @property
    def found(self) -> bool:
        return self.spot is not None


class AvailabilityIndex:
    """Spot resolution for explicit spots and zone fallback."""

    async def find_available(
        self,
        view: CatalogView,
        location_id: int,
        target: AllocationTarget,
        time_range: TimeRange
    ) -> Availability:
        """
        Resolve ``target`` to a concrete free spot of ``location_id``.

        Args:
            view: Ledger transaction (allocation) or ledger (browsing)
            location_id: Location the spot must belong to
            target: BySpot(spot_id) or ByZone(zone)
            time_range: Requested interval

        Returns:
            Availability: the spot, or a MissReason
        """
        if isinstance(target, BySpot):
            return await self._check_spot(view, location_id, target.spot_id, time_range)
        return await self._first_free_in_zone(view, location_id, target.zone, time_range)

    async def _check_spot(
        self,
        view: CatalogView,
        location_id: int,
        spot_id: int,
        time_range: TimeRange
    ) -> Availability:
        spot = await view.get_spot(spot_id)
        if spot is None:
            return Availability(reason=MissReason.NOT_FOUND)
        if spot.location_id != location_id:
            return Availability(reason=MissReason.WRONG_LOCATION)
        if not spot.status.is_allocatable:
            return Availability(reason=MissReason.UNAVAILABLE)

        blocking = await view.blocking_reservations([spot.spot_id], time_range)
        if blocking:
            logger.debug(
                f"Spot {spot_id} held by {[r.reservation_id for r in blocking]}"
            )
            return Availability(reason=MissReason.CONFLICT)
        return Availability(spot=spot)

    async def _first_free_in_zone(
        self,
        view: CatalogView,
        location_id: int,
        zone: ZoneType,
        time_range: TimeRange
    ) -> Availability:
        free = await self.list_free_spots(view, location_id, time_range, zone)
        if not free:
            return Availability(reason=MissReason.ZONE_EXHAUSTED)
        return Availability(spot=free[0])

    async def list_free_spots(
        self,
        view: CatalogView,
        location_id: int,
        time_range: Optional[TimeRange] = None,
        zone: Optional[ZoneType] = None
    ) -> List[ParkingSpot]:
        """
        Free spots of a location ordered by spot number.
        Without a time range this is simply the spots whose status is available.
        """
        spots = await view.list_spots(location_id, zone)
        if time_range is None:
            return [spot for spot in spots if spot.status == SpotStatus.AVAILABLE]

        spots = [spot for spot in spots if spot.status.is_allocatable]
        if not spots:
            return []

        blocking = await view.blocking_reservations(
            [spot.spot_id for spot in spots], time_range
        )
        taken = {reservation.spot_id for reservation in blocking}
        return [spot for spot in spots if spot.spot_id not in taken]
