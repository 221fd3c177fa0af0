"""
SmartPark Reservation System - Parking Models
Defines all data models related to parking locations and spots.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime
from enum import Enum


class ZoneType(str, Enum):
    """Zone classification of a parking spot (pricing/feature tier)."""
    VIP = "VIP Royal Zone"
    ENTERTAINMENT = "Entertainment District"
    SHOPPING = "Shopping Paradise"
    DINING = "Culinary Heaven"
    ELECTRIC = "Electric Vehicle Station"
    REGULAR = "Regular Parking"

    @classmethod
    def _missing_(cls, value):
        # Mobile client sends short keys ("vip", "regular"), admin tools the bare names
        if isinstance(value, str):
            key = value.strip().lower()
            for member in cls:
                if key in (member.name.lower(), member.value.lower()):
                    return member
        return None


class SpotStatus(str, Enum):
    """Enumeration of possible parking spot states."""
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"

    @property
    def is_allocatable(self) -> bool:
        """Spots under maintenance never receive new reservations."""
        return self is not SpotStatus.MAINTENANCE


class ParkingLocation(BaseModel):
    """A parking site (mall, building) owning a set of spots."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    location_id: int = Field(..., gt=0, description="Unique location identifier")
    name: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    image_url: Optional[str] = None
    status: str = Field(default="active", description="active or inactive")


class ParkingSpot(BaseModel):
    """A single parking space, the unit of allocation."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    spot_id: int = Field(..., gt=0, description="Unique identifier for the parking spot")
    location_id: int = Field(..., gt=0, description="Owning location")
    spot_number: str = Field(
        ...,
        min_length=1,
        max_length=10,
        description="Human-readable spot identifier (e.g., A-01, C-12)"
    )
    zone: ZoneType = Field(default=ZoneType.REGULAR)
    hourly_rate: float = Field(..., ge=0, description="Price per started hour")
    status: SpotStatus = Field(default=SpotStatus.AVAILABLE)
    updated_at: Optional[datetime] = None


class LocationSummary(ParkingLocation):
    """Location with spot counters, as listed to mobile clients."""
    total_spots: int = 0
    available_spots: int = 0


class LocationDetailResponse(BaseModel):
    """Location details with all of its spots."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    location: LocationSummary
    spots: List[ParkingSpot]


class AvailableSpotsResponse(BaseModel):
    """Spots free for an optional time window."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    location_id: int
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    zone: Optional[ZoneType] = None
    count: int
    available_spots: List[ParkingSpot]


class MaintenanceRequest(BaseModel):
    """Operator request to put a spot in or out of maintenance."""
    enabled: bool = Field(..., description="True to start maintenance, False to end it")
