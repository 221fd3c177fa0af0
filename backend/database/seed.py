"""
SmartPark Reservation System - Demo Catalog
Catalogue de démonstration chargé au démarrage quand SEED_DEMO_DATA est actif.
"""

from typing import List, Tuple

from models.parking import ParkingLocation, ParkingSpot, SpotStatus, ZoneType
from services.pricing import DEFAULT_ZONE_RATES
from utils.helpers import generate_spot_number

# (zone, nombre de places); la lettre du numéro suit l'ordre des zones
DEMO_ZONES: List[Tuple[ZoneType, int]] = [
    (ZoneType.VIP, 15),
    (ZoneType.ENTERTAINMENT, 25),
    (ZoneType.REGULAR, 25),
]


def build_demo_catalog() -> Tuple[List[ParkingLocation], List[ParkingSpot]]:
    """
    Un centre commercial avec trois zones.
    Les identifiants de places sont séquentiels: A-01 = 1, B-01 = 16, C-01 = 41.
    """
    location = ParkingLocation(
        location_id=1,
        name="Grand Mall Parking",
        address="Jl. Jend. Sudirman No. 1, Jakarta",
        latitude=-6.2088,
        longitude=106.8456,
    )

    spots: List[ParkingSpot] = []
    spot_id = 1
    for zone_index, (zone, count) in enumerate(DEMO_ZONES):
        for index in range(1, count + 1):
            spots.append(ParkingSpot(
                spot_id=spot_id,
                location_id=location.location_id,
                spot_number=generate_spot_number(zone_index, index),
                zone=zone,
                hourly_rate=DEFAULT_ZONE_RATES[zone],
                status=SpotStatus.AVAILABLE,
            ))
            spot_id += 1

    return [location], spots
