"""
SmartPark Reservation System - Pricing Engine
Pure pricing of a spot for a time range: started hours times the hourly rate.
"""

from typing import Dict

from models.parking import ParkingSpot, ZoneType
from models.payment import PriceQuote
from models.reservation import TimeRange
from utils.helpers import format_duration

# Default hourly rates per zone, used when seeding the catalog
DEFAULT_ZONE_RATES: Dict[ZoneType, float] = {
    ZoneType.VIP: 25000.0,
    ZoneType.ENTERTAINMENT: 15000.0,
    ZoneType.SHOPPING: 12000.0,
    ZoneType.DINING: 10000.0,
    ZoneType.ELECTRIC: 20000.0,
    ZoneType.REGULAR: 8000.0,
}


class PricingEngine:
    """Computes reservation cost. No I/O, no side effects."""

    def __init__(self, currency: str = "IDR"):
        self.currency = currency

    def price(self, rate: float, time_range: TimeRange) -> float:
        """
        Price a reservation.

        Args:
            rate: Hourly rate of the spot
            time_range: Reserved interval (always positive by construction)

        Returns:
            float: ``ceil(hours) * rate``
        """
        if rate < 0:
            raise ValueError("rate must not be negative")
        return round(time_range.billable_hours * rate, 2)

    def quote(self, spot: ParkingSpot, time_range: TimeRange) -> PriceQuote:
        """Price preview for a spot, shown before booking."""
        minutes = int(time_range.duration.total_seconds() // 60)
        return PriceQuote(
            spot_id=spot.spot_id,
            zone=spot.zone,
            hourly_rate=spot.hourly_rate,
            billable_hours=time_range.billable_hours,
            duration_label=format_duration(minutes),
            total_cost=self.price(spot.hourly_rate, time_range),
            currency=self.currency,
        )
