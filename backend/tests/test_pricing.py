"""
SmartPark Reservation System - Pricing Tests
Tests for reservation cost computation.

Run: pytest tests/test_pricing.py -v
"""

import pytest
from datetime import datetime, timedelta, timezone

from models.parking import ParkingSpot, ZoneType
from models.reservation import TimeRange
from services.pricing import DEFAULT_ZONE_RATES, PricingEngine

START = datetime(2031, 3, 1, 14, tzinfo=timezone.utc)


def lasting(minutes: int) -> TimeRange:
    return TimeRange(start=START, end=START + timedelta(minutes=minutes))


class TestPrice:
    """Tests for PricingEngine.price."""

    def test_partial_hour_rounds_up(self):
        """
        Test: 1h30m at 10000/hour
        Expected: 20000 (two started hours), not 15000
        """
        assert PricingEngine().price(10000, lasting(90)) == 20000

    def test_exact_hours(self):
        """
        Test: 2h at 8000/hour
        Expected: 16000
        """
        assert PricingEngine().price(8000, lasting(120)) == 16000

    def test_one_minute_is_one_hour(self):
        """
        Test: 1 minute at 25000/hour
        Expected: 25000
        """
        assert PricingEngine().price(25000, lasting(1)) == 25000

    def test_free_spot(self):
        """
        Test: Rate 0
        Expected: Cost 0
        """
        assert PricingEngine().price(0, lasting(180)) == 0

    def test_negative_rate_rejected(self):
        """
        Test: Negative rate
        Expected: ValueError
        """
        with pytest.raises(ValueError):
            PricingEngine().price(-1, lasting(60))


class TestQuote:
    """Tests for price previews."""

    def test_quote_fields(self):
        """
        Test: Quote for a VIP spot over 2h30m
        Expected: 3 billable hours, readable duration, configured currency
        """
        spot = ParkingSpot(
            spot_id=1,
            location_id=1,
            spot_number="A-01",
            zone=ZoneType.VIP,
            hourly_rate=DEFAULT_ZONE_RATES[ZoneType.VIP],
        )

        quote = PricingEngine("IDR").quote(spot, lasting(150))

        assert quote.billable_hours == 3
        assert quote.total_cost == 75000
        assert quote.duration_label == "2 hours 30 minutes"
        assert quote.currency == "IDR"
