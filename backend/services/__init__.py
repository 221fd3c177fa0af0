"""
SmartPark Reservation System - Services Package
Business logic and service layer.
"""

from services.availability import AvailabilityIndex, Availability, MissReason
from services.pricing import PricingEngine, DEFAULT_ZONE_RATES
from services.reservation_service import ReservationAllocator, get_reservation_allocator
from services.payment_service import PaymentService, get_payment_service

__all__ = [
    "AvailabilityIndex",
    "Availability",
    "MissReason",
    "PricingEngine",
    "DEFAULT_ZONE_RATES",
    "ReservationAllocator",
    "get_reservation_allocator",
    "PaymentService",
    "get_payment_service",
]
