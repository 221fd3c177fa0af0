"""
SmartPark Reservation System - Routers Package
Contains all API route handlers.
"""

from routers.parking import router as parking_router
from routers.reservations import router as reservations_router
from routers.admin import router as admin_router
from routers.payment import router as payment_router

__all__ = [
    "parking_router",
    "reservations_router",
    "admin_router",
    "payment_router",
]
