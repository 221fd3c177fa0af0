"""
SmartPark Reservation System - Models Package
Contient tous les modèles Pydantic pour l'application.
"""

from models.parking import (
    ZoneType,
    SpotStatus,
    ParkingLocation,
    ParkingSpot,
    LocationSummary,
    LocationDetailResponse,
    AvailableSpotsResponse,
    MaintenanceRequest,
)
from models.reservation import (
    TimeRange,
    ReservationStatus,
    Reservation,
    BySpot,
    ByZone,
    AllocationTarget,
    AllocationRequest,
    AllocationState,
    ErrorKind,
    Rejected,
    Committed,
    ErrorResponse,
    ReservationCreatedResponse,
    ReservationListResponse,
    CancelRequest,
)
from models.user import (
    UserProfile,
    UserRole,
)
from models.payment import (
    PaymentRecord,
    PaymentStatus,
    PaymentMethod,
    PaymentConfirmRequest,
    PaymentHistoryResponse,
    ReservationWithPayment,
    MyReservationsResponse,
    PriceQuote,
)

__all__ = [
    # Parking Models
    "ZoneType",
    "SpotStatus",
    "ParkingLocation",
    "ParkingSpot",
    "LocationSummary",
    "LocationDetailResponse",
    "AvailableSpotsResponse",
    "MaintenanceRequest",
    # Reservation Models
    "TimeRange",
    "ReservationStatus",
    "Reservation",
    "BySpot",
    "ByZone",
    "AllocationTarget",
    "AllocationRequest",
    "AllocationState",
    "ErrorKind",
    "Rejected",
    "Committed",
    "ErrorResponse",
    "ReservationCreatedResponse",
    "ReservationListResponse",
    "CancelRequest",
    # User Models
    "UserProfile",
    "UserRole",
    # Payment Models
    "PaymentRecord",
    "PaymentStatus",
    "PaymentMethod",
    "PaymentConfirmRequest",
    "PaymentHistoryResponse",
    "ReservationWithPayment",
    "MyReservationsResponse",
    "PriceQuote",
]
