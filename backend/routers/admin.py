"""
SmartPark Reservation System - Admin Router
Handles administrative operations on reservations and spots.
"""

from fastapi import APIRouter, Body, Depends, Query
from typing import Optional
import logging

from database.ledger import ReservationLedger, StorageError, get_ledger
from models.parking import MaintenanceRequest, ParkingSpot, SpotStatus
from models.reservation import (
    CancelRequest,
    ErrorKind,
    Rejected,
    Reservation,
    ReservationListResponse,
    ReservationStatus,
)
from models.user import UserProfile
from routers.responses import rejection_response, storage_unavailable
from security.firebase_auth import get_current_admin
from services.reservation_service import ReservationAllocator, get_reservation_allocator

# Configure logging
logger = logging.getLogger(__name__)

# Upper bound on reservations scanned for the dashboard counters
STATS_SCAN_LIMIT = 1000

# Create router
router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden - Admin access required"}
    }
)


@router.get(
    "/reservations",
    response_model=ReservationListResponse,
    summary="List Reservations (Admin)",
    description="Returns reservations, newest first, optionally filtered by status."
)
async def list_reservations(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    admin: UserProfile = Depends(get_current_admin),
    allocator: ReservationAllocator = Depends(get_reservation_allocator)
):
    """
    Get reservations across all users.

    Requires admin authentication.
    """
    try:
        reservation_status = ReservationStatus(status_filter) if status_filter else None
    except ValueError:
        return rejection_response(Rejected(
            error_kind=ErrorKind.INVALID_REQUEST,
            detail=f"Unknown reservation status: {status_filter}"
        ))

    try:
        reservations = await allocator.list_reservations(reservation_status, limit)
    except StorageError as e:
        logger.error(f"Admin error fetching reservations: {e}")
        return storage_unavailable("Error fetching reservations")

    return ReservationListResponse(count=len(reservations), reservations=reservations)


@router.post(
    "/reservations/{reservation_id}/cancel",
    response_model=Reservation,
    summary="Cancel Reservation (Admin)",
    description="Cancels any pending or active reservation and releases its spot."
)
async def admin_cancel_reservation(
    reservation_id: str,
    payload: Optional[CancelRequest] = Body(default=None),
    admin: UserProfile = Depends(get_current_admin),
    allocator: ReservationAllocator = Depends(get_reservation_allocator)
):
    reason = payload.reason if payload else "Cancelled by administrator"
    result = await allocator.cancel(reservation_id, admin, reason)
    if isinstance(result, Rejected):
        return rejection_response(result)

    logger.info(f"Admin {admin.uid} cancelled reservation {reservation_id}")
    return result


@router.put(
    "/spots/{spot_id}/maintenance",
    response_model=ParkingSpot,
    summary="Toggle Spot Maintenance (Admin)",
    description="Puts a spot under maintenance or returns it to service."
)
async def set_spot_maintenance(
    spot_id: int,
    request: MaintenanceRequest,
    admin: UserProfile = Depends(get_current_admin),
    allocator: ReservationAllocator = Depends(get_reservation_allocator)
):
    """
    Toggle maintenance on a spot.

    A spot under maintenance receives no new reservation. Existing
    reservations on it are left untouched.
    """
    result = await allocator.set_maintenance(spot_id, request.enabled)
    if isinstance(result, Rejected):
        return rejection_response(result)

    logger.info(f"Admin {admin.uid} set maintenance={request.enabled} on spot {spot_id}")
    return result


@router.get(
    "/stats",
    summary="Dashboard Statistics (Admin)",
    description="Spot occupancy and reservation counters."
)
async def get_stats(
    admin: UserProfile = Depends(get_current_admin),
    ledger: ReservationLedger = Depends(get_ledger)
):
    """
    Dashboard counters.

    Occupancy is the share of spots currently reserved or occupied.
    """
    try:
        locations = await ledger.list_locations()
        spots = []
        for location in locations:
            spots.extend(await ledger.list_spots(location.location_id))

        reservations = {}
        for reservation_status in (ReservationStatus.PENDING, ReservationStatus.ACTIVE):
            found = await ledger.list_reservations(reservation_status, STATS_SCAN_LIMIT)
            reservations[reservation_status.value] = len(found)

    except StorageError as e:
        logger.error(f"Admin error computing stats: {e}")
        return storage_unavailable("Error computing statistics")

    by_status = {s.value: 0 for s in SpotStatus}
    for spot in spots:
        by_status[spot.status.value] += 1

    total = len(spots)
    in_use = by_status[SpotStatus.RESERVED.value] + by_status[SpotStatus.OCCUPIED.value]

    return {
        "totalLocations": len(locations),
        "activeLocations": sum(1 for loc in locations if loc.status == "active"),
        "totalSpots": total,
        "spots": by_status,
        "occupancyRate": round(in_use / total * 100, 1) if total else 0.0,
        "pendingReservations": reservations[ReservationStatus.PENDING.value],
        "activeReservations": reservations[ReservationStatus.ACTIVE.value],
    }
