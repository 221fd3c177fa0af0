"""
SmartPark Reservation System - Parking Router
Consultation publique des sites, des places et des tarifs.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from typing import List, Optional
from datetime import datetime
import logging

from database.ledger import ReservationLedger, StorageError, get_ledger
from models.parking import (
    AvailableSpotsResponse,
    LocationDetailResponse,
    LocationSummary,
    SpotStatus,
    ZoneType,
)
from models.payment import PriceQuote
from models.reservation import ErrorKind, Rejected, TimeRange
from routers.responses import rejection_response, storage_unavailable
from services.reservation_service import ReservationAllocator, get_reservation_allocator

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/parking",
    tags=["Parking"],
)


def _invalid(detail: str):
    return rejection_response(Rejected(error_kind=ErrorKind.INVALID_REQUEST, detail=detail))


def _parse_window(start_time: Optional[datetime], end_time: Optional[datetime]):
    """Plage horaire optionnelle; les deux bornes vont ensemble."""
    if start_time is None and end_time is None:
        return None
    if start_time is None or end_time is None:
        raise ValueError("startTime and endTime must be given together")
    try:
        return TimeRange(start=start_time, end=end_time)
    except ValidationError:
        raise ValueError("endTime must be after startTime")


@router.get(
    "/locations",
    response_model=List[LocationSummary],
    summary="Sites de Parking",
    description="Liste les sites avec le nombre de places disponibles."
)
async def list_locations(ledger: ReservationLedger = Depends(get_ledger)):
    """
    Obtenir tous les sites de parking.

    Chaque site indique son nombre total de places et le nombre de places
    actuellement disponibles.
    """
    try:
        summaries = []
        for location in await ledger.list_locations():
            spots = await ledger.list_spots(location.location_id)
            summaries.append(LocationSummary(
                **location.model_dump(),
                total_spots=len(spots),
                available_spots=sum(1 for s in spots if s.status == SpotStatus.AVAILABLE),
            ))
        return summaries

    except StorageError as e:
        logger.error(f"Erreur récupération des sites: {e}")
        return storage_unavailable("Erreur récupération des sites")


@router.get(
    "/locations/{location_id}",
    response_model=LocationDetailResponse,
    summary="Détails d'un Site",
    description="Retourne un site et toutes ses places."
)
async def get_location(location_id: int, ledger: ReservationLedger = Depends(get_ledger)):
    """
    Obtenir les détails d'un site de parking.

    Args:
        location_id: ID du site

    Returns:
        Le site et la liste de ses places triées par numéro
    """
    try:
        location = await ledger.get_location(location_id)
        if location is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Site {location_id} introuvable"
            )
        spots = await ledger.list_spots(location_id)

    except StorageError as e:
        logger.error(f"Erreur récupération site {location_id}: {e}")
        return storage_unavailable("Erreur récupération du site")

    return LocationDetailResponse(
        location=LocationSummary(
            **location.model_dump(),
            total_spots=len(spots),
            available_spots=sum(1 for s in spots if s.status == SpotStatus.AVAILABLE),
        ),
        spots=spots,
    )


@router.get(
    "/locations/{location_id}/available-spots",
    response_model=AvailableSpotsResponse,
    summary="Places Disponibles",
    description="Places libres d'un site, pour une plage horaire et une zone optionnelles."
)
async def get_available_spots(
    location_id: int,
    start_time: Optional[datetime] = Query(default=None, alias="startTime"),
    end_time: Optional[datetime] = Query(default=None, alias="endTime"),
    zone: Optional[str] = Query(default=None),
    ledger: ReservationLedger = Depends(get_ledger),
    allocator: ReservationAllocator = Depends(get_reservation_allocator)
):
    """
    Obtenir les places libres d'un site.

    Sans plage horaire: places dont l'état actuel est 'available'.
    Avec plage horaire: places sans réservation en cours sur cette plage.
    Lecture sans verrou; la réservation revérifie sous transaction.
    """
    try:
        window = _parse_window(start_time, end_time)
        zone_type = ZoneType(zone) if zone else None
    except ValueError as e:
        return _invalid(str(e))

    try:
        if await ledger.get_location(location_id) is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Site {location_id} introuvable"
            )
        spots = await allocator.index.list_free_spots(ledger, location_id, window, zone_type)

    except StorageError as e:
        logger.error(f"Erreur récupération places disponibles: {e}")
        return storage_unavailable("Erreur récupération places disponibles")

    return AvailableSpotsResponse(
        location_id=location_id,
        start_time=window.start if window else None,
        end_time=window.end if window else None,
        zone=zone_type,
        count=len(spots),
        available_spots=spots,
    )


@router.get(
    "/pricing/quote",
    response_model=PriceQuote,
    summary="Devis",
    description="Prix d'une place pour une plage horaire (heures entamées x tarif)."
)
async def get_price_quote(
    spot_id: int = Query(..., alias="spotId"),
    start_time: datetime = Query(..., alias="startTime"),
    end_time: datetime = Query(..., alias="endTime"),
    allocator: ReservationAllocator = Depends(get_reservation_allocator)
):
    """Devis sans vérification de disponibilité."""
    try:
        window = _parse_window(start_time, end_time)
    except ValueError as e:
        return _invalid(str(e))

    quote = await allocator.quote(spot_id, window)
    if isinstance(quote, Rejected):
        return rejection_response(quote)
    return quote
