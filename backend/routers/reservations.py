"""
SmartPark Reservation System - Reservations Router
Création, consultation et annulation des réservations.
"""

from fastapi import APIRouter, Body, Depends, Header, status
from fastapi.responses import JSONResponse
from typing import Optional
import asyncio
import logging

from config import Settings, get_settings
from models.reservation import (
    AllocationRequest,
    CancelRequest,
    ErrorKind,
    Rejected,
    Reservation,
    ReservationCreatedResponse,
)
from models.payment import MyReservationsResponse
from models.user import UserProfile
from routers.responses import rejection_response
from security.firebase_auth import get_current_user
from services.reservation_service import ReservationAllocator, get_reservation_allocator

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/reservations",
    tags=["Reservations"],
    responses={401: {"description": "Non autorisé"}}
)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ReservationCreatedResponse,
    summary="Réserver une Place",
    description="Réserve une place précise ou la première place libre d'une zone."
)
async def create_reservation(
    request: AllocationRequest,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key", max_length=128),
    user: UserProfile = Depends(get_current_user),
    allocator: ReservationAllocator = Depends(get_reservation_allocator),
    settings: Settings = Depends(get_settings)
):
    """
    Créer une réservation en attente de paiement.

    - spotId: place précise (prioritaire)
    - zone: première place libre de la zone, par numéro de place
    - Idempotency-Key: rejouer la même requête renvoie la même réservation

    Une réponse AllocationFailed n'est relancée automatiquement que si la
    requête porte une clé d'idempotence.
    """
    outcome = await allocator.allocate(request, user, idempotency_key)

    if idempotency_key:
        attempt = 0
        while (
            isinstance(outcome, Rejected)
            and outcome.error_kind == ErrorKind.ALLOCATION_FAILED
            and attempt < settings.allocation_max_retries
        ):
            delay = settings.allocation_retry_backoff_seconds * (2 ** attempt)
            attempt += 1
            logger.info(f"Nouvel essai {attempt} pour la clé {idempotency_key} dans {delay}s")
            await asyncio.sleep(delay)
            outcome = await allocator.allocate(request, user, idempotency_key)

    if isinstance(outcome, Rejected):
        return rejection_response(outcome)

    body = ReservationCreatedResponse.from_reservation(outcome.reservation)
    if outcome.replayed:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=body.model_dump(mode="json", by_alias=True)
        )
    return body


@router.get(
    "/my",
    response_model=MyReservationsResponse,
    summary="Mes Réservations",
    description="Réservations de l'utilisateur connecté, les plus récentes d'abord, avec l'état du paiement."
)
async def get_my_reservations(
    user: UserProfile = Depends(get_current_user),
    allocator: ReservationAllocator = Depends(get_reservation_allocator)
):
    result = await allocator.list_my_reservations(user)
    if isinstance(result, Rejected):
        return rejection_response(result)
    return MyReservationsResponse(count=len(result), reservations=result)


@router.get(
    "/{reservation_id}",
    response_model=Reservation,
    summary="Détails d'une Réservation",
    description="Visible par son propriétaire et par les administrateurs."
)
async def get_reservation(
    reservation_id: str,
    user: UserProfile = Depends(get_current_user),
    allocator: ReservationAllocator = Depends(get_reservation_allocator)
):
    result = await allocator.get_reservation(reservation_id, user)
    if isinstance(result, Rejected):
        return rejection_response(result)
    return result


@router.put(
    "/{reservation_id}/cancel",
    response_model=Reservation,
    summary="Annuler une Réservation",
    description="Annule une réservation en attente ou active et libère la place."
)
async def cancel_reservation(
    reservation_id: str,
    payload: Optional[CancelRequest] = Body(default=None),
    user: UserProfile = Depends(get_current_user),
    allocator: ReservationAllocator = Depends(get_reservation_allocator)
):
    """
    Annuler une réservation.

    Une réservation déjà annulée ou terminée renvoie AlreadyTerminal (409)
    sans aucune modification.
    """
    reason = payload.reason if payload else None
    result = await allocator.cancel(reservation_id, user, reason)
    if isinstance(result, Rejected):
        return rejection_response(result)
    return result
