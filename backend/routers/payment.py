"""
SmartPark Reservation System - Payment Router
Endpoints de confirmation de paiement (passerelle) et de consultation.
"""

from fastapi import APIRouter, Depends, status
import logging

from models.payment import PaymentConfirmRequest, PaymentHistoryResponse, PaymentRecord
from models.reservation import Rejected
from models.user import UserProfile
from routers.responses import rejection_response
from security.api_key import verify_gateway_api_key
from security.firebase_auth import get_current_user
from services.payment_service import PaymentService, get_payment_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/payments",
    tags=["Payment"],
    responses={401: {"description": "Non autorisé"}}
)


@router.post(
    "/confirm",
    status_code=status.HTTP_201_CREATED,
    response_model=PaymentRecord,
    summary="Confirmer un Paiement",
    description="Callback de la passerelle: enregistre le paiement et active la réservation."
)
async def confirm_payment(
    request: PaymentConfirmRequest,
    gateway: dict = Depends(verify_gateway_api_key),
    service: PaymentService = Depends(get_payment_service)
):
    """
    Confirme le paiement d'une réservation en attente.

    Headers requis:
    - X-Gateway-Key: Clé API de la passerelle

    Le montant doit être égal au coût de la réservation et une réservation
    ne peut être payée qu'une fois.
    """
    result = await service.confirm_payment(request)
    if isinstance(result, Rejected):
        return rejection_response(result)
    return result


@router.get(
    "/reservation/{reservation_id}",
    response_model=PaymentRecord,
    summary="Paiement d'une Réservation",
    description="Paiement associé à une réservation (propriétaire ou admin)."
)
async def get_reservation_payment(
    reservation_id: str,
    user: UserProfile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    result = await service.get_payment(reservation_id, user)
    if isinstance(result, Rejected):
        return rejection_response(result)
    return result


@router.get(
    "/history",
    response_model=PaymentHistoryResponse,
    summary="Historique des Paiements",
    description="Paiements de l'utilisateur connecté, les plus récents d'abord."
)
async def get_payment_history(
    user: UserProfile = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service)
):
    result = await service.list_payments(user)
    if isinstance(result, Rejected):
        return rejection_response(result)
    return PaymentHistoryResponse(count=len(result), payments=result)
