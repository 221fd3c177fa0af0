"""
SmartPark Reservation System - Payment Service
Confirmation des paiements reçus de la passerelle pour une réservation.
"""

import logging
from typing import List, Optional, Union

from fastapi import Request

from database.ledger import (
    ConflictError,
    LedgerTimeout,
    LedgerTransaction,
    ReservationLedger,
    StorageError,
)
from models.parking import SpotStatus
from models.payment import PaymentConfirmRequest, PaymentRecord, PaymentStatus
from models.reservation import ErrorKind, Rejected, ReservationStatus
from models.user import UserProfile
from utils.helpers import generate_payment_id, generate_transaction_ref, utcnow

logger = logging.getLogger(__name__)

# Tolérance sur la comparaison des montants (arrondi passerelle)
AMOUNT_EPSILON = 0.005


class PaymentService:
    """Service de confirmation de paiement."""

    def __init__(
        self,
        ledger: ReservationLedger,
        currency: str = "IDR",
        timeout_seconds: Optional[float] = 5.0
    ):
        self.ledger = ledger
        self.currency = currency
        self.timeout_seconds = timeout_seconds

    async def confirm_payment(
        self,
        request: PaymentConfirmRequest
    ) -> Union[PaymentRecord, Rejected]:
        """
        Enregistre le paiement et active la réservation.

        Le paiement et le passage pending -> active sont écrits dans la même
        transaction que la place concernée.

        Args:
            request: Callback de la passerelle

        Returns:
            PaymentRecord créé, ou Rejected
        """
        try:
            reservation = await self.ledger.get_reservation(request.reservation_id)
        except StorageError as e:
            logger.error(f"Lecture réservation {request.reservation_id} impossible: {e}")
            return _unavailable()
        if reservation is None:
            return Rejected(error_kind=ErrorKind.NOT_FOUND, detail="Reservation not found")

        async def apply(tx: LedgerTransaction) -> Union[PaymentRecord, Rejected]:
            current = await tx.get_reservation(request.reservation_id)
            existing = await tx.get_payment_for_reservation(request.reservation_id)

            if current.status in (ReservationStatus.ACTIVE, ReservationStatus.COMPLETED):
                return Rejected(
                    error_kind=ErrorKind.ALREADY_TERMINAL,
                    detail="Reservation already paid"
                )
            if current.status == ReservationStatus.CANCELLED:
                return Rejected(
                    error_kind=ErrorKind.ALREADY_TERMINAL,
                    detail="Reservation is cancelled"
                )
            if existing is not None:
                return Rejected(
                    error_kind=ErrorKind.CONFLICT,
                    detail="A payment already exists for this reservation"
                )
            if abs(request.amount - current.total_cost) > AMOUNT_EPSILON:
                return Rejected(
                    error_kind=ErrorKind.INVALID_REQUEST,
                    detail=f"Payment amount does not match reservation cost ({current.total_cost})"
                )

            now = utcnow()
            payment = PaymentRecord(
                payment_id=generate_payment_id(),
                reservation_id=current.reservation_id,
                user_id=current.user_id,
                amount=request.amount,
                currency=current.currency,
                method=request.payment_method,
                status=PaymentStatus.COMPLETED,
                transaction_ref=request.transaction_ref or generate_transaction_ref(
                    current.reservation_id
                ),
                created_at=now,
            )
            tx.insert_payment(payment)
            tx.update_reservation(current.model_copy(update={
                "status": ReservationStatus.ACTIVE,
                "updated_at": now,
            }))
            tx.set_spot_status(current.spot_id, SpotStatus.RESERVED, now)
            return payment

        bucket = (reservation.location_id, reservation.zone)
        try:
            outcome = await self.ledger.run_in_transaction(
                bucket, apply, timeout=self.timeout_seconds
            )
        except LedgerTimeout:
            logger.error(f"Délai dépassé pour le paiement de {request.reservation_id}")
            return Rejected(
                error_kind=ErrorKind.ALLOCATION_FAILED,
                detail="Payment service is busy, please retry"
            )
        except ConflictError:
            return Rejected(
                error_kind=ErrorKind.CONFLICT,
                detail="Reservation changed concurrently, please retry"
            )
        except StorageError as e:
            logger.error(f"Erreur stockage paiement {request.reservation_id}: {e}")
            return Rejected(
                error_kind=ErrorKind.ALLOCATION_FAILED,
                detail="Payment could not be recorded, please retry later"
            )

        if isinstance(outcome, Rejected):
            logger.warning(
                f"Paiement refusé pour {request.reservation_id}: {outcome.detail}"
            )
        else:
            logger.info(
                f"Paiement {outcome.payment_id} confirmé pour {request.reservation_id}, "
                f"montant {outcome.amount} {outcome.currency}"
            )
        return outcome

    async def get_payment(
        self,
        reservation_id: str,
        principal: UserProfile
    ) -> Union[PaymentRecord, Rejected]:
        """Paiement d'une réservation (propriétaire ou admin)."""
        try:
            reservation = await self.ledger.get_reservation(reservation_id)
        except StorageError as e:
            logger.error(f"Lecture réservation {reservation_id} impossible: {e}")
            return _unavailable()

        if reservation is None:
            return Rejected(error_kind=ErrorKind.NOT_FOUND, detail="Reservation not found")
        if reservation.user_id != principal.uid and not principal.is_admin:
            return Rejected(
                error_kind=ErrorKind.FORBIDDEN,
                detail="You can only view your own payments"
            )

        try:
            payment = await self.ledger.get_payment_for_reservation(reservation_id)
        except StorageError as e:
            logger.error(f"Lecture paiement {reservation_id} impossible: {e}")
            return _unavailable()
        if payment is None:
            return Rejected(
                error_kind=ErrorKind.NOT_FOUND,
                detail="No payment found for this reservation"
            )
        return payment

    async def list_payments(
        self,
        principal: UserProfile
    ) -> Union[List[PaymentRecord], Rejected]:
        """Historique des paiements de l'utilisateur, les plus récents d'abord."""
        try:
            return await self.ledger.list_user_payments(principal.uid)
        except StorageError as e:
            logger.error(f"Historique des paiements de {principal.uid} indisponible: {e}")
            return _unavailable()


def _unavailable() -> Rejected:
    return Rejected(
        error_kind=ErrorKind.ALLOCATION_FAILED,
        detail="Payment service is unavailable, please retry later"
    )


def get_payment_service(request: Request) -> PaymentService:
    """Dépendance FastAPI: service de paiement de l'application."""
    return request.app.state.payment_service
