"""
SmartPark Reservation System - Payment Models
Modèles pour la confirmation de paiement et la tarification.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional
from datetime import datetime
from enum import Enum

from models.parking import ZoneType
from models.reservation import Reservation
from utils.helpers import ensure_utc


class PaymentStatus(str, Enum):
    """État d'un paiement: la passerelle ne rappelle que pour un paiement abouti."""
    COMPLETED = "completed"


class PaymentMethod(str, Enum):
    """Méthodes de paiement acceptées par la passerelle."""
    EWALLET = "ewallet"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"


class PaymentRecord(BaseModel):
    """Enregistrement d'un paiement."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    payment_id: str = Field(..., description="ID unique du paiement")
    reservation_id: str = Field(..., description="ID de la réservation payée")
    user_id: str = Field(..., description="UID Firebase du propriétaire de la réservation")
    amount: float = Field(..., ge=0, description="Montant en devise locale")
    currency: str = Field(default="IDR", description="Devise")
    method: PaymentMethod = Field(default=PaymentMethod.EWALLET)
    status: PaymentStatus = Field(default=PaymentStatus.COMPLETED)
    transaction_ref: str = Field(..., description="Référence transaction")
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class PaymentConfirmRequest(BaseModel):
    """Callback de la passerelle de paiement pour une réservation."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    reservation_id: str = Field(..., min_length=1, description="ID de la réservation")
    amount: float = Field(..., gt=0, description="Montant payé")
    payment_method: PaymentMethod = Field(default=PaymentMethod.EWALLET)
    transaction_ref: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Référence fournie par la passerelle"
    )


class PriceQuote(BaseModel):
    """Devis pour une place et une plage horaire."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    spot_id: int
    zone: ZoneType
    hourly_rate: float
    billable_hours: int
    duration_label: str
    total_cost: float
    currency: str


class PaymentHistoryResponse(BaseModel):
    """Paiements de l'utilisateur, les plus récents d'abord."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    count: int
    payments: List[PaymentRecord]


class ReservationWithPayment(Reservation):
    """Réservation accompagnée de l'état de son paiement (None si impayée)."""

    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None

    @classmethod
    def join(
        cls,
        reservations: List[Reservation],
        payments: List[PaymentRecord]
    ) -> List["ReservationWithPayment"]:
        by_reservation: Dict[str, PaymentRecord] = {p.reservation_id: p for p in payments}
        joined = []
        for reservation in reservations:
            payment = by_reservation.get(reservation.reservation_id)
            joined.append(cls(
                **reservation.model_dump(),
                payment_status=payment.status if payment else None,
                payment_method=payment.method if payment else None,
            ))
        return joined


class MyReservationsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    count: int
    reservations: List[ReservationWithPayment]
