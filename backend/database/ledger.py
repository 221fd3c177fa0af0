"""
SmartPark Reservation System - Reservation Ledger
Interface commune des backends de stockage (Firestore, mémoire).

Toute écriture passe par ``run_in_transaction``: la fonction fournie lit à
travers la transaction, prépare ses écritures, et celles-ci ne sont
appliquées qu'au commit. Une exception annule tout.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional, Tuple, TypeVar
from datetime import datetime

from fastapi import Request

from models.parking import ParkingLocation, ParkingSpot, SpotStatus, ZoneType
from models.reservation import Reservation, ReservationStatus, TimeRange
from models.payment import PaymentRecord

T = TypeVar("T")

# Clé de verrouillage: (location_id, zone)
Bucket = Tuple[int, ZoneType]


class StorageError(Exception):
    """Échec d'infrastructure du stockage."""


class LedgerTimeout(StorageError):
    """Le verrou ou la transaction n'a pas été obtenu dans le délai imparti."""


class ConflictError(StorageError):
    """Transaction abandonnée après contention avec une autre écriture."""


class CatalogView(ABC):
    """Lectures partagées par le ledger et ses transactions."""

    @abstractmethod
    async def get_spot(self, spot_id: int) -> Optional[ParkingSpot]:
        """Récupère une place par son ID."""

    @abstractmethod
    async def list_spots(
        self,
        location_id: int,
        zone: Optional[ZoneType] = None
    ) -> List[ParkingSpot]:
        """Récupère les places d'un site, éventuellement filtrées par zone."""

    @abstractmethod
    async def blocking_reservations(
        self,
        spot_ids: List[int],
        time_range: TimeRange
    ) -> List[Reservation]:
        """Réservations pending/active de ces places qui chevauchent la plage."""

    @abstractmethod
    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        """Récupère une réservation par son ID."""

    @abstractmethod
    async def get_payment_for_reservation(
        self,
        reservation_id: str
    ) -> Optional[PaymentRecord]:
        """Récupère le paiement d'une réservation."""


class LedgerTransaction(CatalogView):
    """Unité atomique: lectures cohérentes puis écritures différées."""

    @abstractmethod
    async def find_by_idempotency_key(
        self,
        user_id: str,
        idempotency_key: str
    ) -> Optional[Reservation]:
        """Réservation déjà créée par cet utilisateur avec cette clé."""

    @abstractmethod
    def insert_reservation(self, reservation: Reservation) -> None:
        """Prépare l'insertion d'une réservation."""

    @abstractmethod
    def update_reservation(self, reservation: Reservation) -> None:
        """Prépare le remplacement d'une réservation existante."""

    @abstractmethod
    def set_spot_status(self, spot_id: int, status: SpotStatus, now: datetime) -> None:
        """Prépare le changement d'état d'une place."""

    @abstractmethod
    def insert_payment(self, payment: PaymentRecord) -> None:
        """Prépare l'insertion d'un paiement."""


class ReservationLedger(CatalogView):
    """Registre transactionnel des réservations et du catalogue de places."""

    @abstractmethod
    async def run_in_transaction(
        self,
        bucket: Bucket,
        fn: Callable[[LedgerTransaction], Awaitable[T]],
        timeout: Optional[float] = None
    ) -> T:
        """
        Exécute ``fn`` dans une transaction sérialisée sur ``bucket``.

        Raises:
            LedgerTimeout: verrou non obtenu à temps
            ConflictError: contention persistante
            StorageError: toute autre panne du stockage
        """

    @abstractmethod
    async def get_location(self, location_id: int) -> Optional[ParkingLocation]:
        """Récupère un site de parking."""

    @abstractmethod
    async def list_locations(self) -> List[ParkingLocation]:
        """Récupère tous les sites de parking."""

    @abstractmethod
    async def list_user_reservations(self, user_id: str) -> List[Reservation]:
        """Réservations d'un utilisateur, les plus récentes d'abord."""

    @abstractmethod
    async def list_reservations(
        self,
        status: Optional[ReservationStatus] = None,
        limit: int = 100
    ) -> List[Reservation]:
        """Réservations (admin), les plus récentes d'abord."""

    @abstractmethod
    async def list_due_reservations(self, now: datetime) -> List[Reservation]:
        """Réservations pending/active dont la fin est passée."""

    @abstractmethod
    async def list_user_payments(self, user_id: str) -> List[PaymentRecord]:
        """Paiements d'un utilisateur, les plus récents d'abord."""

    @abstractmethod
    async def seed_catalog(
        self,
        locations: List[ParkingLocation],
        spots: List[ParkingSpot]
    ) -> int:
        """Crée le catalogue s'il est vide. Retourne le nombre de places créées."""


def get_ledger(request: Request) -> ReservationLedger:
    """Dépendance FastAPI: ledger construit au démarrage de l'application."""
    return request.app.state.ledger
