"""
SmartPark Reservation System - In-Memory Ledger
Ledger mono-processus: un asyncio.Lock par (site, zone), écritures différées
appliquées au commit. Utilisé en développement et dans les tests.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from database.ledger import (
    Bucket,
    ConflictError,
    LedgerTimeout,
    LedgerTransaction,
    ReservationLedger,
    T,
)
from models.parking import ParkingLocation, ParkingSpot, SpotStatus, ZoneType
from models.reservation import Reservation, ReservationStatus, TimeRange
from models.payment import PaymentRecord
from utils.helpers import spot_sort_key

# Configure logging
logger = logging.getLogger(__name__)


class MemoryLedger(ReservationLedger):
    """
    Gestionnaire de stockage en mémoire.
    Fournit les mêmes garanties que le backend Firestore pour un seul processus.
    """

    def __init__(self):
        self._locations: Dict[int, ParkingLocation] = {}
        self._spots: Dict[int, ParkingSpot] = {}
        self._reservations: Dict[str, Reservation] = {}
        self._payments: Dict[str, PaymentRecord] = {}
        self._locks: Dict[Bucket, asyncio.Lock] = {}

    # ==================== TRANSACTIONS ====================

    def _lock_for(self, bucket: Bucket) -> asyncio.Lock:
        # No await between lookup and insert: safe on a single event loop
        lock = self._locks.get(bucket)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[bucket] = lock
        return lock

    async def run_in_transaction(
        self,
        bucket: Bucket,
        fn: Callable[[LedgerTransaction], Awaitable[T]],
        timeout: Optional[float] = None
    ) -> T:
        """Exécute ``fn`` sous le verrou du bucket et applique ses écritures."""
        lock = self._lock_for(bucket)
        try:
            await asyncio.wait_for(lock.acquire(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Verrou {bucket} non obtenu en {timeout}s")
            raise LedgerTimeout(f"lock wait exceeded {timeout}s")

        try:
            transaction = MemoryTransaction(self)
            result = await fn(transaction)
            transaction.commit()
            return result
        finally:
            lock.release()

    # ==================== LECTURES ====================

    async def _round_trip(self) -> None:
        # Each read yields to the event loop like a network call would
        await asyncio.sleep(0)

    async def get_spot(self, spot_id: int) -> Optional[ParkingSpot]:
        await self._round_trip()
        spot = self._spots.get(spot_id)
        return spot.model_copy() if spot else None

    async def list_spots(
        self,
        location_id: int,
        zone: Optional[ZoneType] = None
    ) -> List[ParkingSpot]:
        await self._round_trip()
        spots = [
            spot.model_copy()
            for spot in self._spots.values()
            if spot.location_id == location_id and (zone is None or spot.zone == zone)
        ]
        spots.sort(key=lambda s: (spot_sort_key(s.spot_number), s.spot_id))
        return spots

    async def blocking_reservations(
        self,
        spot_ids: List[int],
        time_range: TimeRange
    ) -> List[Reservation]:
        await self._round_trip()
        wanted = set(spot_ids)
        return [
            reservation.model_copy()
            for reservation in self._reservations.values()
            if reservation.spot_id in wanted and reservation.blocks(time_range)
        ]

    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        await self._round_trip()
        reservation = self._reservations.get(reservation_id)
        return reservation.model_copy() if reservation else None

    async def get_payment_for_reservation(
        self,
        reservation_id: str
    ) -> Optional[PaymentRecord]:
        await self._round_trip()
        for payment in self._payments.values():
            if payment.reservation_id == reservation_id:
                return payment.model_copy()
        return None

    async def list_user_payments(self, user_id: str) -> List[PaymentRecord]:
        await self._round_trip()
        payments = [p.model_copy() for p in self._payments.values() if p.user_id == user_id]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments

    async def get_location(self, location_id: int) -> Optional[ParkingLocation]:
        await self._round_trip()
        location = self._locations.get(location_id)
        return location.model_copy() if location else None

    async def list_locations(self) -> List[ParkingLocation]:
        await self._round_trip()
        return sorted(
            (location.model_copy() for location in self._locations.values()),
            key=lambda loc: loc.name
        )

    async def list_user_reservations(self, user_id: str) -> List[Reservation]:
        await self._round_trip()
        reservations = [
            r.model_copy() for r in self._reservations.values() if r.user_id == user_id
        ]
        reservations.sort(key=lambda r: r.created_at, reverse=True)
        return reservations

    async def list_reservations(
        self,
        status: Optional[ReservationStatus] = None,
        limit: int = 100
    ) -> List[Reservation]:
        await self._round_trip()
        reservations = [
            r.model_copy()
            for r in self._reservations.values()
            if status is None or r.status == status
        ]
        reservations.sort(key=lambda r: r.created_at, reverse=True)
        return reservations[:limit]

    async def list_due_reservations(self, now: datetime) -> List[Reservation]:
        await self._round_trip()
        return [
            r.model_copy()
            for r in self._reservations.values()
            if r.status.is_blocking and r.end_time <= now
        ]

    # ==================== CATALOGUE ====================

    async def seed_catalog(
        self,
        locations: List[ParkingLocation],
        spots: List[ParkingSpot]
    ) -> int:
        if self._spots:
            logger.info(f"{len(self._spots)} places existantes, initialisation ignorée")
            return 0

        for location in locations:
            self._locations[location.location_id] = location.model_copy()
        for spot in spots:
            self._spots[spot.spot_id] = spot.model_copy()

        logger.info(f"{len(spots)} places de parking initialisées")
        return len(spots)


class MemoryTransaction(LedgerTransaction):
    """Transaction en mémoire: lit l'état validé, retient les écritures."""

    def __init__(self, ledger: MemoryLedger):
        self._ledger = ledger
        self._reservations: Dict[str, Reservation] = {}
        self._spot_updates: Dict[int, dict] = {}
        self._payments: Dict[str, PaymentRecord] = {}

    async def get_spot(self, spot_id: int) -> Optional[ParkingSpot]:
        return await self._ledger.get_spot(spot_id)

    async def list_spots(
        self,
        location_id: int,
        zone: Optional[ZoneType] = None
    ) -> List[ParkingSpot]:
        return await self._ledger.list_spots(location_id, zone)

    async def blocking_reservations(
        self,
        spot_ids: List[int],
        time_range: TimeRange
    ) -> List[Reservation]:
        return await self._ledger.blocking_reservations(spot_ids, time_range)

    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        return await self._ledger.get_reservation(reservation_id)

    async def get_payment_for_reservation(
        self,
        reservation_id: str
    ) -> Optional[PaymentRecord]:
        return await self._ledger.get_payment_for_reservation(reservation_id)

    async def find_by_idempotency_key(
        self,
        user_id: str,
        idempotency_key: str
    ) -> Optional[Reservation]:
        await self._ledger._round_trip()
        for reservation in self._ledger._reservations.values():
            if reservation.user_id == user_id and reservation.idempotency_key == idempotency_key:
                return reservation.model_copy()
        return None

    def insert_reservation(self, reservation: Reservation) -> None:
        self._reservations[reservation.reservation_id] = reservation.model_copy()

    def update_reservation(self, reservation: Reservation) -> None:
        self._reservations[reservation.reservation_id] = reservation.model_copy()

    def set_spot_status(self, spot_id: int, status: SpotStatus, now: datetime) -> None:
        self._spot_updates[spot_id] = {"status": status, "updated_at": now}

    def insert_payment(self, payment: PaymentRecord) -> None:
        self._payments[payment.payment_id] = payment.model_copy()

    def commit(self) -> None:
        """
        Applique toutes les écritures préparées.
        Une clé d'idempotence déjà validée dans un autre bucket annule tout.
        """
        for reservation in self._reservations.values():
            if reservation.idempotency_key and self._key_taken(reservation):
                raise ConflictError(
                    f"idempotency key already used by {reservation.user_id}"
                )
        self._ledger._reservations.update(self._reservations)
        self._ledger._payments.update(self._payments)
        for spot_id, updates in self._spot_updates.items():
            spot = self._ledger._spots.get(spot_id)
            if spot is not None:
                self._ledger._spots[spot_id] = spot.model_copy(update=updates)

    def _key_taken(self, reservation: Reservation) -> bool:
        return any(
            other.reservation_id != reservation.reservation_id
            and other.user_id == reservation.user_id
            and other.idempotency_key == reservation.idempotency_key
            for other in self._ledger._reservations.values()
        )
