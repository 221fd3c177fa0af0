"""
SmartPark Reservation System - Firebase Database Module
Gestion des opérations Firebase Firestore pour les réservations.

Les transactions Firestore côté serveur verrouillent les documents lus.
Chaque allocation écrit le document de la place choisie: deux transactions
visant la même place entrent donc toujours en contention et Firestore
rejoue la seconde, qui relit alors l'état validé.
"""

import firebase_admin
from firebase_admin import credentials, firestore_async
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1 import FieldFilter
from typing import Any, Awaitable, Callable, Dict, List, Optional
from datetime import datetime
from enum import Enum
import hashlib
import logging

from config import get_settings
from database.ledger import (
    Bucket,
    ConflictError,
    LedgerTimeout,
    LedgerTransaction,
    ReservationLedger,
    StorageError,
    T,
)
from models.parking import ParkingLocation, ParkingSpot, SpotStatus, ZoneType
from models.reservation import (
    BLOCKING_STATUSES,
    Reservation,
    ReservationStatus,
    TimeRange,
)
from models.payment import PaymentRecord
from utils.helpers import spot_sort_key

# Configure logging
logger = logging.getLogger(__name__)

# Global Firebase app instance
_firebase_app: Optional[firebase_admin.App] = None
_firestore_client = None

# Firestore limits "in" filters to 30 values
_IN_FILTER_LIMIT = 30

# Message raised by async_transactional once max_attempts is exhausted
_CONTENTION_MESSAGE = "Failed to commit transaction"


def init_firebase() -> firebase_admin.App:
    """
    Initialise Firebase Admin SDK.
    Appelé une seule fois au démarrage de l'application.
    """
    global _firebase_app, _firestore_client

    if _firebase_app is not None:
        logger.info("Firebase déjà initialisé")
        return _firebase_app

    try:
        settings = get_settings()
        cred = credentials.Certificate(settings.get_firebase_credentials())

        _firebase_app = firebase_admin.initialize_app(cred)
        _firestore_client = firestore_async.client()
        logger.info("Firebase initialisé avec succès")

        return _firebase_app

    except Exception as e:
        logger.error(f"Échec de l'initialisation Firebase: {e}")
        raise


def get_firestore_client():
    """Obtient l'instance du client Firestore asynchrone."""
    global _firestore_client
    if _firestore_client is None:
        init_firebase()
    return _firestore_client


def _to_document(model) -> Dict[str, Any]:
    """Convertit un modèle Pydantic en document Firestore (enums -> valeurs)."""
    data = model.model_dump()
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in data.items()
    }


def _idempotency_doc_id(user_id: str, idempotency_key: str) -> str:
    """Identifiant de document sûr (les clés peuvent contenir des '/')."""
    return hashlib.sha256(f"{user_id}\n{idempotency_key}".encode()).hexdigest()


def _chunks(values: List[int], size: int = _IN_FILTER_LIMIT):
    for i in range(0, len(values), size):
        yield values[i:i + size]


class FirebaseDB(ReservationLedger):
    """
    Gestionnaire de base de données Firebase Firestore.
    Fournit le catalogue des places et le registre des réservations.
    """

    COLLECTION_LOCATIONS = "parking_locations"
    COLLECTION_SPOTS = "parking_spots"
    COLLECTION_RESERVATIONS = "reservations"
    COLLECTION_PAYMENTS = "payments"
    COLLECTION_IDEMPOTENCY_KEYS = "idempotency_keys"

    def __init__(self, client=None, max_attempts: int = 5):
        self.db = client or get_firestore_client()
        self.max_attempts = max_attempts

    # ==================== TRANSACTIONS ====================

    async def run_in_transaction(
        self,
        bucket: Bucket,
        fn: Callable[[LedgerTransaction], Awaitable[T]],
        timeout: Optional[float] = None
    ) -> T:
        """
        Exécute ``fn`` dans une transaction Firestore.
        Le bucket n'est pas utilisé: l'isolation vient des verrous de documents.
        """
        transaction = self.db.transaction(max_attempts=self.max_attempts)

        @firestore.async_transactional
        async def run(transaction) -> T:
            return await fn(FirestoreTransaction(self, transaction, timeout))

        try:
            return await run(transaction)
        except google_exceptions.DeadlineExceeded as e:
            logger.warning(f"Transaction {bucket} expirée: {e}")
            raise LedgerTimeout(str(e)) from e
        except google_exceptions.Aborted as e:
            logger.warning(f"Transaction {bucket} abandonnée: {e}")
            raise ConflictError(str(e)) from e
        except google_exceptions.AlreadyExists as e:
            logger.warning(f"Clé d'idempotence déjà utilisée ({bucket}): {e}")
            raise ConflictError(str(e)) from e
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur Firestore sur {bucket}: {e}")
            raise StorageError(str(e)) from e
        except ValueError as e:
            if _CONTENTION_MESSAGE in str(e):
                logger.warning(f"Contention persistante sur {bucket}: {e}")
                raise ConflictError(str(e)) from e
            raise

    # ==================== PLACES DE PARKING ====================

    def _spot_ref(self, spot_id: int):
        return self.db.collection(self.COLLECTION_SPOTS).document(str(spot_id))

    async def _get_spot(
        self,
        spot_id: int,
        transaction=None,
        timeout: Optional[float] = None
    ) -> Optional[ParkingSpot]:
        doc = await self._spot_ref(spot_id).get(transaction=transaction, timeout=timeout)
        if doc.exists:
            return ParkingSpot(**doc.to_dict())
        return None

    async def _list_spots(
        self,
        location_id: int,
        zone: Optional[ZoneType] = None,
        transaction=None,
        timeout: Optional[float] = None
    ) -> List[ParkingSpot]:
        query = self.db.collection(self.COLLECTION_SPOTS).where(
            filter=FieldFilter("location_id", "==", location_id)
        )
        if zone is not None:
            query = query.where(filter=FieldFilter("zone", "==", zone.value))

        spots = [
            ParkingSpot(**doc.to_dict())
            async for doc in query.stream(transaction=transaction, timeout=timeout)
        ]
        spots.sort(key=lambda s: (spot_sort_key(s.spot_number), s.spot_id))
        return spots

    async def _blocking_reservations(
        self,
        spot_ids: List[int],
        time_range: TimeRange,
        transaction=None,
        timeout: Optional[float] = None
    ) -> List[Reservation]:
        reservations_ref = self.db.collection(self.COLLECTION_RESERVATIONS)
        blocking = []
        for chunk in _chunks(sorted(set(spot_ids))):
            query = reservations_ref.where(filter=FieldFilter("spot_id", "in", chunk))
            async for doc in query.stream(transaction=transaction, timeout=timeout):
                reservation = Reservation(**doc.to_dict())
                if reservation.blocks(time_range):
                    blocking.append(reservation)
        return blocking

    async def _get_reservation(
        self,
        reservation_id: str,
        transaction=None,
        timeout: Optional[float] = None
    ) -> Optional[Reservation]:
        doc_ref = self.db.collection(self.COLLECTION_RESERVATIONS).document(reservation_id)
        doc = await doc_ref.get(transaction=transaction, timeout=timeout)
        if doc.exists:
            return Reservation(**doc.to_dict())
        return None

    async def _get_payment_for_reservation(
        self,
        reservation_id: str,
        transaction=None,
        timeout: Optional[float] = None
    ) -> Optional[PaymentRecord]:
        query = self.db.collection(self.COLLECTION_PAYMENTS).where(
            filter=FieldFilter("reservation_id", "==", reservation_id)
        ).limit(1)
        async for doc in query.stream(transaction=transaction, timeout=timeout):
            return PaymentRecord(**doc.to_dict())
        return None

    async def get_spot(self, spot_id: int) -> Optional[ParkingSpot]:
        """Récupère une place par son ID."""
        try:
            return await self._get_spot(spot_id)
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur lors de la récupération de la place {spot_id}: {e}")
            raise StorageError(str(e)) from e

    async def list_spots(
        self,
        location_id: int,
        zone: Optional[ZoneType] = None
    ) -> List[ParkingSpot]:
        """Récupère les places d'un site, triées par numéro."""
        try:
            return await self._list_spots(location_id, zone)
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur lors de la récupération des places: {e}")
            raise StorageError(str(e)) from e

    async def blocking_reservations(
        self,
        spot_ids: List[int],
        time_range: TimeRange
    ) -> List[Reservation]:
        try:
            return await self._blocking_reservations(spot_ids, time_range)
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur lors de la vérification des chevauchements: {e}")
            raise StorageError(str(e)) from e

    # ==================== SITES ====================

    async def get_location(self, location_id: int) -> Optional[ParkingLocation]:
        """Récupère un site de parking."""
        try:
            doc_ref = self.db.collection(self.COLLECTION_LOCATIONS).document(str(location_id))
            doc = await doc_ref.get()
            if doc.exists:
                return ParkingLocation(**doc.to_dict())
            return None
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur lors de la récupération du site {location_id}: {e}")
            raise StorageError(str(e)) from e

    async def list_locations(self) -> List[ParkingLocation]:
        """Récupère tous les sites de parking."""
        try:
            query = self.db.collection(self.COLLECTION_LOCATIONS).order_by("name")
            return [ParkingLocation(**doc.to_dict()) async for doc in query.stream()]
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur lors de la récupération des sites: {e}")
            raise StorageError(str(e)) from e

    # ==================== RÉSERVATIONS ====================

    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        """Récupère une réservation par son ID."""
        try:
            return await self._get_reservation(reservation_id)
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur récupération réservation {reservation_id}: {e}")
            raise StorageError(str(e)) from e

    async def list_user_reservations(self, user_id: str) -> List[Reservation]:
        """Récupère les réservations d'un utilisateur."""
        try:
            query = self.db.collection(self.COLLECTION_RESERVATIONS).where(
                filter=FieldFilter("user_id", "==", user_id)
            )
            reservations = [Reservation(**doc.to_dict()) async for doc in query.stream()]
            reservations.sort(key=lambda r: r.created_at, reverse=True)
            return reservations
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur récupération réservations de {user_id}: {e}")
            raise StorageError(str(e)) from e

    async def list_reservations(
        self,
        status: Optional[ReservationStatus] = None,
        limit: int = 100
    ) -> List[Reservation]:
        """Récupère les réservations, filtrées par statut."""
        try:
            query = self.db.collection(self.COLLECTION_RESERVATIONS)
            if status is not None:
                query = query.where(filter=FieldFilter("status", "==", status.value))
            query = query.order_by(
                "created_at", direction=firestore.Query.DESCENDING
            ).limit(limit)
            return [Reservation(**doc.to_dict()) async for doc in query.stream()]
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur récupération réservations: {e}")
            raise StorageError(str(e)) from e

    async def list_due_reservations(self, now: datetime) -> List[Reservation]:
        """Récupère les réservations pending/active dont la fin est passée."""
        try:
            query = self.db.collection(self.COLLECTION_RESERVATIONS).where(
                filter=FieldFilter("status", "in", [s.value for s in BLOCKING_STATUSES])
            ).where(
                filter=FieldFilter("end_time", "<=", now)
            )
            return [Reservation(**doc.to_dict()) async for doc in query.stream()]
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur lors de la récupération des réservations échues: {e}")
            raise StorageError(str(e)) from e

    # ==================== PAIEMENTS ====================

    async def get_payment_for_reservation(
        self,
        reservation_id: str
    ) -> Optional[PaymentRecord]:
        """Récupère le paiement d'une réservation."""
        try:
            return await self._get_payment_for_reservation(reservation_id)
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur récupération paiement réservation {reservation_id}: {e}")
            raise StorageError(str(e)) from e

    async def list_user_payments(self, user_id: str) -> List[PaymentRecord]:
        """Récupère l'historique des paiements d'un utilisateur."""
        try:
            query = self.db.collection(self.COLLECTION_PAYMENTS).where(
                filter=FieldFilter("user_id", "==", user_id)
            )
            payments = [PaymentRecord(**doc.to_dict()) async for doc in query.stream()]
            payments.sort(key=lambda p: p.created_at, reverse=True)
            return payments
        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur récupération paiements de {user_id}: {e}")
            raise StorageError(str(e)) from e

    # ==================== CATALOGUE ====================

    async def seed_catalog(
        self,
        locations: List[ParkingLocation],
        spots: List[ParkingSpot]
    ) -> int:
        """
        Initialise le catalogue par défaut.
        Appelé au démarrage de l'application.
        """
        try:
            existing = self.db.collection(self.COLLECTION_SPOTS).limit(1)
            async for _ in existing.stream():
                logger.info("Places existantes, initialisation ignorée")
                return 0

            batch = self.db.batch()
            for location in locations:
                ref = self.db.collection(self.COLLECTION_LOCATIONS).document(
                    str(location.location_id)
                )
                batch.set(ref, _to_document(location))
            for spot in spots:
                batch.set(self._spot_ref(spot.spot_id), _to_document(spot))
            await batch.commit()

            logger.info(f"{len(spots)} places de parking initialisées")
            return len(spots)

        except google_exceptions.GoogleAPICallError as e:
            logger.error(f"Erreur lors de l'initialisation des places: {e}")
            raise StorageError(str(e)) from e


class FirestoreTransaction(LedgerTransaction):
    """
    Vue transactionnelle: toutes les lectures avant les écritures,
    celles-ci étant mises en attente par Firestore jusqu'au commit.
    """

    def __init__(self, ledger: FirebaseDB, transaction, timeout: Optional[float] = None):
        self._ledger = ledger
        self._transaction = transaction
        self._timeout = timeout

    async def get_spot(self, spot_id: int) -> Optional[ParkingSpot]:
        return await self._ledger._get_spot(spot_id, self._transaction, self._timeout)

    async def list_spots(
        self,
        location_id: int,
        zone: Optional[ZoneType] = None
    ) -> List[ParkingSpot]:
        return await self._ledger._list_spots(
            location_id, zone, self._transaction, self._timeout
        )

    async def blocking_reservations(
        self,
        spot_ids: List[int],
        time_range: TimeRange
    ) -> List[Reservation]:
        return await self._ledger._blocking_reservations(
            spot_ids, time_range, self._transaction, self._timeout
        )

    async def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        return await self._ledger._get_reservation(
            reservation_id, self._transaction, self._timeout
        )

    async def get_payment_for_reservation(
        self,
        reservation_id: str
    ) -> Optional[PaymentRecord]:
        return await self._ledger._get_payment_for_reservation(
            reservation_id, self._transaction, self._timeout
        )

    async def find_by_idempotency_key(
        self,
        user_id: str,
        idempotency_key: str
    ) -> Optional[Reservation]:
        query = self._ledger.db.collection(FirebaseDB.COLLECTION_RESERVATIONS).where(
            filter=FieldFilter("user_id", "==", user_id)
        ).where(
            filter=FieldFilter("idempotency_key", "==", idempotency_key)
        ).limit(1)
        async for doc in query.stream(transaction=self._transaction, timeout=self._timeout):
            return Reservation(**doc.to_dict())
        return None

    def insert_reservation(self, reservation: Reservation) -> None:
        ref = self._ledger.db.collection(FirebaseDB.COLLECTION_RESERVATIONS).document(
            reservation.reservation_id
        )
        self._transaction.create(ref, _to_document(reservation))
        if reservation.idempotency_key:
            # Unique per user whatever the bucket: a second create fails the commit
            key_ref = self._ledger.db.collection(FirebaseDB.COLLECTION_IDEMPOTENCY_KEYS).document(
                _idempotency_doc_id(reservation.user_id, reservation.idempotency_key)
            )
            self._transaction.create(key_ref, {
                "user_id": reservation.user_id,
                "reservation_id": reservation.reservation_id,
                "created_at": reservation.created_at,
            })

    def update_reservation(self, reservation: Reservation) -> None:
        ref = self._ledger.db.collection(FirebaseDB.COLLECTION_RESERVATIONS).document(
            reservation.reservation_id
        )
        self._transaction.set(ref, _to_document(reservation))

    def set_spot_status(self, spot_id: int, status: SpotStatus, now: datetime) -> None:
        self._transaction.update(
            self._ledger._spot_ref(spot_id),
            {"status": status.value, "updated_at": now}
        )

    def insert_payment(self, payment: PaymentRecord) -> None:
        ref = self._ledger.db.collection(FirebaseDB.COLLECTION_PAYMENTS).document(
            payment.payment_id
        )
        self._transaction.create(ref, _to_document(payment))
