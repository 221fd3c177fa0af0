"""
SmartPark Reservation System - Database Package
Ledger des réservations: Firestore en production, mémoire pour dev/tests.
"""

from config import Settings
from database.ledger import (
    ReservationLedger,
    LedgerTransaction,
    StorageError,
    LedgerTimeout,
    ConflictError,
    get_ledger,
)
from database.memory_db import MemoryLedger


def create_ledger(settings: Settings) -> ReservationLedger:
    """Construit le backend de stockage choisi par STORAGE_BACKEND."""
    backend = settings.storage_backend.lower()
    if backend == "memory":
        return MemoryLedger()
    if backend == "firestore":
        from database.firebase_db import FirebaseDB, init_firebase

        init_firebase()
        return FirebaseDB(max_attempts=settings.firestore_max_attempts)
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


__all__ = [
    "ReservationLedger",
    "LedgerTransaction",
    "StorageError",
    "LedgerTimeout",
    "ConflictError",
    "MemoryLedger",
    "create_ledger",
    "get_ledger",
]
