"""
SmartPark Reservation System - Helper Functions
Utility functions used across the application.
"""

from typing import List, Tuple
import re
import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.
    Naive values are interpreted as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def generate_spot_number(zone_index: int = 0, index: int = 1) -> str:
    """
    Generate a standardized spot number.

    Args:
        zone_index: Position of the zone in the location (0 -> "A")
        index: Spot index within the zone

    Returns:
        str: Formatted spot number (e.g., "A-01", "C-12")
    """
    return f"{chr(65 + zone_index)}-{index:02d}"


def spot_sort_key(spot_number: str) -> Tuple:
    """
    Natural ordering key for spot numbers, so that A-2 sorts before A-10.
    """
    parts: List = []
    for chunk in re.split(r"(\d+)", spot_number.upper()):
        if not chunk:
            continue
        parts.append((0, int(chunk), "") if chunk.isdigit() else (1, 0, chunk))
    return tuple(parts)


def generate_reservation_id() -> str:
    """Génère un ID unique pour une réservation."""
    return f"RES-{uuid.uuid4().hex[:10].upper()}"


def generate_payment_id() -> str:
    """Génère un ID unique pour le paiement."""
    return f"PAY-{uuid.uuid4().hex[:12].upper()}"


def generate_transaction_ref(reservation_id: str) -> str:
    """Génère une référence de transaction."""
    return f"TRX-{utcnow().strftime('%Y%m%d%H%M%S')}-{reservation_id}"


def format_duration(minutes: int) -> str:
    """
    Format duration in minutes to human-readable string.

    Args:
        minutes: Duration in minutes

    Returns:
        str: Human-readable duration (e.g., "2 hours 30 minutes")
    """
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"

    hours = minutes // 60
    remaining_minutes = minutes % 60

    parts = []
    if hours > 0:
        parts.append(f"{hours} hour{'s' if hours != 1 else ''}")
    if remaining_minutes > 0:
        parts.append(f"{remaining_minutes} minute{'s' if remaining_minutes != 1 else ''}")

    return " ".join(parts)
