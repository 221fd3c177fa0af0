"""
SmartPark Reservation System - Utilities Package
Helper functions and background task schedulers.
"""

from utils.scheduler import (
    ReservationScheduler,
    start_scheduler,
)
from utils.helpers import (
    utcnow,
    ensure_utc,
    format_duration,
    spot_sort_key,
)

__all__ = [
    "ReservationScheduler",
    "start_scheduler",
    "utcnow",
    "ensure_utc",
    "format_duration",
    "spot_sort_key",
]
