"""
SmartPark Reservation System - Security Package
Contains authentication and authorization modules.
"""

from security.firebase_auth import (
    verify_firebase_token,
    get_current_user,
    get_current_admin,
)
from security.api_key import (
    verify_gateway_api_key,
)

__all__ = [
    "verify_firebase_token",
    "get_current_user",
    "get_current_admin",
    "verify_gateway_api_key",
]
