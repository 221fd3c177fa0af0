"""
SmartPark Reservation System - Firebase Authentication Module
Bearer ID tokens verified by Firebase, turned into the principal used by the
reservation and payment services.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin import auth, exceptions as firebase_exceptions
from typing import Any, Dict, Optional
import logging

from models.user import UserProfile

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# Most specific first: expired and revoked are subclasses of invalid
_REJECTED_TOKENS = (
    (auth.ExpiredIdTokenError, "Token has expired. Please sign in again."),
    (auth.RevokedIdTokenError, "Token has been revoked. Please sign in again."),
    (auth.UserDisabledError, "This account is disabled."),
    (auth.InvalidIdTokenError, "Invalid authentication token"),
)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _rejection_detail(error: Exception) -> Optional[str]:
    for error_type, detail in _REJECTED_TOKENS:
        if isinstance(error, error_type):
            return detail
    return None


async def verify_firebase_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Dict[str, Any]:
    """
    Décode le jeton Firebase du header Authorization.

    Returns:
        Les claims du jeton (uid, email, role, ...)

    Raises:
        HTTPException: 401 pour un jeton absent ou refusé, 503 si Firebase
            ne peut pas vérifier le jeton
    """
    if credentials is None:
        raise _unauthorized("Missing authentication token")

    try:
        return auth.verify_id_token(credentials.credentials)
    except (auth.InvalidIdTokenError, auth.UserDisabledError) as e:
        detail = _rejection_detail(e)
        logger.warning(f"Jeton Firebase refusé ({type(e).__name__}): {e}")
        raise _unauthorized(detail)
    except (firebase_exceptions.FirebaseError, ValueError) as e:
        # Certificate fetch failure or Firebase app not initialised
        logger.error(f"Vérification du jeton impossible: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable",
        )


async def get_current_user(
    claims: Dict[str, Any] = Depends(verify_firebase_token)
) -> UserProfile:
    """Principal du demandeur; le rôle vient du custom claim ``role``."""
    return UserProfile.from_claims(claims)


async def get_current_admin(
    user: UserProfile = Depends(get_current_user)
) -> UserProfile:
    """403 unless the caller carries the admin role."""
    if not user.is_admin:
        logger.warning(f"Non-admin user {user.uid} attempted admin action")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user
