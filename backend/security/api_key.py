"""
SmartPark Reservation System - API Key Authentication Module
Handles API key validation for payment gateway callbacks.
"""

from fastapi import HTTPException, status, Header
from typing import Optional
import secrets
import logging

from config import get_settings

# Configure logging
logger = logging.getLogger(__name__)


async def verify_gateway_api_key(
    x_gateway_key: Optional[str] = Header(None, alias="X-Gateway-Key"),
) -> dict:
    """
    Verify the API key sent by the payment gateway.

    Args:
        x_gateway_key: API key from request header

    Returns:
        dict: Gateway authentication info

    Raises:
        HTTPException: If API key is invalid or missing
    """
    if not x_gateway_key:
        logger.warning("Gateway request without API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Include 'X-Gateway-Key' header.",
        )

    settings = get_settings()

    # Constant-time comparison
    if not secrets.compare_digest(x_gateway_key, settings.gateway_api_key):
        logger.warning("Invalid gateway API key attempted")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return {
        "authenticated": True,
        "type": "gateway"
    }
