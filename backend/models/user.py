"""
SmartPark Reservation System - User Models
Defines the authenticated principal handed to the reservation core.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Any, Dict, Optional
from enum import Enum


class UserRole(str, Enum):
    """Enumeration of user roles."""
    USER = "user"
    ADMIN = "admin"


class UserProfile(BaseModel):
    """Verified caller: Firebase uid, email and the role custom claim."""
    uid: str = Field(..., description="Firebase user ID")
    email: Optional[EmailStr] = Field(default=None, description="User email address")
    display_name: Optional[str] = Field(default=None, description="User display name")
    email_verified: bool = Field(default=False, description="Whether email is verified")
    role: UserRole = Field(default=UserRole.USER, description="User role")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "UserProfile":
        """Principal from decoded ID token claims. Any role other than admin is a user."""
        is_admin = claims.get("role") == UserRole.ADMIN.value
        return cls(
            uid=claims["uid"],
            email=claims.get("email"),
            display_name=claims.get("name"),
            email_verified=claims.get("email_verified", False),
            role=UserRole.ADMIN if is_admin else UserRole.USER,
        )
