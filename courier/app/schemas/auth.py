"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import EmailStr, Field, field_validator
from datetime import datetime
from typing import Any, Dict, Optional
from courier.app.models.enums import UserRole
from courier.app.schemas.common import Address, CamelModel
from courier.app.schemas.parcel import PHONE_PATTERN


class UserRegister(CamelModel):
    """
    Schema for user registration.

    Used by POST /auth/register endpoint.
    Default role is SENDER; ADMIN is rejected by the endpoint.
    """
    name: str = Field(..., min_length=2, max_length=50, description="Full name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=6, description="Password (min 6 characters)")
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN, description="Phone number")
    address: Optional[Address] = None
    role: UserRole = Field(default=UserRole.SENDER, description="User role (defaults to SENDER)")

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class UserLogin(CamelModel):
    """
    Schema for user login.

    Used by POST /auth/login endpoint.
    """
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., description="Password")


class UserResponse(CamelModel):
    """
    Schema for user information response.

    Used by GET /auth/me and the admin user endpoints.
    """
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    role: UserRole
    is_blocked: bool
    created_at: datetime
    updated_at: datetime


class TokenResponse(CamelModel):
    """
    Schema for JWT token response.

    Returned by successful login/register operations.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user: UserResponse
