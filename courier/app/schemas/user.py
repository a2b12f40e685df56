"""
User self-service schemas.
"""

from pydantic import Field
from typing import Optional
from courier.app.schemas.common import AddressUpdate, CamelModel
from courier.app.schemas.parcel import PHONE_PATTERN


class ProfileUpdate(CamelModel):
    """Fields a user may change on their own profile."""
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[AddressUpdate] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, description="New password (min 6 characters)")
