"""
Shared Pydantic building blocks.

API payloads use camelCase on the wire; models accept either spelling.
"""

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional


class CamelModel(BaseModel):
    """Base schema with camelCase aliases."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class Address(CamelModel):
    street: str = Field(..., min_length=1, description="Street")
    city: str = Field(..., min_length=1, description="City")
    state: str = Field(..., min_length=1, description="State")
    zip_code: str = Field(..., min_length=1, description="Zip code")
    country: str = Field(..., min_length=1, description="Country")


class AddressUpdate(CamelModel):
    street: Optional[str] = Field(None, min_length=1)
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=1)
    zip_code: Optional[str] = Field(None, min_length=1)
    country: Optional[str] = Field(None, min_length=1)


class PageMeta(CamelModel):
    """Pagination metadata for list responses."""
    page: int
    limit: int
    total: int
    total_page: int


class MessageResponse(CamelModel):
    success: bool = True
    message: str
