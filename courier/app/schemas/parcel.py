"""
Parcel Pydantic schemas.

Defines request and response models for parcel lifecycle endpoints.
The wire shape is nested (receiver, parcelDetails, deliveryInfo, pricing)
while storage is flat; ParcelResponse.from_model() does the mapping.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from courier.app.models.parcel import Parcel, ParcelStatusLog
from courier.app.models.parcel_enums import ParcelStatus, ParcelType, Urgency, UpdatedByKind
from courier.app.schemas.common import Address, AddressUpdate, CamelModel, PageMeta

PHONE_PATTERN = r"^\+?[\d\s\-()]+$"


def _ensure_future(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return value
    aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if aware <= datetime.now(timezone.utc):
        raise ValueError("Preferred delivery date must be in the future")
    return aware


# Requests

class Receiver(CamelModel):
    name: str = Field(..., min_length=2, max_length=50, description="Receiver name")
    email: EmailStr = Field(..., description="Receiver email")
    phone: str = Field(..., pattern=PHONE_PATTERN, description="Receiver phone")
    address: Address

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class ReceiverUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[AddressUpdate] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


class Dimensions(CamelModel):
    length: float = Field(..., ge=0.1)
    width: float = Field(..., ge=0.1)
    height: float = Field(..., ge=0.1)


class DimensionsUpdate(CamelModel):
    length: Optional[float] = Field(None, ge=0.1)
    width: Optional[float] = Field(None, ge=0.1)
    height: Optional[float] = Field(None, ge=0.1)


class ParcelDetails(CamelModel):
    type: ParcelType
    weight: float = Field(..., description="Weight in kilograms")
    dimensions: Optional[Dimensions] = None
    description: str = Field(..., min_length=1, max_length=500)
    value: Optional[float] = Field(None, ge=0, description="Declared value")


class ParcelDetailsUpdate(CamelModel):
    type: Optional[ParcelType] = None
    weight: Optional[float] = None
    dimensions: Optional[DimensionsUpdate] = None
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    value: Optional[float] = Field(None, ge=0)


class DeliveryInfo(CamelModel):
    preferred_delivery_date: Optional[datetime] = None
    delivery_instructions: Optional[str] = Field(None, max_length=1000)
    urgency: Urgency = Urgency.STANDARD

    @field_validator("preferred_delivery_date")
    @classmethod
    def future_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_future(value)


class DeliveryInfoUpdate(CamelModel):
    preferred_delivery_date: Optional[datetime] = None
    delivery_instructions: Optional[str] = Field(None, max_length=1000)
    urgency: Optional[Urgency] = None

    @field_validator("preferred_delivery_date")
    @classmethod
    def future_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_future(value)


class ParcelCreate(CamelModel):
    """Schema for creating a parcel request (sender only)."""
    receiver: Receiver
    parcel_details: ParcelDetails
    delivery_info: DeliveryInfo = Field(default_factory=DeliveryInfo)


class ParcelUpdate(CamelModel):
    """Partial update; nested blocks are merged field by field."""
    receiver: Optional[ReceiverUpdate] = None
    parcel_details: Optional[ParcelDetailsUpdate] = None
    delivery_info: Optional[DeliveryInfoUpdate] = None


class StatusUpdateRequest(CamelModel):
    status: ParcelStatus
    location: Optional[str] = Field(None, max_length=255)
    note: Optional[str] = Field(None, max_length=500)


class CancelParcelRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class ConfirmDeliveryRequest(CamelModel):
    note: Optional[str] = Field(None, max_length=500)


class BlockParcelRequest(CamelModel):
    is_blocked: bool
    reason: Optional[str] = Field(None, max_length=500)


class AssignPersonnelRequest(CamelModel):
    """Either a registered user id or a free-text name/phone snapshot."""
    user_id: Optional[int] = None
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    @model_validator(mode="after")
    def require_reference(self):
        if self.user_id is None and not self.name:
            raise ValueError("Either userId or name is required")
        return self


# Responses

class SenderSummary(CamelModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None


class UpdatedBy(CamelModel):
    kind: UpdatedByKind
    id: Optional[int] = None
    email: Optional[str] = None


class StatusLogResponse(CamelModel):
    status: ParcelStatus
    timestamp: datetime
    updated_by: UpdatedBy
    location: Optional[str] = None
    note: Optional[str] = None

    @classmethod
    def from_model(cls, entry: ParcelStatusLog) -> "StatusLogResponse":
        return cls(
            status=entry.status,
            timestamp=entry.timestamp,
            updated_by=UpdatedBy(
                kind=entry.updated_by_kind,
                id=entry.updated_by_user_id,
                email=entry.updated_by_email,
            ),
            location=entry.location,
            note=entry.note,
        )


class ReceiverResponse(CamelModel):
    name: str
    email: str
    phone: str
    address: Dict[str, Any]


class ParcelDetailsResponse(CamelModel):
    type: ParcelType
    weight: float
    dimensions: Optional[Dict[str, Any]] = None
    description: str
    value: Optional[float] = None


class DeliveryInfoResponse(CamelModel):
    preferred_delivery_date: Optional[datetime] = None
    delivery_instructions: Optional[str] = None
    urgency: Urgency


class PricingResponse(CamelModel):
    base_fee: float
    weight_fee: float
    urgency_fee: float
    total_fee: float
    discount: Optional[float] = None
    coupon_code: Optional[str] = None


class DeliveryPersonnelResponse(CamelModel):
    id: Optional[int] = None
    name: Optional[str] = None
    phone: Optional[str] = None


class ParcelResponse(CamelModel):
    """Schema for parcel response."""
    id: int
    tracking_id: str
    sender: Optional[SenderSummary] = None
    receiver: ReceiverResponse
    parcel_details: ParcelDetailsResponse
    delivery_info: DeliveryInfoResponse
    pricing: PricingResponse
    current_status: ParcelStatus
    status_history: List[StatusLogResponse]
    is_blocked: bool
    is_cancelled: bool
    delivery_personnel: Optional[DeliveryPersonnelResponse] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, parcel: Parcel) -> "ParcelResponse":
        personnel = None
        if parcel.delivery_personnel_id is not None or parcel.delivery_personnel_name:
            personnel = DeliveryPersonnelResponse(
                id=parcel.delivery_personnel_id,
                name=parcel.delivery_personnel_name,
                phone=parcel.delivery_personnel_phone,
            )

        return cls(
            id=parcel.id,
            tracking_id=parcel.tracking_id,
            sender=SenderSummary.model_validate(parcel.sender) if parcel.sender else None,
            receiver=ReceiverResponse(
                name=parcel.receiver_name,
                email=parcel.receiver_email,
                phone=parcel.receiver_phone,
                address=parcel.receiver_address,
            ),
            parcel_details=ParcelDetailsResponse(
                type=parcel.parcel_type,
                weight=parcel.weight_kg,
                dimensions=parcel.dimensions,
                description=parcel.description,
                value=parcel.declared_value,
            ),
            delivery_info=DeliveryInfoResponse(
                preferred_delivery_date=parcel.preferred_delivery_date,
                delivery_instructions=parcel.delivery_instructions,
                urgency=parcel.urgency,
            ),
            pricing=PricingResponse(
                base_fee=parcel.base_fee,
                weight_fee=parcel.weight_fee,
                urgency_fee=parcel.urgency_fee,
                total_fee=parcel.total_fee,
                discount=parcel.discount,
                coupon_code=parcel.coupon_code,
            ),
            current_status=parcel.current_status,
            status_history=[StatusLogResponse.from_model(entry) for entry in parcel.status_history],
            is_blocked=parcel.is_blocked,
            is_cancelled=parcel.is_cancelled,
            delivery_personnel=personnel,
            delivered_at=parcel.delivered_at,
            created_at=parcel.created_at,
            updated_at=parcel.updated_at,
        )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ParcelListResponse(CamelModel):
    """Paginated parcel list; items may be projected."""
    items: List[Dict[str, Any]]
    meta: PageMeta


class StatusBreakdown(BaseModel):
    """Per-status counts; keys are the raw status values."""
    requested: int = 0
    approved: int = 0
    picked_up: int = 0
    in_transit: int = 0
    out_for_delivery: int = 0
    delivered: int = 0
    cancelled: int = 0
    returned: int = 0
    failed_delivery: int = 0


class ParcelStatsResponse(CamelModel):
    total_parcels: int
    delivered_parcels: int
    in_transit_parcels: int
    pending_parcels: int
    cancelled_parcels: int
    average_delivery_time: str
    revenue_this_month: float
    status_breakdown: StatusBreakdown
