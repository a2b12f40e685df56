"""
Parcel API Endpoints.

Senders create, edit and cancel parcel requests, receivers follow and
confirm parcels addressed to them, admins drive the delivery lifecycle.
Tracking by tracking ID is public.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.core.dependencies import get_current_user
from courier.app.core.guards import require_admin, require_role
from courier.app.db.session import get_db
from courier.app.models.enums import UserRole
from courier.app.models.parcel_enums import ParcelStatus
from courier.app.schemas.common import MessageResponse, PageMeta
from courier.app.schemas.parcel import (
    AssignPersonnelRequest, BlockParcelRequest, CancelParcelRequest, ConfirmDeliveryRequest,
    ParcelCreate, ParcelListResponse, ParcelResponse, ParcelStatsResponse, ParcelUpdate,
    StatusLogResponse, StatusUpdateRequest
)
from courier.app.services.analytics import AnalyticsService
from courier.app.services.audit import AuditAction, log_parcel_event
from courier.app.services.parcel_service import ParcelScope, ParcelService

router = APIRouter(prefix="/parcels", tags=["Parcels"])


def _list_response(result: dict) -> ParcelListResponse:
    return ParcelListResponse(items=result["items"], meta=PageMeta(**result["meta"]))


@router.get("/track/{tracking_id}", response_model=ParcelResponse)
async def track_parcel(
    tracking_id: str = Path(..., description="Tracking ID, e.g. TRK-20240115-483920"),
    db: AsyncSession = Depends(get_db)
):
    """Public parcel tracking by tracking ID."""
    parcel = await ParcelService.track_parcel(db, tracking_id.strip())
    return ParcelResponse.from_model(parcel)


@router.post("", response_model=ParcelResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    current_user: dict = Depends(require_role([UserRole.SENDER])),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a parcel request (Sender only).

    The fee is computed from weight and urgency and a tracking ID is issued.
    """
    parcel = await ParcelService.create_parcel(db, current_user["user_id"], parcel_data)

    await log_parcel_event(
        db,
        current_user,
        AuditAction.PARCEL_CREATED,
        parcel.id,
        metadata={"tracking_id": parcel.tracking_id, "total_fee": parcel.total_fee}
    )

    return ParcelResponse.from_model(parcel)


@router.get("/my-sent", response_model=ParcelListResponse)
async def list_sent_parcels(
    request: Request,
    current_user: dict = Depends(require_role([UserRole.SENDER])),
    db: AsyncSession = Depends(get_db)
):
    """List parcels sent by the current sender."""
    result = await ParcelService.list_parcels(
        db, ParcelScope.sender(current_user["user_id"]), dict(request.query_params)
    )
    return _list_response(result)


@router.get("/my-received", response_model=ParcelListResponse)
async def list_received_parcels(
    request: Request,
    current_user: dict = Depends(require_role([UserRole.RECEIVER])),
    db: AsyncSession = Depends(get_db)
):
    """List parcels addressed to the current receiver's email."""
    result = await ParcelService.list_parcels(
        db, ParcelScope.receiver(current_user["email"]), dict(request.query_params)
    )
    return _list_response(result)


@router.get("/delivery-history", response_model=ParcelListResponse)
async def delivery_history(
    request: Request,
    current_user: dict = Depends(require_role([UserRole.RECEIVER])),
    db: AsyncSession = Depends(get_db)
):
    """Delivered parcels of the current receiver."""
    query = dict(request.query_params)
    query.pop("currentStatus", None)
    query["status"] = ParcelStatus.DELIVERED.value

    result = await ParcelService.list_parcels(db, ParcelScope.receiver(current_user["email"]), query)
    return _list_response(result)


@router.get("", response_model=ParcelListResponse)
async def list_all_parcels(
    request: Request,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List all parcels (admin-only).

    Supports search, exact filters, sort, page, limit and fields.
    """
    result = await ParcelService.list_parcels(db, ParcelScope.admin(), dict(request.query_params))
    return _list_response(result)


@router.get("/stats", response_model=ParcelStatsResponse)
async def parcel_stats(
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Parcel counts, monthly revenue and average delivery time (admin-only)."""
    return await AnalyticsService.get_parcel_stats(db)


@router.get("/{parcel_id}", response_model=ParcelResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Parcel details for its sender, its receiver or an admin."""
    parcel = await ParcelService.get_parcel(db, parcel_id, current_user["user_id"], current_user["role"])
    return ParcelResponse.from_model(parcel)


@router.get("/{parcel_id}/status-history", response_model=List[StatusLogResponse])
async def get_status_history(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Status history of a parcel, oldest first."""
    parcel = await ParcelService.get_parcel(db, parcel_id, current_user["user_id"], current_user["role"])
    return [StatusLogResponse.from_model(entry) for entry in parcel.status_history]


@router.patch("/{parcel_id}", response_model=ParcelResponse)
async def update_parcel(
    parcel_data: ParcelUpdate,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.SENDER])),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a parcel request (Sender only).

    Only possible before dispatch and while the parcel is neither blocked
    nor cancelled.
    """
    parcel = await ParcelService.update_parcel(db, parcel_id, current_user["user_id"], parcel_data)

    await log_parcel_event(
        db,
        current_user,
        AuditAction.PARCEL_UPDATED,
        parcel.id,
        metadata={"fields": sorted(parcel_data.model_dump(by_alias=True, exclude_unset=True).keys())}
    )

    return ParcelResponse.from_model(parcel)


@router.patch("/{parcel_id}/cancel", response_model=ParcelResponse)
async def cancel_parcel(
    request_data: Optional[CancelParcelRequest] = None,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.SENDER])),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a parcel request before dispatch (Sender only)."""
    request_data = request_data or CancelParcelRequest()
    parcel = await ParcelService.cancel_parcel(db, parcel_id, current_user["user_id"], request_data.reason)

    await log_parcel_event(
        db,
        current_user,
        AuditAction.PARCEL_CANCELLED,
        parcel.id,
        metadata={"reason": request_data.reason} if request_data.reason else None
    )

    return ParcelResponse.from_model(parcel)


@router.patch("/{parcel_id}/confirm-delivery", response_model=ParcelResponse)
async def confirm_delivery(
    request_data: Optional[ConfirmDeliveryRequest] = None,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.RECEIVER])),
    db: AsyncSession = Depends(get_db)
):
    """Confirm delivery of a parcel that is out for delivery (Receiver only)."""
    request_data = request_data or ConfirmDeliveryRequest()
    parcel = await ParcelService.confirm_delivery(db, parcel_id, current_user["email"], request_data.note)

    await log_parcel_event(db, current_user, AuditAction.PARCEL_DELIVERY_CONFIRMED, parcel.id)

    return ParcelResponse.from_model(parcel)


@router.patch("/{parcel_id}/status", response_model=ParcelResponse)
async def update_parcel_status(
    request_data: StatusUpdateRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Move a parcel along its lifecycle (admin-only).

    Rejected when the parcel is blocked or the target status is not
    reachable from the current one.
    """
    parcel = await ParcelService.update_status(db, parcel_id, admin["user_id"], request_data)

    await log_parcel_event(
        db,
        admin,
        AuditAction.PARCEL_STATUS_CHANGED,
        parcel.id,
        metadata={"status": parcel.current_status.value, "location": request_data.location}
    )

    return ParcelResponse.from_model(parcel)


@router.patch("/{parcel_id}/block", response_model=ParcelResponse)
async def block_parcel(
    request_data: BlockParcelRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Block or unblock a parcel (admin-only)."""
    parcel = await ParcelService.set_blocked(
        db, parcel_id, admin["user_id"], request_data.is_blocked, request_data.reason
    )

    await log_parcel_event(
        db,
        admin,
        AuditAction.PARCEL_BLOCKED if request_data.is_blocked else AuditAction.PARCEL_UNBLOCKED,
        parcel.id,
        metadata={"reason": request_data.reason} if request_data.reason else None
    )

    return ParcelResponse.from_model(parcel)


@router.patch("/{parcel_id}/assign", response_model=ParcelResponse)
async def assign_personnel(
    request_data: AssignPersonnelRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Assign delivery personnel to a parcel (admin-only)."""
    parcel = await ParcelService.assign_personnel(db, parcel_id, request_data)

    await log_parcel_event(
        db,
        admin,
        AuditAction.PERSONNEL_ASSIGNED,
        parcel.id,
        metadata={"user_id": request_data.user_id, "name": parcel.delivery_personnel_name}
    )

    return ParcelResponse.from_model(parcel)


@router.delete("/{parcel_id}", response_model=MessageResponse)
async def delete_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Permanently delete a parcel and its history (admin-only)."""
    await ParcelService.delete_parcel(db, parcel_id)

    await log_parcel_event(db, admin, AuditAction.PARCEL_DELETED, parcel_id)

    return MessageResponse(message="Parcel deleted successfully")
