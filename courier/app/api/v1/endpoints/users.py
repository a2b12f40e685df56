"""
User self-service endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from courier.app.db.session import get_db
from courier.app.core.dependencies import get_current_user
from courier.app.schemas.auth import UserResponse
from courier.app.schemas.common import MessageResponse
from courier.app.schemas.user import ProfileUpdate, ChangePasswordRequest
from courier.app.services.audit import log_event, AuditAction
from courier.app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])


@router.patch("/me", response_model=UserResponse)
async def update_my_profile(
    profile: ProfileUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update name, phone or address of the current user."""
    user = await UserService.update_profile(db, current_user["user_id"], profile)
    return UserResponse.model_validate(user)


@router.post("/me/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Change the current user's password."""
    await UserService.change_password(
        db, current_user["user_id"], request.current_password, request.new_password
    )

    await log_event(
        db=db,
        action=AuditAction.PASSWORD_CHANGED,
        actor_id=current_user["user_id"],
        actor_email=current_user["email"],
        target_user_id=current_user["user_id"]
    )

    return MessageResponse(message="Password changed successfully")
