"""
Authentication API endpoints.

Provides register, login, logout and user info endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from courier.app.db.session import get_db
from courier.app.models.enums import UserRole
from courier.app.schemas.auth import UserRegister, UserLogin, TokenResponse, UserResponse
from courier.app.schemas.common import MessageResponse
from courier.app.core.dependencies import get_current_user
from courier.app.core.exceptions import AuthenticationError, InsufficientPermissionsError
from courier.app.core.jwt import create_user_token
from courier.app.core.token_revocation import revoke_token
from courier.app.services.audit import log_event, AuditAction
from courier.app.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new sender or receiver.

    ADMIN role cannot be created via API.
    """
    if user_data.role == UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin users cannot be registered via API"
        )

    new_user = await UserService.create_user(db, user_data)

    await log_event(
        db=db,
        action=AuditAction.USER_CREATED,
        actor_id=new_user.id,
        actor_email=new_user.email,
        target_user_id=new_user.id,
        metadata={"role": new_user.role.value}
    )

    return TokenResponse(
        access_token=create_user_token(new_user),
        token_type="bearer",
        user=UserResponse.model_validate(new_user)
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    """
    Login user and return JWT token.

    Logs successful and failed login attempts for security monitoring.
    """
    try:
        user = await UserService.authenticate(db, credentials.email, credentials.password)
    except (AuthenticationError, InsufficientPermissionsError) as exc:
        await log_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            actor_email=credentials.email.lower(),
            metadata={"reason": exc.message}
        )
        raise

    await log_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        actor_id=user.id,
        actor_email=user.email
    )

    return TokenResponse(
        access_token=create_user_token(user),
        token_type="bearer",
        user=UserResponse.model_validate(user)
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Revoke the token used for this request."""
    await revoke_token(current_user["token"], current_user["user_id"])

    await log_event(
        db=db,
        action=AuditAction.TOKEN_REVOKED,
        actor_id=current_user["user_id"],
        actor_email=current_user["email"]
    )

    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get current authenticated user information.

    Requires valid JWT token in Authorization header.
    """
    user = await UserService.get_user(db, current_user["user_id"])
    return UserResponse.model_validate(user)
