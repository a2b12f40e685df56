"""
Admin API Endpoints.

Provides admin-only user management endpoints with audit logging.
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from courier.app.db.session import get_db
from courier.app.schemas.admin import (
    UserListResponse, UpdateRoleRequest, BlockUserRequest, AdminActionResponse,
    UserStatsResponse, AuditTrailResponse, AuditLogResponse
)
from courier.app.schemas.auth import UserResponse
from courier.app.schemas.common import PageMeta
from courier.app.core.guards import require_admin
from courier.app.core.token_revocation import revoke_all_user_tokens, clear_user_token_revocation
from courier.app.services.analytics import AnalyticsService
from courier.app.services.audit import log_admin_action, AuditAction, get_audit_trail
from courier.app.services.user_service import UserService

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/users", response_model=UserListResponse)
async def list_users(
    request: Request,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    List all users in the system (admin-only).

    Supports search (name, email, phone), exact filters such as role and
    isBlocked, sort, page, limit and fields.
    """
    result = await UserService.list_users(db, dict(request.query_params))
    return UserListResponse(items=result["items"], meta=PageMeta(**result["meta"]))


@router.get("/users/stats", response_model=UserStatsResponse)
async def user_stats(
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """User counts by role and block state (admin-only)."""
    return await AnalyticsService.get_user_stats(db)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Get detailed information about a specific user (admin-only).
    """
    user = await UserService.get_user(db, user_id)
    return UserResponse.model_validate(user)


@router.patch("/users/{user_id}/role", response_model=AdminActionResponse)
async def update_user_role(
    user_id: int,
    request: UpdateRoleRequest,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Change a user's role (admin-only)."""
    # Roles are re-read from the database on every request, so tokens stay valid
    user = await UserService.update_role(db, user_id, request.role, admin["user_id"])

    audit_log = await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.ROLE_CHANGED,
        target_user_id=user.id,
        metadata={"role": user.role.value}
    )

    return AdminActionResponse(
        success=True,
        message=f"User '{user.email}' is now {user.role.value}",
        user=UserResponse.model_validate(user),
        action=AuditAction.ROLE_CHANGED,
        audit_log_id=audit_log.id
    )


@router.patch("/users/{user_id}/block", response_model=AdminActionResponse)
async def set_user_blocked(
    user_id: int,
    request: BlockUserRequest,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Block or unblock a user (admin-only).

    Blocking revokes all active tokens of the user; unblocking clears the
    revocation so the user can login again.
    """
    user = await UserService.set_blocked(db, user_id, request.is_blocked, admin["user_id"])

    if request.is_blocked:
        await revoke_all_user_tokens(user_id)
        action = AuditAction.USER_BLOCKED
    else:
        await clear_user_token_revocation(user_id)
        action = AuditAction.USER_UNBLOCKED

    audit_log = await log_admin_action(
        db=db,
        admin=admin,
        action=action,
        target_user_id=user.id,
        metadata={"reason": request.reason} if request.reason else None
    )

    return AdminActionResponse(
        success=True,
        message=f"User '{user.email}' has been {'blocked' if request.is_blocked else 'unblocked'}",
        user=UserResponse.model_validate(user),
        action=action,
        audit_log_id=audit_log.id
    )


@router.delete("/users/{user_id}", response_model=AdminActionResponse)
async def delete_user(
    user_id: int,
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete a user without sent parcels (admin-only)."""
    await UserService.delete_user(db, user_id, admin["user_id"])
    await revoke_all_user_tokens(user_id)

    audit_log = await log_admin_action(
        db=db,
        admin=admin,
        action=AuditAction.USER_DELETED,
        target_user_id=user_id
    )

    return AdminActionResponse(
        success=True,
        message="User deleted successfully",
        action=AuditAction.USER_DELETED,
        audit_log_id=audit_log.id
    )


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    user_id: int = Query(None, description="Filter by target user ID"),
    parcel_id: int = Query(None, description="Filter by target parcel ID"),
    action: str = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=500, description="Maximum records to return"),
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Get audit trail with optional filtering (admin-only).

    Returns recent audit logs for security monitoring and compliance.
    """
    logs = await get_audit_trail(
        db=db,
        target_user_id=user_id,
        target_parcel_id=parcel_id,
        action=action,
        limit=limit
    )

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
