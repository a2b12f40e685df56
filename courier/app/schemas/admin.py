"""
Admin API Schema Definitions.

Pydantic schemas for admin endpoints.
"""

from pydantic import Field
from datetime import datetime
from typing import Any, Dict, List, Optional
from courier.app.models.enums import UserRole
from courier.app.schemas.auth import UserResponse
from courier.app.schemas.common import CamelModel, PageMeta


class UserListResponse(CamelModel):
    """Schema for list users response."""
    items: List[Dict[str, Any]]
    meta: PageMeta


class UpdateRoleRequest(CamelModel):
    role: UserRole


class BlockUserRequest(CamelModel):
    """Schema for blocking or unblocking a user."""
    is_blocked: bool
    reason: Optional[str] = Field(None, max_length=500, description="Reason (for audit log)")


class AdminActionResponse(CamelModel):
    """Schema for admin action response."""
    success: bool
    message: str
    user: Optional[UserResponse] = None
    action: str
    audit_log_id: int


class UserStatsResponse(CamelModel):
    total_users: int
    admin_count: int
    sender_count: int
    receiver_count: int
    blocked_users: int
    active_users: int


class AuditLogResponse(CamelModel):
    """Schema for audit log entry."""
    id: int
    actor_id: Optional[int] = None
    actor_email: Optional[str] = None
    action: str
    target_user_id: Optional[int] = None
    target_parcel_id: Optional[int] = None
    meta_data: Optional[dict] = None
    timestamp: datetime


class AuditTrailResponse(CamelModel):
    """Schema for audit trail list."""
    logs: List[AuditLogResponse]
    total: int
