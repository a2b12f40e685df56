"""
Audit logging service for tracking security events and admin actions.

Provides centralized logging for compliance and security monitoring.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from courier.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    USER_CREATED = "USER_CREATED"
    USER_BLOCKED = "USER_BLOCKED"
    USER_UNBLOCKED = "USER_UNBLOCKED"
    USER_DELETED = "USER_DELETED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    ROLE_CHANGED = "ROLE_CHANGED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"

    # Parcel lifecycle
    PARCEL_CREATED = "PARCEL_CREATED"
    PARCEL_UPDATED = "PARCEL_UPDATED"
    PARCEL_CANCELLED = "PARCEL_CANCELLED"
    PARCEL_STATUS_CHANGED = "PARCEL_STATUS_CHANGED"
    PARCEL_DELIVERY_CONFIRMED = "PARCEL_DELIVERY_CONFIRMED"
    PARCEL_BLOCKED = "PARCEL_BLOCKED"
    PARCEL_UNBLOCKED = "PARCEL_UNBLOCKED"
    PERSONNEL_ASSIGNED = "PERSONNEL_ASSIGNED"
    PARCEL_DELETED = "PARCEL_DELETED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_email: Optional[str] = None,
    target_user_id: Optional[int] = None,
    target_parcel_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log a security or admin event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_email: Email of actor
        target_user_id: ID of user being acted upon (if applicable)
        target_parcel_id: ID of parcel being acted upon (if applicable)
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_email=actor_email,
        action=action,
        target_user_id=target_user_id,
        target_parcel_id=target_parcel_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def log_parcel_event(
    db: AsyncSession,
    actor: Dict[str, Any],
    action: str,
    parcel_id: int,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Log a parcel event on behalf of the authenticated principal."""
    return await log_event(
        db=db,
        action=action,
        actor_id=actor.get("user_id"),
        actor_email=actor.get("email"),
        target_parcel_id=parcel_id,
        metadata=metadata
    )


async def log_admin_action(
    db: AsyncSession,
    admin: Dict[str, Any],
    action: str,
    target_user_id: int,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """Log an admin action on a user (block, unblock, role change, delete)."""
    return await log_event(
        db=db,
        action=action,
        actor_id=admin.get("user_id"),
        actor_email=admin.get("email"),
        target_user_id=target_user_id,
        metadata=metadata
    )


async def get_audit_trail(
    db: AsyncSession,
    target_user_id: Optional[int] = None,
    target_parcel_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if target_user_id:
        query = query.where(AuditLog.target_user_id == target_user_id)

    if target_parcel_id:
        query = query.where(AuditLog.target_parcel_id == target_parcel_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
