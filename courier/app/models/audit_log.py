"""
Audit Log Database Model.

Tracks parcel lifecycle events and admin actions for compliance and support.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from courier.app.db.session import Base
from courier.app.models.user import utcnow


class AuditLog(Base):
    """
    Audit log model for tracking business events and admin actions.

    Events logged:
    - PARCEL_CREATED / PARCEL_UPDATED / PARCEL_CANCELLED / PARCEL_DELETED
    - PARCEL_STATUS_CHANGED / PARCEL_DELIVERY_CONFIRMED
    - PARCEL_BLOCKED / PARCEL_UNBLOCKED / PERSONNEL_ASSIGNED
    - USER_CREATED / USER_BLOCKED / USER_UNBLOCKED / USER_DELETED / ROLE_CHANGED
    - LOGIN_SUCCESS / LOGIN_FAILED / PASSWORD_CHANGED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for anonymous/system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_email = Column(String(255), nullable=True)

    action = Column(String(100), nullable=False, index=True)

    # What was acted upon
    target_user_id = Column(Integer, index=True, nullable=True)
    target_parcel_id = Column(Integer, index=True, nullable=True)

    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_email})>"
