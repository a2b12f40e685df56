"""
Parcel database models.

A parcel is requested by a sender, moved through its lifecycle by admins and
confirmed by its receiver. Every status change is recorded in ParcelStatusLog.
"""

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, ForeignKey, Enum, Boolean, JSON, Text
)
from sqlalchemy.orm import relationship
from courier.app.db.session import Base
from courier.app.models.parcel_enums import ParcelStatus, ParcelType, Urgency, UpdatedByKind
from courier.app.models.user import utcnow


class Parcel(Base):
    """
    Parcel model for the courier platform.

    Receiver, parcel details, delivery info and pricing are stored as flat
    columns so they can be indexed and filtered; the API exposes them nested.
    """
    __tablename__ = "parcels"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tracking_id = Column(String(20), unique=True, nullable=False, index=True)

    # Ownership
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Receiver snapshot (may describe a non-registered person)
    receiver_name = Column(String(50), nullable=False)
    receiver_email = Column(String(255), nullable=False, index=True)
    receiver_phone = Column(String(30), nullable=False)
    receiver_address = Column(JSON, nullable=False)

    # Parcel details
    parcel_type = Column(Enum(ParcelType), nullable=False)
    weight_kg = Column(Float, nullable=False)
    dimensions = Column(JSON, nullable=True)
    description = Column(String(500), nullable=False)
    declared_value = Column(Float, nullable=True)

    # Delivery information
    preferred_delivery_date = Column(DateTime(timezone=True), nullable=True)
    delivery_instructions = Column(Text, nullable=True)
    urgency = Column(Enum(Urgency), default=Urgency.STANDARD, nullable=False, index=True)

    # Pricing
    base_fee = Column(Float, nullable=False)
    weight_fee = Column(Float, nullable=False)
    urgency_fee = Column(Float, nullable=False)
    total_fee = Column(Float, nullable=False)
    discount = Column(Float, nullable=True)
    coupon_code = Column(String(50), nullable=True)

    # Lifecycle
    current_status = Column(Enum(ParcelStatus), default=ParcelStatus.REQUESTED, nullable=False, index=True)
    is_blocked = Column(Boolean, default=False, nullable=False)
    is_cancelled = Column(Boolean, default=False, nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    # Delivery personnel (reference and/or snapshot)
    delivery_personnel_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    delivery_personnel_name = Column(String(100), nullable=True)
    delivery_personnel_phone = Column(String(30), nullable=True)

    # Optimistic concurrency counter, bumped on every write
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    sender = relationship("User", foreign_keys=[sender_id], lazy="joined")
    status_history = relationship(
        "ParcelStatusLog",
        back_populates="parcel",
        order_by="ParcelStatusLog.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Parcel(id={self.id}, tracking_id='{self.tracking_id}', status='{self.current_status.value}')>"


class ParcelStatusLog(Base):
    """
    Append-only status history entry.

    updated_by_kind tells whether the entry is attributed to a registered
    user (updated_by_user_id) or to an unregistered receiver (updated_by_email).
    """
    __tablename__ = "parcel_status_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    parcel_id = Column(Integer, ForeignKey("parcels.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(Enum(ParcelStatus), nullable=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    updated_by_kind = Column(Enum(UpdatedByKind), default=UpdatedByKind.USER, nullable=False)
    updated_by_user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_email = Column(String(255), nullable=True)

    location = Column(String(255), nullable=True)
    note = Column(String(500), nullable=True)

    parcel = relationship("Parcel", back_populates="status_history")

    def __repr__(self):
        return f"<ParcelStatusLog(parcel_id={self.parcel_id}, status='{self.status.value}')>"
