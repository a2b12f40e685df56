"""
Parcel enumerations and the status transition table.
"""

import enum
from types import MappingProxyType
from typing import FrozenSet, Mapping


class ParcelStatus(str, enum.Enum):
    """
    Parcel status enumeration.

    Status flow:
        REQUESTED → APPROVED → PICKED_UP → IN_TRANSIT → OUT_FOR_DELIVERY → DELIVERED
        REQUESTED / APPROVED can be CANCELLED
        Failed deliveries are retried or RETURNED; returned parcels can be re-requested
    """
    REQUESTED = "requested"
    APPROVED = "approved"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"
    FAILED_DELIVERY = "failed_delivery"


class ParcelType(str, enum.Enum):
    DOCUMENT = "document"
    PACKAGE = "package"
    FRAGILE = "fragile"
    ELECTRONICS = "electronics"
    OTHER = "other"


class Urgency(str, enum.Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    URGENT = "urgent"


class UpdatedByKind(str, enum.Enum):
    """Who a status history entry is attributed to."""
    USER = "user"
    UNREGISTERED = "unregistered"


ALLOWED_TRANSITIONS: Mapping[ParcelStatus, FrozenSet[ParcelStatus]] = MappingProxyType({
    ParcelStatus.REQUESTED: frozenset({ParcelStatus.APPROVED, ParcelStatus.CANCELLED}),
    ParcelStatus.APPROVED: frozenset({ParcelStatus.PICKED_UP, ParcelStatus.CANCELLED}),
    ParcelStatus.PICKED_UP: frozenset({ParcelStatus.IN_TRANSIT, ParcelStatus.RETURNED}),
    ParcelStatus.IN_TRANSIT: frozenset({ParcelStatus.OUT_FOR_DELIVERY, ParcelStatus.FAILED_DELIVERY}),
    ParcelStatus.OUT_FOR_DELIVERY: frozenset({ParcelStatus.DELIVERED, ParcelStatus.FAILED_DELIVERY}),
    ParcelStatus.FAILED_DELIVERY: frozenset({ParcelStatus.OUT_FOR_DELIVERY, ParcelStatus.RETURNED}),
    ParcelStatus.RETURNED: frozenset({ParcelStatus.REQUESTED}),
    ParcelStatus.DELIVERED: frozenset(),
    ParcelStatus.CANCELLED: frozenset(),
})

# Sender edits and cancellation are only possible before dispatch
PRE_DISPATCH_STATUSES: FrozenSet[ParcelStatus] = frozenset({
    ParcelStatus.REQUESTED,
    ParcelStatus.APPROVED,
})


def can_transition(current: ParcelStatus, target: ParcelStatus) -> bool:
    """Return True if the lifecycle graph has an edge current → target."""
    return target in ALLOWED_TRANSITIONS[current]
