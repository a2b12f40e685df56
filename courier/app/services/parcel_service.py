"""
Parcel lifecycle service.

Owns every write to a parcel. Status changes from all actors (admin status
updates, sender cancellation, receiver confirmation) go through
ParcelService.transition(), which checks the lifecycle graph and writes the
status, its side effects and the history entry in one transaction.

Every write is guarded by the parcel's version counter: the UPDATE only
matches the version that was read, so a concurrent writer makes the second
request fail with ConcurrentModificationError instead of silently
overwriting.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from courier.app.core.config import settings
from courier.app.core.exceptions import (
    ConcurrentModificationError, ConflictError, InsufficientPermissionsError,
    InvalidTransitionError, ResourceNotFoundError, TrackingIdGenerationError,
    ValidationFailedError
)
from courier.app.models.enums import UserRole
from courier.app.models.parcel import Parcel, ParcelStatusLog
from courier.app.models.parcel_enums import (
    ParcelStatus, PRE_DISPATCH_STATUSES, UpdatedByKind, can_transition
)
from courier.app.models.user import User, utcnow
from courier.app.schemas.parcel import (
    AssignPersonnelRequest, ParcelCreate, ParcelResponse, ParcelUpdate, StatusUpdateRequest
)
from courier.app.services.fee_calculator import compute_fee, validate_fee_input
from courier.app.services.query_builder import PARCEL_QUERY_FIELDS, QueryBuilder
from courier.app.services.tracking import generate_tracking_id, is_valid_tracking_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Who a status history entry is attributed to."""
    kind: UpdatedByKind
    user_id: Optional[int] = None
    email: Optional[str] = None

    @classmethod
    def user(cls, user: User) -> "Actor":
        return cls(kind=UpdatedByKind.USER, user_id=user.id, email=user.email)

    @classmethod
    def unregistered(cls, email: str) -> "Actor":
        return cls(kind=UpdatedByKind.UNREGISTERED, email=email)

    def log_entry(self, status: ParcelStatus, **fields) -> ParcelStatusLog:
        return ParcelStatusLog(
            status=status,
            updated_by_kind=self.kind,
            updated_by_user_id=self.user_id,
            updated_by_email=self.email,
            **fields
        )


@dataclass(frozen=True)
class ParcelScope:
    """
    Row-level visibility for parcel listings.

    admin sees everything, a sender sees parcels they sent, a receiver sees
    parcels addressed to their email.
    """
    role: UserRole
    user_id: Optional[int] = None
    email: Optional[str] = None

    @classmethod
    def admin(cls) -> "ParcelScope":
        return cls(role=UserRole.ADMIN)

    @classmethod
    def sender(cls, user_id: int) -> "ParcelScope":
        return cls(role=UserRole.SENDER, user_id=user_id)

    @classmethod
    def receiver(cls, email: str) -> "ParcelScope":
        return cls(role=UserRole.RECEIVER, email=email.lower())

    def criteria(self) -> List[Any]:
        if self.role == UserRole.SENDER:
            return [Parcel.sender_id == self.user_id]
        if self.role == UserRole.RECEIVER:
            return [Parcel.receiver_email == self.email]
        return []

    def searchable_fields(self) -> List[str]:
        if self.role == UserRole.RECEIVER:
            return ["trackingId", "parcelDetails.description"]
        return ["trackingId", "receiver.name", "receiver.email", "parcelDetails.description"]


def _merge(current: Optional[Dict[str, Any]], changes: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(current or {})
    merged.update(changes)
    return merged


class ParcelService:

    # Loading

    @staticmethod
    async def load_parcel(db: AsyncSession, parcel_id: int) -> Parcel:
        """Fetch a parcel with its history, refreshing any stale identity-map copy."""
        result = await db.execute(
            select(Parcel)
            .where(Parcel.id == parcel_id)
            .options(selectinload(Parcel.status_history))
            .execution_options(populate_existing=True)
        )
        parcel = result.unique().scalar_one_or_none()
        if not parcel:
            raise ResourceNotFoundError("Parcel", parcel_id)
        return parcel

    @staticmethod
    async def _actor_for(db: AsyncSession, user_id: int) -> Actor:
        user = await db.get(User, user_id)
        if not user:
            raise ResourceNotFoundError("User", user_id)
        return Actor.user(user)

    # Writes

    @staticmethod
    async def _persist_change(
        db: AsyncSession,
        parcel: Parcel,
        values: Dict[str, Any],
        history_entry: Optional[ParcelStatusLog] = None,
        extra_criteria: Optional[List[Any]] = None
    ) -> Parcel:
        """Version-guarded UPDATE plus optional history row, committed together."""
        parcel_id = parcel.id
        stmt = (
            update(Parcel)
            .where(Parcel.id == parcel_id, Parcel.version == parcel.version, *(extra_criteria or []))
            .values(**values, version=Parcel.version + 1)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)

        if result.rowcount != 1:
            await db.rollback()
            logger.warning("Concurrent modification detected on parcel %s", parcel_id)
            raise ConcurrentModificationError("Parcel", parcel_id)

        if history_entry is not None:
            history_entry.parcel_id = parcel_id
            db.add(history_entry)

        await db.commit()
        return await ParcelService.load_parcel(db, parcel_id)

    @staticmethod
    async def transition(
        db: AsyncSession,
        parcel: Parcel,
        target: ParcelStatus,
        actor: Actor,
        note: Optional[str] = None,
        location: Optional[str] = None
    ) -> Parcel:
        """
        Move a parcel to a new status.

        Raises:
            ConflictError: the parcel is blocked
            InvalidTransitionError: target is not reachable from the current status
            ConcurrentModificationError: another request changed the parcel first
        """
        if parcel.is_blocked:
            raise ConflictError("Cannot update status of blocked parcel", details={"parcel_id": parcel.id})

        current = parcel.current_status
        if not can_transition(current, target):
            raise InvalidTransitionError(current, target)

        now = utcnow()
        values = {"current_status": target, "updated_at": now}
        if target == ParcelStatus.CANCELLED:
            values["is_cancelled"] = True
        if target == ParcelStatus.DELIVERED:
            values["delivered_at"] = now

        tracking_id = parcel.tracking_id
        updated = await ParcelService._persist_change(
            db,
            parcel,
            values,
            history_entry=actor.log_entry(target, timestamp=now, location=location, note=note),
            extra_criteria=[Parcel.current_status == current, Parcel.is_blocked == False]
        )
        logger.info("Parcel %s moved %s -> %s", tracking_id, current.value, target.value)
        return updated

    @staticmethod
    async def create_parcel(
        db: AsyncSession,
        sender_id: int,
        data: ParcelCreate,
        tracking_id_factory: Callable[[], str] = generate_tracking_id
    ) -> Parcel:
        """
        Create a parcel request in REQUESTED with its first history entry.

        Raises:
            ResourceNotFoundError: sender does not exist
            InsufficientPermissionsError: sender is not a sender or is blocked
            ValidationFailedError: fee inputs are invalid
            TrackingIdGenerationError: no unique tracking ID after the configured attempts
        """
        sender = await db.get(User, sender_id)
        if not sender:
            raise ResourceNotFoundError("User", sender_id)
        if sender.role != UserRole.SENDER:
            raise InsufficientPermissionsError("Only senders can create parcels")
        if sender.is_blocked:
            raise InsufficientPermissionsError("Your account is blocked")

        details = data.parcel_details
        delivery = data.delivery_info

        validation = validate_fee_input(details.weight, delivery.urgency)
        if not validation.is_valid:
            raise ValidationFailedError(validation.errors)

        fee = compute_fee(details.weight, delivery.urgency)
        actor = Actor.user(sender)
        max_attempts = settings.tracking_id_max_attempts

        for attempt in range(1, max_attempts + 1):
            tracking_id = tracking_id_factory()

            if not is_valid_tracking_id(tracking_id):
                logger.warning("Generated malformed tracking ID %r (attempt %s)", tracking_id, attempt)
                continue

            existing = await db.execute(select(Parcel.id).where(Parcel.tracking_id == tracking_id))
            if existing.scalar_one_or_none() is not None:
                logger.warning("Tracking ID collision on %s (attempt %s)", tracking_id, attempt)
                continue

            now = utcnow()
            parcel = Parcel(
                tracking_id=tracking_id,
                sender_id=sender_id,
                receiver_name=data.receiver.name.strip(),
                receiver_email=data.receiver.email.lower(),
                receiver_phone=data.receiver.phone,
                receiver_address=data.receiver.address.model_dump(by_alias=True),
                parcel_type=details.type,
                weight_kg=details.weight,
                dimensions=details.dimensions.model_dump() if details.dimensions else None,
                description=details.description.strip(),
                declared_value=details.value,
                preferred_delivery_date=delivery.preferred_delivery_date,
                delivery_instructions=delivery.delivery_instructions,
                urgency=delivery.urgency,
                base_fee=fee.base_fee,
                weight_fee=fee.weight_fee,
                urgency_fee=fee.urgency_fee,
                total_fee=fee.total_fee,
                discount=fee.discount,
                coupon_code=fee.coupon_code,
                current_status=ParcelStatus.REQUESTED,
                is_blocked=False,
                is_cancelled=False,
                version=1,
                created_at=now,
                updated_at=now,
                status_history=[
                    actor.log_entry(ParcelStatus.REQUESTED, timestamp=now, note="Parcel request created")
                ]
            )
            db.add(parcel)

            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                taken = await db.execute(select(Parcel.id).where(Parcel.tracking_id == tracking_id))
                if taken.scalar_one_or_none() is None:
                    # Not a tracking ID race
                    logger.error("Parcel insert for sender %s violated a constraint", sender_id)
                    raise
                logger.warning("Tracking ID %s taken on insert (attempt %s)", tracking_id, attempt)
                continue

            logger.info("Created parcel %s for sender %s", tracking_id, sender_id)
            return await ParcelService.load_parcel(db, parcel.id)

        logger.error("Could not generate a unique tracking ID after %s attempts", max_attempts)
        raise TrackingIdGenerationError(max_attempts)

    @staticmethod
    async def update_parcel(db: AsyncSession, parcel_id: int, sender_id: int, data: ParcelUpdate) -> Parcel:
        """
        Partial update by the sender before dispatch.

        Nested blocks are merged field by field. Pricing is recomputed from the
        merged values when parcel details or urgency change; discount and
        coupon are kept.
        """
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not any(changes.values()):
            raise ValidationFailedError("No fields provided for update")

        parcel = await ParcelService.load_parcel(db, parcel_id)

        if parcel.sender_id != sender_id:
            raise InsufficientPermissionsError("You can only update your own parcels")
        if parcel.is_blocked:
            raise ConflictError("Cannot update blocked parcel")
        if parcel.is_cancelled:
            raise ConflictError("Cannot update cancelled parcel")
        if parcel.current_status not in PRE_DISPATCH_STATUSES:
            raise ConflictError("Cannot update parcel after it has been dispatched")

        values: Dict[str, Any] = {}

        receiver = changes.get("receiver", {})
        if "name" in receiver:
            values["receiver_name"] = receiver["name"].strip()
        if "email" in receiver:
            values["receiver_email"] = receiver["email"].lower()
        if "phone" in receiver:
            values["receiver_phone"] = receiver["phone"]
        if receiver.get("address"):
            values["receiver_address"] = _merge(
                parcel.receiver_address,
                data.receiver.address.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
            )

        details = changes.get("parcel_details", {})
        if "type" in details:
            values["parcel_type"] = details["type"]
        if "weight" in details:
            values["weight_kg"] = details["weight"]
        if details.get("dimensions"):
            values["dimensions"] = _merge(parcel.dimensions, details["dimensions"])
        if "description" in details:
            values["description"] = details["description"].strip()
        if "value" in details:
            values["declared_value"] = details["value"]

        delivery = changes.get("delivery_info", {})
        if "preferred_delivery_date" in delivery:
            values["preferred_delivery_date"] = delivery["preferred_delivery_date"]
        if "delivery_instructions" in delivery:
            values["delivery_instructions"] = delivery["delivery_instructions"]
        if "urgency" in delivery:
            values["urgency"] = delivery["urgency"]

        if details or "urgency" in delivery:
            weight = values.get("weight_kg", parcel.weight_kg)
            urgency = values.get("urgency", parcel.urgency)

            validation = validate_fee_input(weight, urgency)
            if not validation.is_valid:
                raise ValidationFailedError(validation.errors)

            fee = compute_fee(weight, urgency, discount=parcel.discount or 0, coupon_code=parcel.coupon_code)
            values.update(
                base_fee=fee.base_fee,
                weight_fee=fee.weight_fee,
                urgency_fee=fee.urgency_fee,
                total_fee=fee.total_fee,
                discount=fee.discount,
                coupon_code=fee.coupon_code,
            )

        values["updated_at"] = utcnow()
        return await ParcelService._persist_change(
            db, parcel, values, extra_criteria=[Parcel.is_blocked == False, Parcel.is_cancelled == False]
        )

    @staticmethod
    async def cancel_parcel(db: AsyncSession, parcel_id: int, sender_id: int, reason: Optional[str] = None) -> Parcel:
        parcel = await ParcelService.load_parcel(db, parcel_id)

        if parcel.sender_id != sender_id:
            raise InsufficientPermissionsError("You can only cancel your own parcels")
        if parcel.is_cancelled:
            raise ConflictError("Parcel is already cancelled")
        if parcel.current_status not in PRE_DISPATCH_STATUSES:
            raise ConflictError("Cannot cancel parcel after it has been dispatched")

        actor = await ParcelService._actor_for(db, sender_id)
        return await ParcelService.transition(
            db, parcel, ParcelStatus.CANCELLED, actor, note=reason or "Cancelled by sender"
        )

    @staticmethod
    async def update_status(db: AsyncSession, parcel_id: int, admin_id: int, data: StatusUpdateRequest) -> Parcel:
        """Admin status change; the route guard enforces the admin role."""
        parcel = await ParcelService.load_parcel(db, parcel_id)
        actor = await ParcelService._actor_for(db, admin_id)
        return await ParcelService.transition(
            db, parcel, data.status, actor, note=data.note, location=data.location
        )

    @staticmethod
    async def confirm_delivery(
        db: AsyncSession,
        parcel_id: int,
        receiver_email: str,
        note: Optional[str] = None
    ) -> Parcel:
        """
        Receiver confirms an OUT_FOR_DELIVERY parcel as DELIVERED.

        Receivers without an account are recorded as unregistered and their
        email is kept in the history note.
        """
        email = receiver_email.lower()
        parcel = await ParcelService.load_parcel(db, parcel_id)

        if parcel.receiver_email.lower() != email:
            raise InsufficientPermissionsError("You can only confirm delivery for parcels addressed to you")

        if parcel.current_status != ParcelStatus.OUT_FOR_DELIVERY:
            raise InvalidTransitionError(
                parcel.current_status,
                ParcelStatus.DELIVERED,
                message="Parcel must be out for delivery to confirm delivery"
            )

        result = await db.execute(select(User).where(User.email == email))
        receiver = result.scalar_one_or_none()

        if receiver:
            actor = Actor.user(receiver)
            note = note or "Delivery confirmed by receiver"
        else:
            actor = Actor.unregistered(email)
            note = f"Delivery confirmed by non-registered receiver: {email}" + (f" - {note}" if note else "")

        return await ParcelService.transition(db, parcel, ParcelStatus.DELIVERED, actor, note=note)

    @staticmethod
    async def set_blocked(
        db: AsyncSession,
        parcel_id: int,
        admin_id: int,
        is_blocked: bool,
        reason: Optional[str] = None
    ) -> Parcel:
        """Block or unblock a parcel; the status is left as it is."""
        parcel = await ParcelService.load_parcel(db, parcel_id)
        actor = await ParcelService._actor_for(db, admin_id)

        note = f"Parcel {'blocked' if is_blocked else 'unblocked'} by admin"
        if reason:
            note = f"{note}: {reason}"

        now = utcnow()
        return await ParcelService._persist_change(
            db,
            parcel,
            {"is_blocked": is_blocked, "updated_at": now},
            history_entry=actor.log_entry(parcel.current_status, timestamp=now, note=note)
        )

    @staticmethod
    async def assign_personnel(db: AsyncSession, parcel_id: int, data: AssignPersonnelRequest) -> Parcel:
        parcel = await ParcelService.load_parcel(db, parcel_id)

        if parcel.is_blocked:
            raise ConflictError("Cannot assign personnel to blocked parcel")

        name, phone = data.name, data.phone
        if data.user_id is not None:
            personnel = await db.get(User, data.user_id)
            if not personnel:
                raise ResourceNotFoundError("User", data.user_id)
            name = name or personnel.name
            phone = phone or personnel.phone

        return await ParcelService._persist_change(
            db,
            parcel,
            {
                "delivery_personnel_id": data.user_id,
                "delivery_personnel_name": name,
                "delivery_personnel_phone": phone,
                "updated_at": utcnow(),
            },
            extra_criteria=[Parcel.is_blocked == False]
        )

    @staticmethod
    async def delete_parcel(db: AsyncSession, parcel_id: int) -> None:
        parcel = await ParcelService.load_parcel(db, parcel_id)
        tracking_id = parcel.tracking_id
        await db.delete(parcel)
        await db.commit()
        logger.info("Deleted parcel %s", tracking_id)

    # Reads

    @staticmethod
    async def get_parcel(db: AsyncSession, parcel_id: int, user_id: int, role: Any) -> Parcel:
        """Fetch a parcel visible to its sender, its receiver or an admin."""
        parcel = await ParcelService.load_parcel(db, parcel_id)

        if UserRole(role) == UserRole.ADMIN or parcel.sender_id == user_id:
            return parcel

        actor = await db.get(User, user_id)
        if actor and actor.email.lower() == parcel.receiver_email.lower():
            return parcel

        raise InsufficientPermissionsError("You do not have permission to view this parcel")

    @staticmethod
    async def track_parcel(db: AsyncSession, tracking_id: str) -> Parcel:
        if not is_valid_tracking_id(tracking_id):
            raise ValidationFailedError("Invalid tracking ID format")

        result = await db.execute(
            select(Parcel)
            .where(Parcel.tracking_id == tracking_id)
            .options(selectinload(Parcel.status_history))
        )
        parcel = result.unique().scalar_one_or_none()
        if not parcel:
            raise ResourceNotFoundError("Parcel", message="Parcel not found with this tracking ID")
        return parcel

    @staticmethod
    async def list_parcels(db: AsyncSession, scope: ParcelScope, raw_query: Mapping[str, Any]) -> Dict[str, Any]:
        """List parcels under a visibility scope; returns {items, meta}."""
        builder = (
            QueryBuilder(Parcel, PARCEL_QUERY_FIELDS, raw_query, scope.criteria())
            .search(scope.searchable_fields())
            .filter()
            .sort()
            .paginate()
            .fields()
        )
        parcels = await builder.execute(db)
        return {
            "items": [builder.project(ParcelResponse.from_model(parcel).to_wire()) for parcel in parcels],
            "meta": await builder.get_meta(db),
        }
