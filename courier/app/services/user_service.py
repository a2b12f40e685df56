"""
User management service.

Registration, credential checks, profile updates and the admin user
operations. Token revocation and audit logging stay in the endpoints.
"""

import logging
from typing import Any, Dict, Mapping

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.core.exceptions import (
    AuthenticationError, ConflictError, InsufficientPermissionsError,
    ResourceNotFoundError, ValidationFailedError
)
from courier.app.core.security import get_password_hash, verify_password
from courier.app.models.enums import UserRole
from courier.app.models.parcel import Parcel
from courier.app.models.user import User
from courier.app.schemas.auth import UserRegister, UserResponse
from courier.app.schemas.user import ProfileUpdate
from courier.app.services.query_builder import QueryBuilder, USER_QUERY_FIELDS

logger = logging.getLogger(__name__)

USER_SEARCHABLE_FIELDS = ["name", "email", "phone"]


class UserService:

    @staticmethod
    async def create_user(db: AsyncSession, data: UserRegister) -> User:
        """Create a user; emails are unique case-insensitively."""
        email = data.email.lower()
        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("User with this email already exists", details={"email": email})

        user = User(
            name=data.name.strip(),
            email=email,
            phone=data.phone,
            address=data.address.model_dump(by_alias=True) if data.address else None,
            hashed_password=get_password_hash(data.password),
            role=data.role,
            is_blocked=False
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("User with this email already exists", details={"email": email})

        await db.refresh(user)
        logger.info("Registered user %s with role %s", user.id, user.role.value)
        return user

    @staticmethod
    async def authenticate(db: AsyncSession, email: str, password: str) -> User:
        """
        Check credentials.

        Raises:
            AuthenticationError: unknown email or wrong password
            InsufficientPermissionsError: the account is blocked
        """
        result = await db.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()

        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Invalid credentials")

        if user.is_blocked:
            raise InsufficientPermissionsError("Your account is blocked")

        return user

    @staticmethod
    async def get_user(db: AsyncSession, user_id: int) -> User:
        user = await db.get(User, user_id)
        if not user:
            raise ResourceNotFoundError("User", user_id)
        return user

    @staticmethod
    async def list_users(db: AsyncSession, raw_query: Mapping[str, Any]) -> Dict[str, Any]:
        builder = (
            QueryBuilder(User, USER_QUERY_FIELDS, raw_query)
            .search(USER_SEARCHABLE_FIELDS)
            .filter()
            .sort()
            .paginate()
            .fields()
        )
        users = await builder.execute(db)
        return {
            "items": [
                builder.project(UserResponse.model_validate(user).model_dump(by_alias=True, mode="json"))
                for user in users
            ],
            "meta": await builder.get_meta(db),
        }

    @staticmethod
    async def update_profile(db: AsyncSession, user_id: int, data: ProfileUpdate) -> User:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationFailedError("No fields provided for update")

        user = await UserService.get_user(db, user_id)

        if "name" in changes:
            user.name = changes["name"].strip()
        if "phone" in changes:
            user.phone = changes["phone"]
        if data.address is not None:
            address = dict(user.address or {})
            address.update(data.address.model_dump(by_alias=True, exclude_unset=True, exclude_none=True))
            user.address = address

        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def change_password(db: AsyncSession, user_id: int, current_password: str, new_password: str) -> None:
        user = await UserService.get_user(db, user_id)

        if not verify_password(current_password, user.hashed_password):
            raise ValidationFailedError("Current password is incorrect")

        if current_password == new_password:
            raise ValidationFailedError("New password must be different from current password")

        user.hashed_password = get_password_hash(new_password)
        await db.commit()
        logger.info("Password changed for user %s", user_id)

    @staticmethod
    async def update_role(db: AsyncSession, user_id: int, role: UserRole, admin_id: int) -> User:
        if user_id == admin_id:
            raise ValidationFailedError("Cannot change your own role")

        user = await UserService.get_user(db, user_id)
        user.role = role
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def set_blocked(db: AsyncSession, user_id: int, is_blocked: bool, admin_id: int) -> User:
        if user_id == admin_id:
            raise ValidationFailedError("Cannot block yourself")

        user = await UserService.get_user(db, user_id)

        if is_blocked and user.role == UserRole.ADMIN:
            raise InsufficientPermissionsError("Cannot block another admin user")

        if user.is_blocked == is_blocked:
            raise ConflictError(f"User is already {'blocked' if is_blocked else 'active'}")

        user.is_blocked = is_blocked
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def delete_user(db: AsyncSession, user_id: int, admin_id: int) -> None:
        if user_id == admin_id:
            raise ValidationFailedError("Cannot delete yourself")

        user = await UserService.get_user(db, user_id)

        sent = await db.execute(select(func.count(Parcel.id)).where(Parcel.sender_id == user_id))
        if sent.scalar():
            raise ConflictError("Cannot delete a user who has sent parcels", details={"user_id": user_id})

        await db.delete(user)
        await db.commit()
        logger.info("Deleted user %s", user_id)
