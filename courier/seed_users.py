"""
Database seeding script for initial users.

Creates ADMIN, SENDER, and RECEIVER users for testing and development.
Run this script after database is set up but before first use.
"""

import asyncio

from courier.app.db.session import AsyncSessionLocal, engine, Base
from courier.app.models.user import User
# Register the remaining tables for create_all
from courier.app.models.parcel import Parcel, ParcelStatusLog
from courier.app.models.audit_log import AuditLog
from courier.app.models.enums import UserRole
from courier.app.core.security import get_password_hash
from sqlalchemy import select

SEED_ADDRESS = {
    "street": "1 Depot Road",
    "city": "Dhaka",
    "state": "Dhaka",
    "zipCode": "1207",
    "country": "Bangladesh",
}

SEED_USERS = [
    ("Platform Admin", "admin@courier.com", "admin123", UserRole.ADMIN),
    ("Demo Sender", "sender@courier.com", "sender123", UserRole.SENDER),
    ("Demo Receiver", "receiver@courier.com", "receiver123", UserRole.RECEIVER),
]


async def seed_users():
    """
    Seed initial users with different roles.

    Creates:
    - 1 ADMIN user
    - 1 SENDER user
    - 1 RECEIVER user
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting user seeding...")

        # Check if ADMIN already exists
        result = await db.execute(
            select(User).where(User.email == "admin@courier.com")
        )
        if result.scalar_one_or_none():
            print("ℹ️  ADMIN user already exists, skipping seeding")
            return

        for name, email, password, role in SEED_USERS:
            db.add(User(
                name=name,
                email=email,
                phone="+8801700000000",
                address=SEED_ADDRESS,
                hashed_password=get_password_hash(password),
                role=role,
                is_blocked=False
            ))
            print(f"✅ Created {role.value.upper()} user ({email} / {password})")

        await db.commit()

        print("\n🎉 User seeding completed successfully!")
        print("\nNote: senders and receivers can also register via POST /v1/auth/register")


if __name__ == "__main__":
    asyncio.run(seed_users())
