"""
Centralized Test Configuration.
"""

import itertools
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from courier.app.main import app
from courier.app.core.config import settings
from courier.app.core.jwt import create_user_token
from courier.app.core.security import get_password_hash
from courier.app.db.session import get_db, Base
from courier.app.models.enums import UserRole
from courier.app.models.user import User
from courier.app.models.parcel import Parcel, ParcelStatusLog
from courier.app.models.parcel_enums import ParcelStatus, ParcelType, Urgency, UpdatedByKind
from courier.app.services.fee_calculator import compute_fee
import courier.app.core.redis_client as redis_client_module

# Hashing cost is irrelevant for tests
settings.bcrypt_rounds = 4

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True

    async def setex(self, key, time, value):
        self.store[key] = value
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        return 1 if key in self.store else 0

    async def flushdb(self):
        self.store = {}


@pytest.fixture(scope="session")
def mock_redis():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(mock_redis):
    """Apply overrides once for the session."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture
async def setup_database(mock_redis):
    """Create tables for one test function and drop them after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await mock_redis.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(setup_database):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation and service-level tests
@pytest.fixture
async def db_session(setup_database):
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory(setup_database):
    """Independent sessions for simulating concurrent requests."""
    return TestingSessionLocal


@pytest.fixture
def make_user(db_session):
    """Factory inserting a user directly into the database."""
    async def _make_user(
        email: str,
        role: UserRole = UserRole.SENDER,
        name: str = "Test User",
        password: str = "password123",
        is_blocked: bool = False
    ) -> User:
        user = User(
            name=name,
            email=email,
            phone="+8801711111111",
            address={
                "street": "12 Test Lane",
                "city": "Dhaka",
                "state": "Dhaka",
                "zipCode": "1207",
                "country": "Bangladesh",
            },
            hashed_password=get_password_hash(password),
            role=role,
            is_blocked=is_blocked
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture
async def admin(make_user):
    return await make_user("admin@test.com", UserRole.ADMIN, name="Admin")


@pytest.fixture
async def sender(make_user):
    return await make_user("sender@test.com", UserRole.SENDER, name="Sender")


@pytest.fixture
async def receiver(make_user):
    return await make_user("receiver@test.com", UserRole.RECEIVER, name="Receiver")


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def sender_headers(sender):
    return auth_headers(sender)


@pytest.fixture
def receiver_headers(receiver):
    return auth_headers(receiver)


@pytest.fixture
def make_parcel(db_session):
    """Factory inserting a parcel in any status, bypassing the lifecycle."""
    counter = itertools.count(100001)

    async def _make_parcel(
        sender: User,
        status: ParcelStatus = ParcelStatus.REQUESTED,
        receiver_email: str = "receiver@test.com",
        receiver_name: str = "Rita Receiver",
        weight: float = 1.0,
        urgency: Urgency = Urgency.STANDARD,
        description: str = "Books and documents",
        created_at: datetime = None,
        delivered_at: datetime = None,
        is_blocked: bool = False
    ) -> Parcel:
        created_at = created_at or datetime.now(timezone.utc)
        fee = compute_fee(weight, urgency)
        parcel = Parcel(
            tracking_id=f"TRK-{created_at:%Y%m%d}-{next(counter)}",
            sender_id=sender.id,
            receiver_name=receiver_name,
            receiver_email=receiver_email,
            receiver_phone="+8801722222222",
            receiver_address={"street": "34 Lake Road", "city": "Chattogram"},
            parcel_type=ParcelType.PACKAGE,
            weight_kg=weight,
            description=description,
            urgency=urgency,
            base_fee=fee.base_fee,
            weight_fee=fee.weight_fee,
            urgency_fee=fee.urgency_fee,
            total_fee=fee.total_fee,
            current_status=status,
            is_blocked=is_blocked,
            is_cancelled=status == ParcelStatus.CANCELLED,
            delivered_at=delivered_at,
            created_at=created_at,
            updated_at=created_at,
            status_history=[
                ParcelStatusLog(
                    status=status,
                    timestamp=created_at,
                    updated_by_kind=UpdatedByKind.USER,
                    updated_by_user_id=sender.id,
                    updated_by_email=sender.email,
                    note="Seeded"
                )
            ]
        )
        db_session.add(parcel)
        await db_session.commit()
        # Callers reload through the service so relationships come back fully loaded
        db_session.expunge(parcel)
        return parcel

    return _make_parcel


@pytest.fixture
def parcel_payload():
    """Builder for a valid create-parcel request body."""
    def _payload(
        receiver_email: str = "receiver@test.com",
        weight: float = 1.0,
        urgency: str = "standard",
        description: str = "Books and documents"
    ) -> dict:
        return {
            "receiver": {
                "name": "Rita Receiver",
                "email": receiver_email,
                "phone": "+880 1722-222222",
                "address": {
                    "street": "34 Lake Road",
                    "city": "Chattogram",
                    "state": "Chattogram",
                    "zipCode": "4000",
                    "country": "Bangladesh",
                },
            },
            "parcelDetails": {
                "type": "package",
                "weight": weight,
                "dimensions": {"length": 30, "width": 20, "height": 10},
                "description": description,
            },
            "deliveryInfo": {"urgency": urgency},
        }

    return _payload
