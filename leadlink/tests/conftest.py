import uuid
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from leadlink.common.enums import UserRole, VendorRegistrationStatus
from leadlink.common.security import create_access_token
from leadlink.core.leads.service import LeadLifecycleService
from leadlink.core.notifications.bus import NotificationBus
from leadlink.db.base import Base
from leadlink.db.models import *  # noqa: F401,F403 - ensure all models loaded

# Use SQLite for testing - remap JSONB to JSON
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# Mumbai, used by the matching scenarios
USER_LAT, USER_LON = 19.0760, 72.8777


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


class RecordingTransport:
    """Transport that remembers every broadcast instead of sending it."""

    def __init__(self):
        self.sent: list[tuple[str, str, dict]] = []

    async def broadcast(self, channel: str, event: str, data: dict) -> int:
        self.sent.append((channel, event, data))
        return 1

    def on(self, channel: str, event: str | None = None) -> list[dict]:
        return [d for c, e, d in self.sent if c == channel and (event is None or e == event)]


@pytest.fixture
async def test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def bus(transport):
    return NotificationBus(transport)


@pytest.fixture
def lead_service(bus):
    return LeadLifecycleService(bus)


@pytest.fixture
async def client(db_session, bus):
    from leadlink.api.deps import get_db, get_notification_bus
    from leadlink.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_bus] = lambda: bus

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    from leadlink.db.models.user import User

    async def _make(latitude=USER_LAT, longitude=USER_LON, **kwargs):
        user = User(
            id=uuid.uuid4(),
            name=kwargs.pop("name", "Test User"),
            email=kwargs.pop("email", f"user_{uuid.uuid4().hex[:8]}@test.com"),
            phone="+919800000000",
            role=UserRole.USER.value,
            location_latitude=latitude,
            location_longitude=longitude,
            location_city="Mumbai" if latitude is not None else None,
            **kwargs,
        )
        db_session.add(user)
        await db_session.flush()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_vendor(db_session):
    from leadlink.db.models.vendor import Vendor

    async def _make(latitude=19.0800, longitude=72.8800, keywords=("plumber",), **kwargs):
        vendor = Vendor(
            id=uuid.uuid4(),
            business_name=kwargs.pop("business_name", "Sharma Services"),
            title=kwargs.pop("title", "Home repairs"),
            email=kwargs.pop("email", f"vendor_{uuid.uuid4().hex[:8]}@test.com"),
            mobile_number="+919811111111",
            city="Mumbai",
            business_latitude=latitude,
            business_longitude=longitude,
            keywords=list(keywords),
            active=kwargs.pop("active", True),
            registration_status=kwargs.pop("registration_status", VendorRegistrationStatus.VERIFIED.value),
            **kwargs,
        )
        db_session.add(vendor)
        await db_session.flush()
        await db_session.refresh(vendor)
        return vendor

    return _make


@pytest.fixture
async def user(make_user):
    return await make_user()


@pytest.fixture
async def vendor(make_vendor):
    return await make_vendor()


@pytest.fixture
def headers_for():
    from leadlink.db.models.vendor import Vendor

    def _headers(account) -> dict:
        role = "vendor" if isinstance(account, Vendor) else account.role
        token = create_access_token({"sub": str(account.id), "role": role})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def auth_headers(user, headers_for):
    return headers_for(user)


@pytest.fixture
def vendor_auth_headers(vendor, headers_for):
    return headers_for(vendor)
