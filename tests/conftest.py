"""Shared test configuration and fixtures.

Uses a transactional rollback strategy per test for full isolation:
- Each test gets its own engine and an outer transaction that rolls back.
- ``TEST_DATABASE_URL`` selects the database; the default is in-memory SQLite
  through aiosqlite. The PostgreSQL-only overlap constraint lives in the
  migration, so on SQLite the service-level lock and re-check carry the load.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime
from decimal import Decimal

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import gearshare.models  # noqa: F401
from gearshare.api.deps import get_now
from gearshare.auth.jwt import create_access_token
from gearshare.config import settings
from gearshare.database import Base, get_db
from gearshare.main import app
from gearshare.models.booking import Booking
from gearshare.models.equipment import Equipment
from gearshare.models.inspection import Inspection
from gearshare.models.payment import Payment
from gearshare.models.user import User

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

# Fixed clock used by API tests: 2024-06-22 12:00 UTC
FIXED_NOW = datetime(2024, 6, 22, 12, 0, 0)
SERVICE_KEY = "test-service-key"


def _make_engine():
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        # pysqlite's own transaction handling breaks SAVEPOINT; take it over.
        @event.listens_for(engine.sync_engine, "connect")
        def _do_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _do_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return engine
    return create_async_engine(TEST_DATABASE_URL, pool_pre_ping=True)


# ---------------------------------------------------------------------------
# Per-test engine, schema and rollback session
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(
            bind=connection,
            expire_on_commit=False,
            join_transaction_mode="create_savepoint",
        )

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test DB session and a fixed clock."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    async def override_get_now() -> datetime:
        return FIXED_NOW

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = override_get_now

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------


async def create_user(db: AsyncSession, name: str = "Test User", stripe_account_id: str | None = None) -> User:
    unique = uuid.uuid4().hex[:8]
    user = User(
        email=f"{name.lower().replace(' ', '-')}-{unique}@test.com",
        name=name,
        stripe_account_id=stripe_account_id,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


async def create_equipment(
    db: AsyncSession,
    owner: User,
    daily_rate: str = "100.00",
    deposit_amount: str = "0.00",
    claim_window_hours: int | None = None,
) -> Equipment:
    equipment = Equipment(
        owner_id=owner.id,
        title="Cinema camera kit",
        daily_rate=Decimal(daily_rate),
        deposit_amount=Decimal(deposit_amount),
        claim_window_hours=claim_window_hours,
        status="active",
    )
    db.add(equipment)
    await db.flush()
    return equipment


async def create_active_booking(
    db: AsyncSession,
    equipment: Equipment,
    renter: User,
    start_date: date = date(2024, 6, 15),
    end_date: date = date(2024, 6, 20),
    deposit_amount: str = "0.00",
    payment_intent_id: str | None = None,
) -> tuple[Booking, Payment]:
    """An active booking with its escrow held, as the payment webhook leaves it."""
    subtotal = equipment.daily_rate * (end_date - start_date).days
    deposit = Decimal(deposit_amount)
    booking = Booking(
        equipment_id=equipment.id,
        renter_id=renter.id,
        owner_id=equipment.owner_id,
        start_date=start_date,
        end_date=end_date,
        status="active",
        insurance_tier="none",
        subtotal=subtotal,
        service_fee=(subtotal * Decimal("0.05")).quantize(Decimal("0.01")),
        insurance_cost=Decimal("0.00"),
        deposit_amount=deposit,
        total_amount=subtotal + (subtotal * Decimal("0.05")).quantize(Decimal("0.01")),
        payment_intent_id=payment_intent_id,
        activated_at=datetime.combine(start_date, datetime.min.time()),
    )
    db.add(booking)
    await db.flush()
    payment = Payment(
        booking_id=booking.id,
        payment_intent_id=payment_intent_id,
        total_amount=booking.total_amount + deposit,
        escrow_amount=subtotal,
        escrow_status="held",
        deposit_amount=deposit,
        deposit_status="held" if deposit > 0 else None,
    )
    db.add(payment)
    await db.flush()
    return booking, payment


async def create_return_inspection(
    db: AsyncSession,
    booking: Booking,
    timestamp: datetime,
    verified_by_renter: bool = True,
    verified_by_owner: bool = False,
) -> Inspection:
    inspection = Inspection(
        booking_id=booking.id,
        inspection_type="return",
        timestamp=timestamp,
        verified_by_renter=verified_by_renter,
        verified_by_owner=verified_by_owner,
        photos=["returns/1.jpg"],
        checklist_items=[],
    )
    db.add(inspection)
    await db.flush()
    return inspection


def auth_headers_for(user: User) -> dict[str, str]:
    token = create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Convenience fixtures: owner, renter, equipment
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def owner(db_session: AsyncSession) -> User:
    return await create_user(db_session, "Owner", stripe_account_id="acct_owner_123")


@pytest_asyncio.fixture
async def renter(db_session: AsyncSession) -> User:
    return await create_user(db_session, "Renter")


@pytest_asyncio.fixture
async def equipment(db_session: AsyncSession, owner: User) -> Equipment:
    return await create_equipment(db_session, owner)


@pytest_asyncio.fixture
async def owner_headers(owner: User) -> dict[str, str]:
    return auth_headers_for(owner)


@pytest_asyncio.fixture
async def renter_headers(renter: User) -> dict[str, str]:
    return auth_headers_for(renter)


# ---------------------------------------------------------------------------
# Factory fixtures for tests that need more than one of a kind
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def make_user(db_session: AsyncSession):
    async def _make(name: str = "Test User", stripe_account_id: str | None = None) -> User:
        return await create_user(db_session, name, stripe_account_id)

    return _make


@pytest_asyncio.fixture
async def make_equipment(db_session: AsyncSession):
    async def _make(owner: User, **kwargs) -> Equipment:
        return await create_equipment(db_session, owner, **kwargs)

    return _make


@pytest_asyncio.fixture
async def make_active_booking(db_session: AsyncSession):
    async def _make(equipment: Equipment, renter: User, **kwargs) -> tuple[Booking, Payment]:
        return await create_active_booking(db_session, equipment, renter, **kwargs)

    return _make


@pytest_asyncio.fixture
async def make_return_inspection(db_session: AsyncSession):
    async def _make(booking: Booking, timestamp: datetime, **kwargs) -> Inspection:
        return await create_return_inspection(db_session, booking, timestamp, **kwargs)

    return _make


@pytest_asyncio.fixture
async def headers_for():
    return auth_headers_for


@pytest_asyncio.fixture
async def service_headers(monkeypatch) -> dict[str, str]:
    """Headers of an internal scheduler or arbitrator holding the service key."""
    monkeypatch.setattr(settings, "service_api_key", SERVICE_KEY)
    return {"X-Service-Key": SERVICE_KEY}
