"""Shared fixtures: in-memory SQLite database, seeded users/listings, API client."""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import UTC, datetime  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from marketplace.core.middleware import booking_limiter  # noqa: E402
from marketplace.core.security import create_access_token  # noqa: E402
from marketplace.database import Base, get_db  # noqa: E402
from marketplace.domain.booking_state import BookingStatus  # noqa: E402
from marketplace.domain.booking_window import count_nights  # noqa: E402
from marketplace.domain.roles import UserRole  # noqa: E402
from marketplace.main import app  # noqa: E402
from marketplace.models import Booking, Listing, ListingType, User, Wallet  # noqa: E402


def dt(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=UTC)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy drive BEGIN so SAVEPOINTs work on pysqlite/aiosqlite
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ==================== FACTORIES ====================


@pytest.fixture
def make_user(db):
    async def _make(role: UserRole = UserRole.CLIENT, with_wallet: bool = False, **kwargs) -> User:
        user = User(
            email=kwargs.pop("email", f"{uuid4().hex[:10]}@example.com"),
            role=role,
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db.add(user)
        await db.flush()
        if with_wallet:
            db.add(Wallet(user_id=user.id, balance_cents=0, currency="FCFA"))
        await db.commit()
        return user

    return _make


@pytest.fixture
def make_listing(db):
    async def _make(provider: User, **kwargs) -> Listing:
        listing = Listing(
            provider_id=provider.id,
            title=kwargs.pop("title", "Villa Almadies"),
            listing_type=kwargs.pop("listing_type", ListingType.ANNONCE),
            base_price_cents=kwargs.pop("base_price_cents", None),
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db.add(listing)
        await db.commit()
        return listing

    return _make


@pytest.fixture
def make_booking(db):
    """Insert a booking row directly, bypassing the service checks."""

    async def _make(
        listing: Listing,
        client: User,
        status: BookingStatus = BookingStatus.REQUESTED,
        entry_date: datetime | None = None,
        departure_date: datetime | None = None,
        **kwargs,
    ) -> Booking:
        nights = None
        if entry_date and departure_date:
            nights = count_nights(entry_date, departure_date)
        booking = Booking(
            reference=kwargs.pop("reference", f"BK-{uuid4().hex[:8].upper()}"),
            listing_id=listing.id,
            client_id=client.id,
            provider_id=listing.provider_id,
            status=status,
            entry_date=entry_date,
            departure_date=departure_date,
            nights=nights,
            **kwargs,
        )
        db.add(booking)
        await db.commit()
        return booking

    return _make


@pytest.fixture
async def provider(make_user) -> User:
    return await make_user(role=UserRole.PROVIDER, with_wallet=True, name="Awa Provider")


@pytest.fixture
async def client_user(make_user) -> User:
    return await make_user(role=UserRole.CLIENT, name="Moussa Client")


@pytest.fixture
async def other_client(make_user) -> User:
    return await make_user(role=UserRole.CLIENT, name="Fatou Client")


@pytest.fixture
async def listing(make_listing, provider) -> Listing:
    return await make_listing(provider)


# ==================== API ====================


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def api_client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[booking_limiter] = no_rate_limit

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
