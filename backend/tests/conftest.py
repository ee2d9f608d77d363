"""
Pytest fixtures for test database, client, and catalog rows.

Each test gets a fresh database. By default that is a SQLite file under the
test's tmp_path (via aiosqlite); set TEST_DATABASE_URL to run the same suite
against PostgreSQL.
"""

import os
from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from ticketing.main import app
from ticketing.db.base import Base
from ticketing.db.session import get_db
from ticketing.models.booking import Booking
from ticketing.models.event import Event
from ticketing.models.venue import Venue
from ticketing.services import strategy_factory
from ticketing.services.interfaces.optimistic_admission import OptimisticAdmission


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'bookings.db'}"
    test_engine = create_async_engine(url, echo=False)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session on the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def optimistic_admission():
    """No advisory gate unless a test passes one explicitly."""
    strategy_factory._strategy = OptimisticAdmission()
    yield
    strategy_factory._strategy = None


@pytest.fixture
def make_event(session_factory):
    """Factory creating a venue and a published, bookable event."""

    async def _make_event(
        capacity: int = 100,
        max_tickets_per_user: int = 10,
        price: str = "25.00",
        starts_in: timedelta = timedelta(days=30),
        **overrides,
    ) -> Event:
        now = datetime.now(timezone.utc)
        async with session_factory() as session:
            venue = Venue(name="Coliseu", city="Maputo", capacity=capacity)
            session.add(venue)
            await session.flush()

            fields = dict(
                title="Test Concert",
                venue_id=venue.id,
                start_date_time=now + starts_in,
                end_date_time=now + starts_in + timedelta(hours=3),
                price=Decimal(price),
                currency="USD",
                available_tickets=capacity,
                max_tickets_per_user=max_tickets_per_user,
                status="published",
                is_active=True,
            )
            fields.update(overrides)
            event = Event(**fields)
            session.add(event)
            await session.commit()
            await session.refresh(event)
            return event

    return _make_event


@pytest.fixture
def available_tickets(session_factory):
    """Read the stored counter through a fresh session."""

    async def _available(event_id: int) -> int:
        async with session_factory() as session:
            result = await session.execute(
                select(Event.available_tickets).where(Event.id == event_id)
            )
            return result.scalar_one()

    return _available


@pytest.fixture
def load_booking(session_factory):
    async def _load(booking_id: int) -> Booking:
        async with session_factory() as session:
            result = await session.execute(select(Booking).where(Booking.id == booking_id))
            return result.scalar_one()

    return _load


@pytest.fixture
def user_headers():
    def _headers(user_id: int = 1, role: str = None) -> dict:
        headers = {"X-User-ID": str(user_id)}
        if role:
            headers["X-User-Role"] = role
        return headers

    return _headers
