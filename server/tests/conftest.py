"""Test configuration and fixtures."""

import json
import os

# Must be set before umrah_core creates its engine
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date, timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from umrah_core import models  # noqa: E402, F401  registers every table
from umrah_core.core import database, dependencies  # noqa: E402
from umrah_core.core.database import Base  # noqa: E402
from umrah_core.models.booking import Gender  # noqa: E402
from umrah_core.models.departure import RoomType  # noqa: E402
from umrah_core.schemas.booking import CreateBookingRequest, PassengerInput  # noqa: E402
from umrah_core.schemas.commission import CreateAgentRequest  # noqa: E402
from umrah_core.schemas.departure import CreateDepartureRequest, RoomPrices  # noqa: E402
from umrah_core.services.commission_service import CommissionService  # noqa: E402
from umrah_core.services.departure_service import DepartureService  # noqa: E402
from umrah_core.services.notification_service import NotificationSender, get_notification_sender  # noqa: E402

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

HOTEL_MAKKAH = "HTL-MAKKAH-01"
HOTEL_MADINAH = "HTL-MADINAH-01"

PRICE_QUAD = 25_000_000
PRICE_TRIPLE = 28_000_000
PRICE_DOUBLE = 32_000_000


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path):
    """
    Session factory over a file-backed database.

    Every session gets its own connection, so concurrent tests race real
    transactions instead of sharing one.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'booking_core.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def webhook_requests():
    """Bodies posted to the notification webhook."""
    return []


@pytest.fixture
def notifier(webhook_requests):
    """Notification sender delivering to an in-process webhook."""
    def handler(request: httpx.Request) -> httpx.Response:
        webhook_requests.append(json.loads(request.content))
        return httpx.Response(202)

    return NotificationSender(
        webhook_url="http://notifications.test/hook",
        transport=httpx.MockTransport(handler),
    )


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, notifier):
    """Create the application wired to the test database."""
    from umrah_core.main import create_app

    app = create_app()

    async def override_get_db():
        yield test_session

    app.dependency_overrides[dependencies.get_db] = override_get_db
    app.dependency_overrides[database.get_db] = override_get_db
    app.dependency_overrides[get_notification_sender] = lambda: notifier

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def departure_request(quota: int = 10, days_ahead: int = 45, **overrides) -> CreateDepartureRequest:
    """A twelve day package leaving in a few weeks."""
    departure_date = date.today() + timedelta(days=days_ahead)
    data = {
        "package_id": "UMRAH-12D",
        "departure_date": departure_date,
        "return_date": departure_date + timedelta(days=11),
        "quota": quota,
        "prices": RoomPrices(quad=PRICE_QUAD, triple=PRICE_TRIPLE, double=PRICE_DOUBLE),
        "currency": "IDR",
        "hotel_makkah_id": HOTEL_MAKKAH,
        "hotel_madinah_id": HOTEL_MADINAH,
    }
    data.update(overrides)
    return CreateDepartureRequest(**data)


def booking_request(departure_id, passengers=None, **overrides) -> CreateBookingRequest:
    """A booking for one male traveller in a double room unless told otherwise."""
    if passengers is None:
        passengers = [PassengerInput(customer_id="CUST-001", full_name="Ahmad Fauzi", gender=Gender.MALE)]
    data = {
        "departure_id": departure_id,
        "customer_id": passengers[0].customer_id,
        "room_type": RoomType.DOUBLE,
        "passengers": passengers,
    }
    data.update(overrides)
    return CreateBookingRequest(**data)


def passenger(customer_id: str, gender: Gender = Gender.MALE, **overrides) -> PassengerInput:
    """A traveller supplied by the customer directory."""
    return PassengerInput(customer_id=customer_id, full_name=f"Traveller {customer_id}", gender=gender, **overrides)


@pytest_asyncio.fixture
async def departure(test_session):
    """An open departure with ten seats."""
    return await DepartureService(test_session).create_departure(departure_request())


@pytest_asyncio.fixture
async def agent(test_session):
    """An active agent earning 2.5 percent."""
    return await CommissionService(test_session).create_agent(
        CreateAgentRequest(agent_code="AG-001", name="Amanah Travel", commission_rate=Decimal("2.50"))
    )


@pytest.fixture
def sample_departure_data():
    """Sample departure payload for the API."""
    departure_date = date.today() + timedelta(days=45)
    return {
        "package_id": "UMRAH-12D",
        "departure_date": departure_date.isoformat(),
        "return_date": (departure_date + timedelta(days=11)).isoformat(),
        "quota": 4,
        "prices": {"quad": PRICE_QUAD, "triple": PRICE_TRIPLE, "double": PRICE_DOUBLE},
        "currency": "IDR",
        "hotel_makkah_id": HOTEL_MAKKAH,
        "hotel_madinah_id": HOTEL_MADINAH,
    }


@pytest.fixture
def sample_passengers_data():
    """Sample passenger payloads for the API."""
    return [
        {"customer_id": "CUST-101", "full_name": "Siti Aminah", "gender": "female", "is_main_passenger": True},
        {"customer_id": "CUST-102", "full_name": "Nur Hidayah", "gender": "female"},
    ]
