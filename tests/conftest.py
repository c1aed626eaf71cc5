"""
Test configuration and fixtures
Each test gets its own SQLite file database; the payment gateway is faked.
"""

import pytest
import pytest_asyncio
from typing import AsyncGenerator, Dict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4
import os

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool
from httpx import AsyncClient, ASGITransport

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./wayfarer_test.db"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-at-least-32-characters-long"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-that-is-at-least-32-characters"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_wayfarer_webhook_secret"
os.environ["PAYMENT_CURRENCY"] = "GHS"

# Import all models BEFORE creating fixtures (critical for create_all to work)
from app.core.database import Base, build_session_factory
from app.core.security import CurrentUser, token_for
from app.models.user import User, UserRole
from app.models.tour import Tour, TourStatus
from app.models.hotel import Hotel, Room
from app.models.flight import Flight
from app.models.booking import Booking
from app.models.payment import Payment
from app.services.payment_gateway import GatewayCheckout, GatewayVerification, signature_matches
from app.config import settings


class FakeGateway:
    """
    In-memory Paystack stand-in.
    Transactions verify as successful for the initialized amount unless
    settle() says otherwise.
    """

    def __init__(self, secret_key: str = None):
        self.secret_key = secret_key or settings.PAYSTACK_SECRET_KEY
        self.transactions: Dict[str, dict] = {}
        self.outcomes: Dict[str, dict] = {}
        self.verify_calls = []
        self.error = None

    async def initialize_transaction(self, *, email, amount, currency, reference, channels, callback_url, metadata):
        if self.error is not None:
            raise self.error
        self.transactions[reference] = {
            "email": email,
            "amount": amount,
            "currency": currency,
            "channels": channels,
            "callback_url": callback_url,
            "metadata": metadata,
        }
        return GatewayCheckout(
            authorization_url=f"https://checkout.paystack.test/{reference}",
            reference=reference,
            access_code=f"access_{len(self.transactions)}",
        )

    async def verify_transaction(self, reference: str) -> GatewayVerification:
        self.verify_calls.append(reference)
        if self.error is not None:
            raise self.error
        transaction = self.transactions[reference]
        outcome = self.outcomes.get(reference, {})
        return GatewayVerification(
            reference=reference,
            status=outcome.get("status", "success"),
            amount=outcome.get("amount", transaction["amount"]),
            currency=outcome.get("currency", transaction["currency"]),
            metadata=transaction["metadata"],
        )

    def settle(self, reference: str, status: str = "success", amount: int = None, currency: str = None):
        outcome = {"status": status}
        if amount is not None:
            outcome["amount"] = amount
        if currency is not None:
            outcome["currency"] = currency
        self.outcomes[reference] = outcome

    def verify_signature(self, payload: bytes, signature) -> bool:
        return signature_matches(self.secret_key, payload, signature)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create async database engine for tests"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'wayfarer.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def client(session_factory, fake_gateway):
    """Create test client with dependency override"""
    from app.main import app
    from app.core.database import get_session
    from app.api.v1.deps import get_payment_gateway

    # A fresh session per request, like production
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway

    try:
        # Use raise_app_exceptions=False so unhandled errors come back as 500 responses
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


async def create_user(db_session, role: UserRole = UserRole.CUSTOMER, name: str = "Test User") -> User:
    user = User(
        email=f"{role.value.lower()}_{uuid4().hex[:8]}@example.com",
        name=name,
        role=role,
    )
    db_session.add(user)
    await db_session.commit()
    return user


async def create_tour(db_session, max_guests: int = 5, **overrides) -> Tour:
    now = datetime.now(timezone.utc)
    values = {
        "name": "Cape Coast Castle Tour",
        "description": "Guided heritage walk",
        "location": "Cape Coast",
        "price": Decimal("150.00"),
        "status": TourStatus.UPCOMING,
        "start_date": now + timedelta(days=30),
        "end_date": now + timedelta(days=31),
        "max_guests": max_guests,
        "guests_booked": 0,
    }
    values.update(overrides)
    tour = Tour(**values)
    db_session.add(tour)
    await db_session.commit()
    return tour


async def create_room(db_session, total_rooms: int = 3, **overrides) -> Room:
    hotel = Hotel(name="Labadi Beach Hotel", location="Accra")
    db_session.add(hotel)
    await db_session.flush()
    values = {
        "hotel_id": hotel.id,
        "room_type": "Deluxe Suite",
        "description": "Sea view",
        "price": Decimal("320.00"),
        "capacity": 2,
        "total_rooms": total_rooms,
        "rooms_available": total_rooms,
        "available": True,
    }
    values.update(overrides)
    room = Room(**values)
    db_session.add(room)
    await db_session.commit()
    return room


async def create_flight(db_session, capacity: int = 4, **overrides) -> Flight:
    now = datetime.now(timezone.utc)
    values = {
        "flight_number": "AW202",
        "airline": "Africa World Airlines",
        "origin": "Accra",
        "destination": "Kumasi",
        "departure": now + timedelta(days=10),
        "arrival": now + timedelta(days=10, hours=1),
        "price": Decimal("450.00"),
        "capacity": capacity,
        "seats_available": capacity,
    }
    values.update(overrides)
    flight = Flight(**values)
    db_session.add(flight)
    await db_session.commit()
    return flight


def principal(user: User) -> CurrentUser:
    return CurrentUser(id=user.id, role=user.role)


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user.id, user.role)}"}


# User fixtures
@pytest_asyncio.fixture
async def admin(db_session):
    return await create_user(db_session, UserRole.ADMIN, "Admin User")


@pytest_asyncio.fixture
async def agent(db_session):
    return await create_user(db_session, UserRole.AGENT, "Agent User")


@pytest_asyncio.fixture
async def customer(db_session):
    return await create_user(db_session, UserRole.CUSTOMER, "Ama Mensah")


@pytest_asyncio.fixture
async def other_customer(db_session):
    return await create_user(db_session, UserRole.CUSTOMER, "Kofi Boateng")


# Resource fixtures
@pytest_asyncio.fixture
async def tour(db_session):
    return await create_tour(db_session)


@pytest_asyncio.fixture
async def room(db_session):
    return await create_room(db_session)


@pytest_asyncio.fixture
async def flight(db_session):
    return await create_flight(db_session)
