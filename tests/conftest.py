"""
tests/conftest.py
Shared fixtures: a fresh in-memory SQLite database per test, fakeredis in
place of Redis, an httpx client bound to the app, and one user per role.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key")
os.environ["NOTIFICATION_DISPATCH_MODE"] = "inline"

import uuid  # noqa: E402

import pytest_asyncio  # noqa: E402
from fakeredis import FakeAsyncRedis  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

import shared.models.models  # noqa: E402,F401
from config.database import AsyncSessionLocal, Base, engine  # noqa: E402
from config.redis_client import get_redis  # noqa: E402
from main import app  # noqa: E402
from shared.models.models import (  # noqa: E402
    AppraisalRequest,
    Company,
    RequestStatus,
    RequestType,
    User,
    UserRole,
)
from shared.utils.security import create_access_token, hash_password  # noqa: E402

TEST_PASSWORD = "secret123"


def auth_headers(user: User) -> dict:
    """Bearer header for a freshly issued access token."""
    token, _ = create_access_token(user_id=str(user.id), role=user.role.value, email=user.email)
    return {"Authorization": f"Bearer {token}"}


def make_request(customer: User, company: Company, **overrides) -> AppraisalRequest:
    values = dict(
        id=uuid.uuid4(),
        customer_id=customer.id,
        company_id=company.id,
        company_name=company.name,
        type=RequestType.PROPERTY,
        status=RequestStatus.PENDING,
        property_type="Apartment",
        location="Lekki, Lagos",
        documents=[],
    )
    values.update(overrides)
    return AppraisalRequest(**values)


# ── Infrastructure ────────────────────────────────────────────

@pytest_asyncio.fixture
async def redis():
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with AsyncSessionLocal() as session:
        yield session
    # Dropping the pooled connection discards the in-memory database
    await engine.dispose()


@pytest_asyncio.fixture
async def client(db, redis):
    app.dependency_overrides[get_redis] = lambda: redis
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ── Users ─────────────────────────────────────────────────────

async def _make_user(db, email: str, full_name: str, role: UserRole) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email,
        full_name=full_name,
        role=role,
        password_hash=hash_password(TEST_PASSWORD),
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def customer(db) -> User:
    return await _make_user(db, "ada@example.com", "Ada Obi", UserRole.CUSTOMER)


@pytest_asyncio.fixture
async def company_user(db) -> User:
    return await _make_user(db, "owner@primevaluers.com", "Prime Valuers", UserRole.COMPANY)


@pytest_asyncio.fixture
async def admin_user(db) -> User:
    return await _make_user(db, "admin@bank.com", "Bank Admin", UserRole.ADMIN)


@pytest_asyncio.fixture
async def company(db, company_user) -> Company:
    company = Company(
        id=uuid.uuid4(),
        name="Prime Valuers",
        email="contact@primevaluers.com",
        phone="+2348000000001",
        location="Lagos",
        services=[RequestType.PROPERTY.value, RequestType.VEHICLE.value],
        license_number="LIC-0001",
        user_id=company_user.id,
        is_approved=True,
    )
    db.add(company)
    await db.commit()
    return company
