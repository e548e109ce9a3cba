"""Shared test fixtures for the wastetraq API test suite."""

import os

# Must be set before app.core.config is imported anywhere
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("AUDIT_LOG_ENABLED", "false")
os.environ.setdefault("SEED_CERTIFICATIONS_ON_STARTUP", "false")
os.environ.setdefault("APP_DEBUG", "false")
os.environ.setdefault("SENTRY_DSN", "")

import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from app.auth.dependencies import get_current_user
from app.core.database import Base, get_db, get_readonly_db
from app.main import app
from app.models.certification import CertificationType
from app.models.core import Organization, User
from app.models.enums import OrgType, UserRole
from app.schemas.auth import CurrentUser

# One in-memory SQLite database per test; StaticPool keeps the single connection alive
_test_engine = create_async_engine(
    "sqlite+aiosqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession]:
    """Fresh schema per test, dropped afterwards."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(_test_engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        async with _test_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)


# ── Sample data fixtures ──────────────────────────────────────────────────

SAMPLE_ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
SAMPLE_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
SAMPLE_ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-000000000003")
OTHER_ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000010")
OTHER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000011")
SAMPLE_CLERK_ID = "user_test_clerk_123"
SAMPLE_ADMIN_CLERK_ID = "user_test_clerk_admin"


@pytest.fixture
async def sample_org(db: AsyncSession) -> Organization:
    org = Organization(
        id=SAMPLE_ORG_ID,
        name="Green Haulage Ltd",
        slug="green-haulage",
        type=OrgType.BUSINESS,
        industry="Waste Management",
    )
    db.add(org)
    await db.flush()
    return org


@pytest.fixture
async def sample_user(db: AsyncSession, sample_org: Organization) -> User:
    """A regular (analyst) member of the sample org."""
    user = User(
        id=SAMPLE_USER_ID,
        org_id=sample_org.id,
        email="test@example.com",
        full_name="Test User",
        role=UserRole.ANALYST,
        external_auth_id=SAMPLE_CLERK_ID,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


@pytest.fixture
async def admin_user(db: AsyncSession, sample_org: Organization) -> User:
    user = User(
        id=SAMPLE_ADMIN_ID,
        org_id=sample_org.id,
        email="admin@example.com",
        full_name="Admin User",
        role=UserRole.ADMIN,
        external_auth_id=SAMPLE_ADMIN_CLERK_ID,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


@pytest.fixture
async def other_org_user(db: AsyncSession) -> User:
    """A user in a different organization, for isolation checks."""
    org = Organization(id=OTHER_ORG_ID, name="Other Org", slug="other-org", type=OrgType.VENDOR)
    db.add(org)
    await db.flush()
    user = User(
        id=OTHER_USER_ID,
        org_id=org.id,
        email="other@example.com",
        full_name="Other User",
        role=UserRole.MANAGER,
        external_auth_id="user_test_clerk_other",
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


@pytest.fixture
def sample_current_user(sample_user: User) -> CurrentUser:
    """CurrentUser pydantic model for dependency injection."""
    return CurrentUser(
        user_id=SAMPLE_USER_ID,
        org_id=SAMPLE_ORG_ID,
        role=UserRole.ANALYST,
        email="test@example.com",
        external_auth_id=SAMPLE_CLERK_ID,
    )


@pytest.fixture
def admin_current_user(admin_user: User) -> CurrentUser:
    return CurrentUser(
        user_id=SAMPLE_ADMIN_ID,
        org_id=SAMPLE_ORG_ID,
        role=UserRole.ADMIN,
        email="admin@example.com",
        external_auth_id=SAMPLE_ADMIN_CLERK_ID,
    )


@pytest.fixture
def other_current_user(other_org_user: User) -> CurrentUser:
    return CurrentUser(
        user_id=OTHER_USER_ID,
        org_id=OTHER_ORG_ID,
        role=UserRole.MANAGER,
        email="other@example.com",
        external_auth_id="user_test_clerk_other",
    )


@pytest.fixture
async def cert_type(db: AsyncSession) -> CertificationType:
    """A 36-month certification type with two requirements."""
    ct = CertificationType(
        name="ISO 14001 - Environmental Management",
        description="International standard for environmental management systems",
        requirements=["Environmental policy", "Management review process"],
        validity_period=36,
        industry=["All Industries"],
        difficulty="High",
        provider="ISO",
        provider_url="https://www.iso.org",
        estimated_time="6-12 months",
        cost="High",
        relevance=5,
    )
    db.add(ct)
    await db.commit()
    return ct


# ── HTTP clients ──────────────────────────────────────────────────────────


def login_as(current_user: CurrentUser) -> None:
    """Point the get_current_user override at another identity mid-test."""
    app.dependency_overrides[get_current_user] = lambda: current_user


@pytest.fixture
async def client(
    db: AsyncSession, sample_current_user: CurrentUser
) -> AsyncGenerator[AsyncClient]:
    """AsyncClient bound to the test session and authenticated as sample_user."""

    async def _override_db() -> AsyncGenerator[AsyncSession]:
        yield db

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_readonly_db] = _override_db
    login_as(sample_current_user)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def mock_clerk_jwt():
    """Mock verify_clerk_token to bypass Clerk JWKS verification in tests."""
    mock_payload = {
        "sub": SAMPLE_CLERK_ID,
        "email": "test@example.com",
        "iss": "https://test.clerk.accounts.dev",
        "exp": int(datetime.now(timezone.utc).timestamp()) + 3600,
    }
    with patch(
        "app.auth.dependencies.verify_clerk_token",
        new_callable=AsyncMock,
        return_value=mock_payload,
    ) as mock:
        yield mock
