import uuid
from collections.abc import AsyncGenerator
from datetime import date, timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import JSON, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from buildbid.common.enums import PaymentStatus, PaymentType, ProjectStatus, UserRole
from buildbid.common.security import create_access_token, get_password_hash
from buildbid.db.base import Base
from buildbid.db.models import *  # noqa: F401,F403 - ensure all models loaded

# Use in-memory SQLite for testing - remap JSONB to JSON
TEST_DATABASE_URL = "sqlite+aiosqlite://"


# Make JSONB render as JSON for SQLite
@event.listens_for(Base.metadata, "before_create")
def _remap_jsonb(target, connection, **kw):
    if connection.dialect.name == "sqlite":
        for table in target.tables.values():
            for column in table.columns:
                if isinstance(column.type, JSONB):
                    column.type = JSON()


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(db_session):
    from buildbid.api.deps import get_db
    from buildbid.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(db_session, role: UserRole | None, name: str):
    from buildbid.db.models.user import User

    user = User(
        id=uuid.uuid4(),
        email=f"{name.lower().replace(' ', '_')}_{uuid.uuid4().hex[:8]}@test.com",
        hashed_password=get_password_hash("testpass123"),
        full_name=name,
        role=role.value if role else None,
    )
    db_session.add(user)
    await db_session.flush()
    await db_session.refresh(user)
    return user


async def _grant_unlock(db_session, user, payment_type: PaymentType):
    from buildbid.db.models.payment import Payment

    payment = Payment(
        user_id=user.id,
        payment_type=payment_type.value,
        stripe_payment_intent_id=f"pi_test_{uuid.uuid4().hex[:16]}",
        amount_cents=1500,
        currency="usd",
        status=PaymentStatus.SUCCEEDED.value,
    )
    db_session.add(payment)
    await db_session.flush()
    return payment


@pytest.fixture
async def homeowner_user(db_session):
    return await _make_user(db_session, UserRole.HOMEOWNER, "Test Homeowner")


@pytest.fixture
async def contractor_user(db_session):
    return await _make_user(db_session, UserRole.CONTRACTOR, "Test Contractor")


@pytest.fixture
async def other_contractor_user(db_session):
    return await _make_user(db_session, UserRole.CONTRACTOR, "Other Contractor")


@pytest.fixture
async def admin_user(db_session):
    return await _make_user(db_session, UserRole.ADMIN, "Test Admin")


@pytest.fixture
async def pending_user(db_session):
    return await _make_user(db_session, None, "Pending User")


@pytest.fixture
def homeowner_token(homeowner_user):
    return create_access_token({"sub": str(homeowner_user.id)})


@pytest.fixture
def contractor_token(contractor_user):
    return create_access_token({"sub": str(contractor_user.id)})


@pytest.fixture
def admin_token(admin_user):
    return create_access_token({"sub": str(admin_user.id)})


@pytest.fixture
def auth_headers(homeowner_token):
    return {"Authorization": f"Bearer {homeowner_token}"}


@pytest.fixture
def contractor_headers(contractor_token):
    return {"Authorization": f"Bearer {contractor_token}"}


@pytest.fixture
def other_contractor_headers(other_contractor_user):
    token = create_access_token({"sub": str(other_contractor_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def pending_headers(pending_user):
    token = create_access_token({"sub": str(pending_user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def homeowner_paid(db_session, homeowner_user):
    return await _grant_unlock(db_session, homeowner_user, PaymentType.PROJECT_CREATION)


@pytest.fixture
async def contractor_paid(db_session, contractor_user):
    return await _grant_unlock(db_session, contractor_user, PaymentType.PROPOSAL_SUBMISSION)


@pytest.fixture
async def other_contractor_paid(db_session, other_contractor_user):
    return await _grant_unlock(db_session, other_contractor_user, PaymentType.PROPOSAL_SUBMISSION)


@pytest.fixture
async def open_project(db_session, homeowner_user):
    from buildbid.db.models.project import Project

    project = Project(
        creator_id=homeowner_user.id,
        title="Kitchen Remodel",
        statement_of_work="Replace cabinets, counters and flooring",
        budget=Decimal("10000.00"),
        category=["carpentry", "flooring"],
        location={"city": "Austin", "state": "TX"},
        status=ProjectStatus.OPEN_FOR_PROPOSALS.value,
        expiry_date=date.today() + timedelta(days=30),
    )
    db_session.add(project)
    await db_session.flush()
    await db_session.refresh(project)
    return project


@pytest.fixture
def proposal_payload(open_project):
    return {
        "project_id": str(open_project.id),
        "title": "Full kitchen remodel",
        "description_of_work": "Demo, new cabinets, quartz counters, LVP flooring",
        "subtotal_amount": "9000.00",
        "total_amount": "9500.00",
        "deposit_amount": "1000.00",
        "proposed_start_date": (date.today() + timedelta(days=14)).isoformat(),
        "proposed_end_date": (date.today() + timedelta(days=44)).isoformat(),
        "expiry_date": (date.today() + timedelta(days=20)).isoformat(),
    }
