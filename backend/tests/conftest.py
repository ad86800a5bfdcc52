"""Shared test configuration and fixtures.

Every test gets a fresh database: a throwaway SQLite file by default, or
the database named by ``TEST_DATABASE_URL`` (tables are created and dropped
around each test). Services commit their own transactions, so seed helpers
commit too.

The engine clock is frozen at ``NOW`` and ticks one microsecond per read,
which keeps timestamps ordered without real time passing.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import studio_ledger.models  # noqa: F401
from studio_ledger import clock
from studio_ledger.auth.jwt import create_access_token
from studio_ledger.database import Base, build_engine, get_db
from studio_ledger.main import app
from studio_ledger.models import StudioClass, Subscription, SubscriptionPlan, User
from studio_ledger.services import notification_service
from studio_ledger.states import ClassStatus, SubscriptionStatus, UserRole
from tests.helpers import NOW, TickingClock


@pytest.fixture(autouse=True)
def frozen_clock(monkeypatch) -> TickingClock:
    ticking = TickingClock(NOW)
    monkeypatch.setattr(clock, "utcnow", ticking)
    return ticking


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'studio_test.db'}"
    engine = build_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
    # let background notification deliveries finish inside the test loop
    await notification_service.wait_for_pending()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to use the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(db_session: AsyncSession):
    async def _make(role: UserRole = UserRole.CLIENT, *, name: str | None = None, is_active: bool = True) -> User:
        unique = uuid.uuid4().hex[:8]
        user = User(
            email=f"{role}-{unique}@test.com",
            name=name or f"Test {role.title()}",
            role=role,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def make_plan(db_session: AsyncSession):
    async def _make(
        monthly_classes: int = 8,
        *,
        duration_days: int = 30,
        price: str = "110.00",
        is_active: bool = True,
    ) -> SubscriptionPlan:
        plan = SubscriptionPlan(
            name=f"{monthly_classes} Classes / Month",
            monthly_classes=monthly_classes,
            duration_days=duration_days,
            monthly_price=Decimal(price),
            is_active=is_active,
        )
        db_session.add(plan)
        await db_session.commit()
        return plan

    return _make


@pytest.fixture
def make_subscription(db_session: AsyncSession, make_plan):
    async def _make(
        client: User,
        *,
        remaining: int = 8,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        plan: SubscriptionPlan | None = None,
        end_date: datetime | None = None,
    ) -> Subscription:
        plan = plan or await make_plan()
        subscription = Subscription(
            client_id=client.id,
            plan_id=plan.id,
            status=status,
            remaining_classes=remaining,
            start_date=NOW - timedelta(days=1),
            end_date=end_date or NOW + timedelta(days=29),
        )
        db_session.add(subscription)
        await db_session.commit()
        return subscription

    return _make


@pytest.fixture
def make_class(db_session: AsyncSession, make_user):
    async def _make(
        *,
        capacity: int = 10,
        starts_in: timedelta = timedelta(days=1),
        instructor: User | None = None,
        name: str = "Reformer Flow",
        status: ClassStatus = ClassStatus.SCHEDULED,
    ) -> StudioClass:
        instructor = instructor or await make_user(UserRole.INSTRUCTOR)
        studio_class = StudioClass(
            name=name,
            instructor_id=instructor.id,
            starts_at=NOW + starts_in,
            capacity=capacity,
            enrolled_count=0,
            status=status,
        )
        db_session.add(studio_class)
        await db_session.commit()
        return studio_class

    return _make


@pytest_asyncio.fixture
async def client_user(make_user) -> User:
    return await make_user(UserRole.CLIENT, name="Ana Petrova")


@pytest_asyncio.fixture
async def reception(make_user) -> User:
    return await make_user(UserRole.RECEPTION, name="Front Desk")


@pytest_asyncio.fixture
async def instructor(make_user) -> User:
    return await make_user(UserRole.INSTRUCTOR, name="Maria Instructor")


@pytest.fixture
def auth_headers():
    """Build Authorization headers for any seeded user."""

    def _headers(user: User) -> dict[str, str]:
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}

    return _headers
