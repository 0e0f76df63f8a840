"""Pytest fixtures for SmartID tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import time

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from smartid.config import get_settings
from smartid.database import get_engine, make_session_factory
from smartid.models import Base, Institution, LeaveType, SmartCard, User, WorkGroup

from tests.factories import create_leave_type, create_user

# In-memory SQLite shared by every session of a test (StaticPool)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch: pytest.MonkeyPatch):
    """Pin settings that tests depend on and reset the settings cache."""
    monkeypatch.setenv("DATABASE_URL", TEST_DATABASE_URL)
    monkeypatch.setenv("DEFAULT_TIMEZONE", "Asia/Kuala_Lumpur")
    monkeypatch.setenv("DEFAULT_QUOTA_DAYS", "14")
    monkeypatch.setenv("LATE_GRACE_MINUTES", "15")
    monkeypatch.setenv("CORS_ORIGINS", "*")
    monkeypatch.delenv("SERVICE_TOKEN", raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh database per test."""
    engine = get_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with make_session_factory(engine)() as session:
        yield session
        await session.rollback()


# ============================================================================
# Standard data set
# ============================================================================


@pytest_asyncio.fixture
async def institution(session: AsyncSession) -> Institution:
    institution = Institution(name="Sekolah Kebangsaan Taman Melati", timezone="Asia/Kuala_Lumpur")
    session.add(institution)
    await session.flush()
    return institution


@pytest_asyncio.fixture
async def other_institution(session: AsyncSession) -> Institution:
    institution = Institution(name="Kolej Vokasional Klang", timezone="Asia/Kuala_Lumpur")
    session.add(institution)
    await session.flush()
    return institution


@pytest_asyncio.fixture
async def staff(session: AsyncSession, institution: Institution) -> User:
    return await create_user(
        session,
        institution,
        "EMP001",
        "Aisyah Rahman",
        department="Science",
        smart_card_id="LEGACY-0001",
    )


@pytest_asyncio.fixture
async def colleague(session: AsyncSession, institution: Institution) -> User:
    return await create_user(session, institution, "EMP002", "Daniel Tan", department="Mathematics")


@pytest_asyncio.fixture
async def manager(session: AsyncSession, institution: Institution) -> User:
    return await create_user(session, institution, "MGR001", "Siti Hassan", primary_role="manager")


@pytest_asyncio.fixture
async def annual_leave(session: AsyncSession, institution: Institution) -> LeaveType:
    return await create_leave_type(
        session,
        institution,
        "Annual Leave",
        "AL",
        default_quota_days=14,
        display_order=1,
    )


@pytest_asyncio.fixture
async def sick_leave(session: AsyncSession, institution: Institution) -> LeaveType:
    return await create_leave_type(
        session,
        institution,
        "Sick Leave",
        "SL",
        default_quota_days=10,
        display_order=2,
    )


@pytest_asyncio.fixture
async def work_group(session: AsyncSession, institution: Institution) -> WorkGroup:
    work_group = WorkGroup(
        institution_id=institution.id,
        name="Teaching Staff",
        default_start_time=time(8, 0),
        default_end_time=time(17, 0),
        working_days=[1, 2, 3, 4, 5],
        late_threshold_minutes=15,
    )
    session.add(work_group)
    await session.flush()
    return work_group


@pytest_asyncio.fixture
async def staff_card(session: AsyncSession, staff: User) -> SmartCard:
    card = SmartCard(user_id=staff.id, nfc_id="04A1B2C3D4")
    session.add(card)
    await session.flush()
    return card


# ============================================================================
# API client
# ============================================================================


@pytest_asyncio.fixture
async def client(engine: AsyncEngine) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, each request in its own session on the test engine."""
    from smartid.api.app import create_app
    from smartid.api.dependencies import get_db_session

    factory = make_session_factory(engine)

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db_session] = override_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
