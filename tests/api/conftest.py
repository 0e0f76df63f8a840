"""API test fixtures.

Requests run in their own sessions on the test engine, so seeded data must be
committed first. The in-memory database has a single connection: tests should
not leave the fixture session inside a transaction while issuing requests.
"""

from types import SimpleNamespace

import pytest
import pytest_asyncio

from tests.factories import assign


@pytest_asyncio.fixture
async def seeded(
    session,
    institution,
    staff,
    colleague,
    manager,
    annual_leave,
    sick_leave,
    work_group,
    staff_card,
):
    await assign(session, staff, work_group)
    await assign(session, colleague, work_group)
    await session.commit()
    return SimpleNamespace(
        institution=institution,
        staff=staff,
        colleague=colleague,
        manager=manager,
        annual_leave=annual_leave,
        sick_leave=sick_leave,
        work_group=work_group,
        card=staff_card,
    )


@pytest.fixture
def service_token(monkeypatch, test_settings):
    """Require a bearer service token for privileged endpoints."""
    from smartid.config import get_settings

    monkeypatch.setenv("SERVICE_TOKEN", "s3cret-token")
    get_settings.cache_clear()
    return "s3cret-token"
