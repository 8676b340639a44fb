"""Tests for the seed script — demo data loads through the service and is idempotent."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from scripts.seed import (
    DEMO_ADMIN_ID,
    DEMO_ALLOCATIONS,
    DEMO_ORGANIZATION_ID,
    DEMO_PEOPLE,
    DEMO_PROJECTS,
    _service,
    seed_demo,
)
from resourceplan.governance.permissions import SqlPermissionChecker
from resourceplan.models.common import Capability
from resourceplan.repositories.projects import ProjectRepository


class TestSeedDemo:
    @pytest.mark.anyio
    async def test_creates_projects_grants_and_allocations(self, db_session: AsyncSession) -> None:
        result = await seed_demo(db_session)
        assert result["created"] is True
        assert result["organization_id"] == DEMO_ORGANIZATION_ID
        assert result["allocation_count"] == len(DEMO_ALLOCATIONS) == 4

        projects = await ProjectRepository(db_session, DEMO_ORGANIZATION_ID).list_all()
        assert {p.project_id for p in projects} == set(DEMO_PROJECTS)

        granted = await SqlPermissionChecker(db_session, DEMO_ORGANIZATION_ID).list_capabilities(
            DEMO_ADMIN_ID,
        )
        assert granted == set(Capability)

    @pytest.mark.anyio
    async def test_idempotent(self, db_session: AsyncSession) -> None:
        first = await seed_demo(db_session)
        second = await seed_demo(db_session)
        assert first["created"] is True
        assert second["created"] is False

        page = await _service(db_session).get_allocations(page_size=100)
        assert page.total == 4

    @pytest.mark.anyio
    async def test_alice_is_fully_booked_in_february(self, db_session: AsyncSession) -> None:
        await seed_demo(db_session)
        report = await _service(db_session).get_user_capacity(
            DEMO_PEOPLE["alice"], weeks=1, start=date(2026, 2, 2),
        )
        assert report.peak_percent == Decimal("100.00")
        assert report.over_allocated_weeks == []
