"""Seed script — load sample data into the ResourcePlan database.

Creates, for a fixed demo organization:
1. Two projects (Website Relaunch, Data Platform)
2. An admin actor holding every allocation capability
3. Four allocations for three people, written through AllocationService so
   they pass the same capacity check as real requests

Idempotent: safe to run multiple times — skips if the demo project exists.

Usage:
    python -m scripts.seed          # against DATABASE_URL from .env
    pytest tests/scripts/test_seed.py  # against aiosqlite in-memory
"""

import asyncio
import sys
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from resourceplan.governance.audit import SqlAuditLogger
from resourceplan.governance.permissions import SqlPermissionChecker
from resourceplan.models.allocation import Allocation, AllocationCreate
from resourceplan.models.common import AllocationRole, Capability
from resourceplan.repositories.allocations import SqlAllocationStore
from resourceplan.repositories.projects import ProjectRepository
from resourceplan.services.allocations import AllocationService

DEMO_ORGANIZATION_ID = UUID("01900000-0000-7000-8000-000000000001")
DEMO_ADMIN_ID = UUID("01900000-0000-7000-8000-0000000000a1")

DEMO_PROJECTS: dict[UUID, str] = {
    UUID("01900000-0000-7000-8000-000000000101"): "Website Relaunch",
    UUID("01900000-0000-7000-8000-000000000102"): "Data Platform",
}

DEMO_PEOPLE: dict[str, UUID] = {
    "alice": UUID("01900000-0000-7000-8000-000000000201"),
    "bilal": UUID("01900000-0000-7000-8000-000000000202"),
    "chen": UUID("01900000-0000-7000-8000-000000000203"),
}

_WEBSITE, _PLATFORM = DEMO_PROJECTS

# (person, project, role, percent, start, end)
DEMO_ALLOCATIONS = [
    ("alice", _WEBSITE, AllocationRole.DEVELOPER, "60", date(2026, 1, 5), date(2026, 3, 27)),
    ("alice", _PLATFORM, AllocationRole.ARCHITECT, "40", date(2026, 2, 2), date(2026, 4, 24)),
    ("bilal", _WEBSITE, AllocationRole.DESIGNER, "50", date(2026, 1, 5), date(2026, 2, 27)),
    ("chen", _PLATFORM, AllocationRole.DEVELOPER, "100", date(2026, 1, 12), date(2026, 6, 26)),
]


def _service(session: AsyncSession) -> AllocationService:
    return AllocationService(
        organization_id=DEMO_ORGANIZATION_ID,
        actor_id=DEMO_ADMIN_ID,
        store=SqlAllocationStore(session, DEMO_ORGANIZATION_ID),
        projects=ProjectRepository(session, DEMO_ORGANIZATION_ID),
        permissions=SqlPermissionChecker(session, DEMO_ORGANIZATION_ID),
        audit=SqlAuditLogger(session),
    )


async def seed_projects(session: AsyncSession) -> list[UUID]:
    repo = ProjectRepository(session, DEMO_ORGANIZATION_ID)
    for project_id, name in DEMO_PROJECTS.items():
        await repo.create(project_id=project_id, name=name)
    return list(DEMO_PROJECTS)


async def seed_admin(session: AsyncSession) -> UUID:
    checker = SqlPermissionChecker(session, DEMO_ORGANIZATION_ID)
    await checker.grant(DEMO_ADMIN_ID, *Capability)
    return DEMO_ADMIN_ID


async def seed_allocations(session: AsyncSession) -> list[Allocation]:
    service = _service(session)
    created = []
    for person, project_id, role, percent, start, end in DEMO_ALLOCATIONS:
        created.append(await service.create_allocation(AllocationCreate(
            project_id=project_id,
            user_id=DEMO_PEOPLE[person],
            role=role,
            allocation_percent=Decimal(percent),
            start_date=start,
            end_date=end,
            notes={"seeded": True},
        )))
    return created


async def seed_demo(session: AsyncSession) -> dict:
    """Idempotent demo seed: projects + admin grants + allocations.

    Returns dict with keys: created (bool), organization_id, allocation_count.
    """
    repo = ProjectRepository(session, DEMO_ORGANIZATION_ID)
    if await repo.exists(_WEBSITE):
        return {
            "created": False,
            "organization_id": DEMO_ORGANIZATION_ID,
            "allocation_count": None,
        }

    await seed_projects(session)
    await seed_admin(session)
    allocations = await seed_allocations(session)

    return {
        "created": True,
        "organization_id": DEMO_ORGANIZATION_ID,
        "allocation_count": len(allocations),
    }


# ---------------------------------------------------------------------------
# CLI entry point: python -m scripts.seed
# ---------------------------------------------------------------------------


async def _run_seed() -> None:
    """Run the seed against the real database (idempotent)."""
    from resourceplan.db.session import async_session_factory

    async with async_session_factory() as session:
        result = await seed_demo(session)

        if not result["created"]:
            print("Demo data already seeded. Skipping.")
            print(f"  Organization: {result['organization_id']}")
            return

        await session.commit()

        print("Seed complete.")
        print(f"  Organization: {result['organization_id']}")
        print(f"  Admin actor:  {DEMO_ADMIN_ID}")
        print(f"  Allocations:  {result['allocation_count']}")


if __name__ == "__main__":
    asyncio.run(_run_seed())


def __getattr__(name: str):  # type: ignore[misc]
    """Allow `python -m scripts.seed` to work."""
    if name == "__main__":
        asyncio.run(_run_seed())
        sys.exit(0)
    raise AttributeError(name)
