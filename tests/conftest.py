"""Shared pytest fixtures for the ResourcePlan test suite.

Provides:
- db_engine: in-memory SQLite async engine with all tables
- db_session: SAVEPOINT-isolated async session (app commits don't leak)
- client: AsyncClient with dependency overrides for DB-backed testing
- org_id / actor_id / project_id: identities for a seeded organization
- seeded: project + full capability grants for actor_id, committed
- headers: X-Organization-Id / X-Actor-Id for the seeded actor
"""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool
from uuid_extensions import uuid7

from resourceplan.db.session import Base, get_async_session
import resourceplan.db.tables  # noqa: F401  registers ORM models on Base.metadata
from resourceplan.governance.permissions import SqlPermissionChecker
from resourceplan.models.common import Capability
from resourceplan.repositories.projects import ProjectRepository


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine with all tables."""
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Provide a SAVEPOINT-isolated session.

    The outer transaction is never committed — it rolls back at teardown.
    Application code calling session.commit() releases a SAVEPOINT and
    session.rollback() returns to the last one, so everything a test wants
    to survive a rejected write must be committed first.
    """
    async with db_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)

        # Start a nested SAVEPOINT
        nested = await conn.begin_nested()

        @event.listens_for(session.sync_session, "after_transaction_end")
        def restart_savepoint(sync_session, transaction):  # noqa: ARG001
            nonlocal nested
            if transaction.nested and not transaction._parent.nested:
                nested = conn.sync_connection.begin_nested()

        yield session

        await session.close()
        await trans.rollback()


@pytest.fixture
def org_id():
    return uuid7()


@pytest.fixture
def actor_id():
    return uuid7()


@pytest.fixture
def project_id():
    return uuid7()


@pytest.fixture
async def seeded(db_session: AsyncSession, org_id, actor_id, project_id):
    """One project in org_id and every capability for actor_id, committed."""
    await ProjectRepository(db_session, org_id).create(project_id=project_id, name="Apollo")
    await SqlPermissionChecker(db_session, org_id).grant(actor_id, *Capability)
    await db_session.commit()
    return {"organization_id": org_id, "actor_id": actor_id, "project_id": project_id}


@pytest.fixture
def headers(org_id, actor_id) -> dict[str, str]:
    return {"X-Organization-Id": str(org_id), "X-Actor-Id": str(actor_id)}


@pytest.fixture
async def client(db_session):
    """AsyncClient with get_async_session overridden to use the test session."""
    from resourceplan.api.main import app

    async def _override_session():
        yield db_session

    app.dependency_overrides[get_async_session] = _override_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
