"""FastAPI dependency injection factories.

Tenant and caller identity arrive as ``X-Organization-Id`` / ``X-Actor-Id``
headers set by the authenticating gateway. Each request gets its own
``AllocationService`` wired to SQL collaborators sharing one session, plus
the process-wide ``UserLockRegistry`` held on ``app.state``.
"""

from uuid import UUID

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from resourceplan.config.settings import Settings, get_settings
from resourceplan.db.session import get_async_session
from resourceplan.governance.audit import SqlAuditLogger
from resourceplan.governance.permissions import SqlPermissionChecker
from resourceplan.repositories.allocations import SqlAllocationStore
from resourceplan.repositories.projects import ProjectRepository
from resourceplan.services.allocations import AllocationService
from resourceplan.services.locks import UserLockRegistry


async def get_organization_id(x_organization_id: UUID = Header(...)) -> UUID:
    return x_organization_id


async def get_actor_id(x_actor_id: UUID = Header(...)) -> UUID:
    return x_actor_id


def get_user_locks(request: Request) -> UserLockRegistry:
    return request.app.state.user_locks


async def get_allocation_service(
    session: AsyncSession = Depends(get_async_session),
    organization_id: UUID = Depends(get_organization_id),
    actor_id: UUID = Depends(get_actor_id),
    locks: UserLockRegistry = Depends(get_user_locks),
    settings: Settings = Depends(get_settings),
) -> AllocationService:
    return AllocationService(
        organization_id=organization_id,
        actor_id=actor_id,
        store=SqlAllocationStore(session, organization_id),
        projects=ProjectRepository(session, organization_id),
        permissions=SqlPermissionChecker(session, organization_id),
        audit=SqlAuditLogger(session),
        locks=locks,
        settings=settings,
    )
