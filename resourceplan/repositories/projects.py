"""Project lookup collaborator and its SQL repository."""

from abc import ABC, abstractmethod
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from resourceplan.db.tables import ProjectRow
from resourceplan.models.common import utc_now


class ProjectLookup(ABC):
    """Answers whether a project exists in the caller's organization, and its name."""

    @abstractmethod
    async def exists(self, project_id: UUID) -> bool:
        ...

    @abstractmethod
    async def name_of(self, project_id: UUID) -> str:
        ...


class ProjectRepository(ProjectLookup):
    def __init__(self, session: AsyncSession, organization_id: UUID) -> None:
        self._session = session
        self._organization_id = organization_id

    async def create(self, *, project_id: UUID, name: str) -> ProjectRow:
        row = ProjectRow(
            project_id=project_id, organization_id=self._organization_id,
            name=name, created_at=utc_now(),
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, project_id: UUID) -> ProjectRow | None:
        result = await self._session.execute(
            select(ProjectRow).where(
                ProjectRow.project_id == project_id,
                ProjectRow.organization_id == self._organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> list[ProjectRow]:
        result = await self._session.execute(
            select(ProjectRow)
            .where(ProjectRow.organization_id == self._organization_id)
            .order_by(ProjectRow.name)
        )
        return list(result.scalars().all())

    async def exists(self, project_id: UUID) -> bool:
        return await self.get(project_id) is not None

    async def name_of(self, project_id: UUID) -> str:
        row = await self.get(project_id)
        if row is None:
            msg = f"Project {project_id} not found."
            raise KeyError(msg)
        return row.name
