"""In-memory store and project lookup.

Used by tests and for embedding the service without a database. Production
deployments use the SQL implementations. Every awaitable method yields to
the event loop once, so interleavings between concurrent callers are as
real as they are with a database round-trip.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any
from uuid import UUID

from resourceplan.models.allocation import Allocation, AllocationFilters
from resourceplan.models.common import utc_now
from resourceplan.repositories.base import AllocationStore
from resourceplan.repositories.projects import ProjectLookup

# Undo log of the current task's user_transaction: (allocation_id, previous row).
_journal: ContextVar[list[tuple[UUID, Allocation | None]] | None] = ContextVar(
    "in_memory_allocation_journal", default=None,
)


class InMemoryAllocationStore(AllocationStore):
    """Organization-scoped view over a shared ``{allocation_id: Allocation}`` table.

    Pass the same ``table`` to stores for different organizations to model a
    multi-tenant database.
    """

    def __init__(
        self,
        organization_id: UUID,
        table: dict[UUID, Allocation] | None = None,
    ) -> None:
        super().__init__(organization_id)
        self._table: dict[UUID, Allocation] = table if table is not None else {}

    def _scoped(self) -> list[Allocation]:
        return [a for a in self._table.values() if a.organization_id == self._organization_id]

    def _live(self) -> list[Allocation]:
        return [a for a in self._scoped() if not a.is_deleted]

    def _get_live(self, allocation_id: UUID) -> Allocation | None:
        return next((a for a in self._live() if a.allocation_id == allocation_id), None)

    async def insert(self, allocation: Allocation) -> Allocation:
        self._check_scope(allocation)
        await asyncio.sleep(0)
        if allocation.allocation_id in self._table:
            msg = f"Allocation {allocation.allocation_id} already exists."
            raise ValueError(msg)
        self._write(allocation)
        return allocation

    async def update_by_id(
        self, allocation_id: UUID, changes: dict[str, Any],
    ) -> Allocation | None:
        await asyncio.sleep(0)
        current = self._get_live(allocation_id)
        if current is None:
            return None
        updated = Allocation.model_validate(
            {**current.model_dump(), **changes, "updated_at": utc_now()}
        )
        self._write(updated)
        return updated

    async def soft_delete_by_id(self, allocation_id: UUID) -> Allocation | None:
        await asyncio.sleep(0)
        current = self._get_live(allocation_id)
        if current is None:
            return None
        now = utc_now()
        deleted = current.model_copy(update={"deleted_at": now, "updated_at": now})
        self._write(deleted)
        return deleted

    async def find_by_id(
        self, allocation_id: UUID, *, include_deleted: bool = False,
    ) -> Allocation | None:
        await asyncio.sleep(0)
        rows = self._scoped() if include_deleted else self._live()
        return next((a for a in rows if a.allocation_id == allocation_id), None)

    async def find_non_deleted_by_user(self, user_id: UUID) -> list[Allocation]:
        await asyncio.sleep(0)
        rows = [a for a in self._live() if a.user_id == user_id]
        return sorted(rows, key=lambda a: (a.start_date, a.allocation_id))

    async def find_non_deleted_by_project(self, project_id: UUID) -> list[Allocation]:
        await asyncio.sleep(0)
        rows = [a for a in self._live() if a.project_id == project_id]
        return sorted(rows, key=lambda a: (a.start_date, a.allocation_id))

    async def page(
        self, filters: AllocationFilters, page: int, page_size: int,
    ) -> tuple[list[Allocation], int]:
        await asyncio.sleep(0)
        rows = [a for a in self._live() if _matches(a, filters)]
        rows.sort(key=lambda a: (a.created_at, a.allocation_id))
        offset = (page - 1) * page_size
        return rows[offset:offset + page_size], len(rows)

    def _write(self, allocation: Allocation) -> None:
        journal = _journal.get()
        if journal is not None:
            journal.append((allocation.allocation_id, self._table.get(allocation.allocation_id)))
        self._table[allocation.allocation_id] = allocation

    @asynccontextmanager
    async def user_transaction(self, user_id: UUID) -> AsyncIterator[None]:
        journal: list[tuple[UUID, Allocation | None]] = []
        token = _journal.set(journal)
        try:
            yield
        except BaseException:
            for allocation_id, previous in reversed(journal):
                if previous is None:
                    self._table.pop(allocation_id, None)
                else:
                    self._table[allocation_id] = previous
            raise
        finally:
            _journal.reset(token)


def _matches(allocation: Allocation, filters: AllocationFilters) -> bool:
    if filters.project_id is not None and allocation.project_id != filters.project_id:
        return False
    if filters.user_id is not None and allocation.user_id != filters.user_id:
        return False
    if filters.role is not None and allocation.role != filters.role:
        return False
    if filters.is_billable is not None and allocation.is_billable != filters.is_billable:
        return False
    if filters.start_date is not None and allocation.start_date < filters.start_date:
        return False
    if filters.end_date is not None and allocation.end_date > filters.end_date:
        return False
    return True


class InMemoryProjectLookup(ProjectLookup):
    """Projects of one organization, held as ``{project_id: name}``."""

    def __init__(self, projects: dict[UUID, str] | None = None) -> None:
        self._projects: dict[UUID, str] = dict(projects or {})

    def add(self, project_id: UUID, name: str) -> None:
        self._projects[project_id] = name

    async def exists(self, project_id: UUID) -> bool:
        return project_id in self._projects

    async def name_of(self, project_id: UUID) -> str:
        try:
            return self._projects[project_id]
        except KeyError:
            msg = f"Project {project_id} not found."
            raise KeyError(msg) from None
