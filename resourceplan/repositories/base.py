"""Abstract store interface for allocation persistence.

Stores are scoped to one organization at construction; no method can read
or write another tenant's rows. Soft-deleted rows are filtered in one
place per implementation, never at call sites.

Repositories call add()/flush() only. The one exception is
``user_transaction``, the transactional boundary of a conflict-checked
write: it serialises writers for a user and commits or rolls back as a unit.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any
from uuid import UUID

from resourceplan.models.allocation import Allocation, AllocationFilters


class AllocationStore(ABC):
    """Store collaborator for allocation records."""

    def __init__(self, organization_id: UUID) -> None:
        self._organization_id = organization_id

    @property
    def organization_id(self) -> UUID:
        return self._organization_id

    @abstractmethod
    async def insert(self, allocation: Allocation) -> Allocation:
        ...

    @abstractmethod
    async def update_by_id(
        self, allocation_id: UUID, changes: dict[str, Any],
    ) -> Allocation | None:
        ...

    @abstractmethod
    async def soft_delete_by_id(self, allocation_id: UUID) -> Allocation | None:
        ...

    @abstractmethod
    async def find_by_id(
        self, allocation_id: UUID, *, include_deleted: bool = False,
    ) -> Allocation | None:
        ...

    @abstractmethod
    async def find_non_deleted_by_user(self, user_id: UUID) -> list[Allocation]:
        ...

    @abstractmethod
    async def find_non_deleted_by_project(self, project_id: UUID) -> list[Allocation]:
        ...

    @abstractmethod
    async def page(
        self, filters: AllocationFilters, page: int, page_size: int,
    ) -> tuple[list[Allocation], int]:
        """Return (items, total) ordered by (created_at, allocation_id)."""

    @abstractmethod
    def user_transaction(self, user_id: UUID) -> AbstractAsyncContextManager[None]:
        """Serialise check-and-write for ``user_id``; commit on exit, roll back on error."""

    def _check_scope(self, allocation: Allocation) -> None:
        if allocation.organization_id != self._organization_id:
            msg = (
                f"Allocation {allocation.allocation_id} belongs to organization "
                f"{allocation.organization_id}, store is scoped to {self._organization_id}."
            )
            raise ValueError(msg)
