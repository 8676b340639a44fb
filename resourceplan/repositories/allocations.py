"""SQL allocation store (async SQLAlchemy)."""

import hashlib
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from resourceplan.db.tables import ResourceAllocationRow
from resourceplan.errors import StorageError
from resourceplan.models.allocation import Allocation, AllocationFilters
from resourceplan.models.common import AllocationRole, utc_now
from resourceplan.repositories.base import AllocationStore

_MUTABLE_FIELDS = frozenset({
    "role", "allocation_percent", "start_date", "end_date", "is_billable", "notes",
})


def advisory_lock_key(organization_id: UUID, user_id: UUID) -> int:
    """Signed 64-bit key for pg_advisory_xact_lock, stable across processes."""
    digest = hashlib.blake2b(
        f"{organization_id}:{user_id}".encode(), digest_size=8,
    ).digest()
    return int.from_bytes(digest, "big", signed=True)


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        msg = f"Allocation store failed during {operation}: {exc}"
        raise StorageError(msg) from exc


def _to_model(row: ResourceAllocationRow) -> Allocation:
    return Allocation(
        allocation_id=row.allocation_id,
        organization_id=row.organization_id,
        project_id=row.project_id,
        user_id=row.user_id,
        role=AllocationRole(row.role),
        allocation_percent=row.allocation_percent,
        start_date=row.start_date,
        end_date=row.end_date,
        is_billable=row.is_billable,
        notes=dict(row.notes or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
        deleted_at=row.deleted_at,
    )


class SqlAllocationStore(AllocationStore):
    def __init__(self, session: AsyncSession, organization_id: UUID) -> None:
        super().__init__(organization_id)
        self._session = session

    def _scoped(self) -> Select:
        return select(ResourceAllocationRow).where(
            ResourceAllocationRow.organization_id == self._organization_id,
        )

    def _live(self) -> Select:
        return self._scoped().where(ResourceAllocationRow.deleted_at.is_(None))

    async def _get_live_row(self, allocation_id: UUID) -> ResourceAllocationRow | None:
        result = await self._session.execute(
            self._live().where(ResourceAllocationRow.allocation_id == allocation_id)
        )
        return result.scalar_one_or_none()

    async def insert(self, allocation: Allocation) -> Allocation:
        self._check_scope(allocation)
        row = ResourceAllocationRow(
            allocation_id=allocation.allocation_id,
            organization_id=allocation.organization_id,
            project_id=allocation.project_id,
            user_id=allocation.user_id,
            role=allocation.role.value,
            allocation_percent=allocation.allocation_percent,
            start_date=allocation.start_date,
            end_date=allocation.end_date,
            is_billable=allocation.is_billable,
            notes=dict(allocation.notes),
            created_at=allocation.created_at,
            updated_at=allocation.updated_at,
            deleted_at=allocation.deleted_at,
        )
        with _storage_errors("insert"):
            self._session.add(row)
            await self._session.flush()
        return _to_model(row)

    async def update_by_id(
        self, allocation_id: UUID, changes: dict[str, Any],
    ) -> Allocation | None:
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            msg = f"Fields cannot be updated: {sorted(unknown)}"
            raise ValueError(msg)
        with _storage_errors("update"):
            row = await self._get_live_row(allocation_id)
            if row is None:
                return None
            for name, value in changes.items():
                if name == "role":
                    value = AllocationRole(value).value
                elif name == "notes":
                    value = dict(value)
                setattr(row, name, value)
            row.updated_at = utc_now()
            await self._session.flush()
        return _to_model(row)

    async def soft_delete_by_id(self, allocation_id: UUID) -> Allocation | None:
        with _storage_errors("soft delete"):
            row = await self._get_live_row(allocation_id)
            if row is None:
                return None
            now = utc_now()
            row.deleted_at = now
            row.updated_at = now
            await self._session.flush()
        return _to_model(row)

    async def find_by_id(
        self, allocation_id: UUID, *, include_deleted: bool = False,
    ) -> Allocation | None:
        query = self._scoped() if include_deleted else self._live()
        with _storage_errors("find by id"):
            result = await self._session.execute(
                query.where(ResourceAllocationRow.allocation_id == allocation_id)
            )
            row = result.scalar_one_or_none()
        return _to_model(row) if row is not None else None

    async def find_non_deleted_by_user(self, user_id: UUID) -> list[Allocation]:
        with _storage_errors("find by user"):
            result = await self._session.execute(
                self._live()
                .where(ResourceAllocationRow.user_id == user_id)
                .order_by(ResourceAllocationRow.start_date, ResourceAllocationRow.allocation_id)
            )
            rows = result.scalars().all()
        return [_to_model(r) for r in rows]

    async def find_non_deleted_by_project(self, project_id: UUID) -> list[Allocation]:
        with _storage_errors("find by project"):
            result = await self._session.execute(
                self._live()
                .where(ResourceAllocationRow.project_id == project_id)
                .order_by(ResourceAllocationRow.start_date, ResourceAllocationRow.allocation_id)
            )
            rows = result.scalars().all()
        return [_to_model(r) for r in rows]

    async def page(
        self, filters: AllocationFilters, page: int, page_size: int,
    ) -> tuple[list[Allocation], int]:
        conditions = []
        if filters.project_id is not None:
            conditions.append(ResourceAllocationRow.project_id == filters.project_id)
        if filters.user_id is not None:
            conditions.append(ResourceAllocationRow.user_id == filters.user_id)
        if filters.role is not None:
            conditions.append(ResourceAllocationRow.role == filters.role.value)
        if filters.is_billable is not None:
            conditions.append(ResourceAllocationRow.is_billable == filters.is_billable)
        if filters.start_date is not None:
            conditions.append(ResourceAllocationRow.start_date >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(ResourceAllocationRow.end_date <= filters.end_date)

        filtered = self._live().where(*conditions)
        with _storage_errors("page"):
            total = await self._session.scalar(
                select(func.count()).select_from(filtered.subquery())
            )
            result = await self._session.execute(
                filtered
                .order_by(ResourceAllocationRow.created_at, ResourceAllocationRow.allocation_id)
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            rows = result.scalars().all()
        return [_to_model(r) for r in rows], int(total or 0)

    @asynccontextmanager
    async def user_transaction(self, user_id: UUID) -> AsyncIterator[None]:
        with _storage_errors("lock"):
            if self._session.get_bind().dialect.name == "postgresql":
                await self._session.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"),
                    {"key": advisory_lock_key(self._organization_id, user_id)},
                )
        try:
            yield
        except BaseException:
            await self._session.rollback()
            raise
        with _storage_errors("commit"):
            await self._session.commit()
