"""Allocation service — the only component with side effects.

Orchestrates capability checks, conflict-safe writes, listings and capacity
reports for one organization on behalf of one actor. Collaborators are
injected at construction; the service never builds its own.

Write path for create/update/delete:

1. capability check (``PermissionChecker``)
2. input validation (pydantic models, re-raised as ``ValidationError``)
3. per-user serialisation: in-process lock, then the store's
   ``user_transaction`` (advisory lock + commit/rollback)
4. load the user's live allocations, ``detect_conflicts``, write, audit

Steps 3-4 run as one unit: a conflicting or failed write leaves nothing
behind, and no other writer for the same user can interleave between the
check and the write.
"""

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Any, TypeVar
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from resourceplan.config.settings import Settings, get_settings
from resourceplan.engine.capacity import (
    capacity_totals,
    peak_percent,
    per_user_totals,
    weekly_capacity,
)
from resourceplan.engine.overlap import FULL_CAPACITY, detect_conflicts
from resourceplan.errors import (
    AllocationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from resourceplan.governance.audit import AuditEvent, AuditLogger
from resourceplan.governance.permissions import PermissionChecker
from resourceplan.models.allocation import (
    Allocation,
    AllocationCreate,
    AllocationFilters,
    AllocationPage,
    AllocationUpdate,
    ProjectCapacityReport,
    UserCapacityReport,
)
from resourceplan.models.common import Capability, utc_now, utc_today
from resourceplan.repositories.base import AllocationStore
from resourceplan.repositories.projects import ProjectLookup
from resourceplan.services.locks import UserLockRegistry

logger = logging.getLogger(__name__)

ENTITY_TYPE = "ResourceAllocation"

_M = TypeVar("_M", bound=BaseModel)


def _parse(model: type[_M], data: _M | Mapping[str, Any]) -> _M:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {model.__name__}: {exc.error_count()} error(s)",
            errors=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc


def _snapshot(allocation: Allocation) -> dict[str, Any]:
    return allocation.model_dump(mode="json")


class AllocationService:
    """Allocation use cases for one organization and one acting user."""

    def __init__(
        self,
        *,
        organization_id: UUID,
        actor_id: UUID,
        store: AllocationStore,
        projects: ProjectLookup,
        permissions: PermissionChecker,
        audit: AuditLogger,
        locks: UserLockRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        if store.organization_id != organization_id:
            msg = (
                f"Store is scoped to organization {store.organization_id}, "
                f"service to {organization_id}."
            )
            raise ValueError(msg)
        self._organization_id = organization_id
        self._actor_id = actor_id
        self._store = store
        self._projects = projects
        self._permissions = permissions
        self._audit = audit
        self._locks = locks if locks is not None else UserLockRegistry()
        self._settings = settings if settings is not None else get_settings()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require(self, capability: Capability) -> None:
        decision = await self._permissions.has_capability(self._actor_id, capability)
        if not decision.allowed:
            logger.info(
                "Permission denied: actor=%s capability=%s reason=%s",
                self._actor_id, capability.value, decision.reason,
            )
            raise PermissionDeniedError(capability.value, decision.reason)

    @asynccontextmanager
    async def _serialized(self, user_id: UUID) -> AsyncIterator[None]:
        async with self._locks.hold(self._organization_id, user_id):
            async with self._store.user_transaction(user_id):
                yield

    async def _require_live(self, allocation_id: UUID) -> Allocation:
        allocation = await self._store.find_by_id(allocation_id)
        if allocation is None:
            raise NotFoundError("Allocation", allocation_id)
        return allocation

    async def _require_project(self, project_id: UUID) -> None:
        if not await self._projects.exists(project_id):
            raise NotFoundError("Project", project_id)

    async def _check_conflicts(
        self,
        user_id: UUID,
        start: date,
        end: date,
        percent: Any,
        exclude_id: UUID | None = None,
    ) -> None:
        existing = await self._store.find_non_deleted_by_user(user_id)
        conflicts = detect_conflicts(existing, user_id, start, end, percent, exclude_id)
        if conflicts:
            logger.info(
                "Allocation rejected: user=%s total=%s overlapping=%d",
                user_id, conflicts[0].total_allocation, len(conflicts[0].overlapping),
            )
            raise ConflictError(conflicts)

    async def _emit(
        self,
        action: str,
        entity_id: UUID,
        *,
        old: Allocation | None,
        new: Allocation | None,
    ) -> None:
        event = AuditEvent(
            organization_id=self._organization_id,
            actor_id=self._actor_id,
            action=action,
            entity_type=ENTITY_TYPE,
            entity_id=entity_id,
            old_values=_snapshot(old) if old is not None else None,
            new_values=_snapshot(new) if new is not None else None,
        )
        try:
            await self._audit.record(event)
        except AllocationError:
            raise
        except Exception as exc:
            logger.error("Audit record failed: action=%s entity=%s error=%s", action, entity_id, exc)
            msg = f"Audit event {action} for {entity_id} could not be recorded: {exc}"
            raise StorageError(msg) from exc

    def _window(self, weeks: int | None, start: date | None) -> tuple[date, date]:
        weeks = self._settings.DEFAULT_CAPACITY_WEEKS if weeks is None else weeks
        if not 1 <= weeks <= self._settings.MAX_CAPACITY_WEEKS:
            msg = f"weeks must be between 1 and {self._settings.MAX_CAPACITY_WEEKS}, got {weeks}"
            raise ValidationError(msg)
        window_start = start or utc_today()
        return window_start, window_start + timedelta(days=weeks * 7 - 1)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_allocation(
        self, data: AllocationCreate | Mapping[str, Any],
    ) -> Allocation:
        """Create an allocation unless it would push the user beyond 100%.

        Raises:
            PermissionDeniedError: actor lacks ``allocations.create``.
            ValidationError: invalid percent, inverted dates, unknown fields.
            NotFoundError: the project does not exist in this organization.
            ConflictError: the user would exceed 100% on an overlapping range.
        """
        await self._require(Capability.CREATE)
        payload = _parse(AllocationCreate, data)
        await self._require_project(payload.project_id)

        async with self._serialized(payload.user_id):
            await self._check_conflicts(
                payload.user_id, payload.start_date, payload.end_date,
                payload.allocation_percent,
            )
            now = utc_now()
            created = await self._store.insert(Allocation(
                organization_id=self._organization_id,
                created_at=now,
                updated_at=now,
                **payload.model_dump(),
            ))
            await self._emit("allocations.create", created.allocation_id, old=None, new=created)

        logger.info(
            "Allocation created: id=%s user=%s project=%s percent=%s",
            created.allocation_id, created.user_id, created.project_id,
            created.allocation_percent,
        )
        return created

    async def update_allocation(
        self, allocation_id: UUID, patch: AllocationUpdate | Mapping[str, Any],
    ) -> Allocation:
        """Apply a partial update, re-checking capacity against the user's other allocations."""
        existing = await self._require_live(allocation_id)
        await self._require(Capability.UPDATE)
        changes = _parse(AllocationUpdate, patch).changes()

        async with self._serialized(existing.user_id):
            current = await self._require_live(allocation_id)
            try:
                merged = Allocation.model_validate({**current.model_dump(), **changes})
            except PydanticValidationError as exc:
                raise ValidationError(
                    f"Invalid allocation after update: {exc.error_count()} error(s)",
                    errors=exc.errors(include_url=False, include_context=False, include_input=False),
                ) from exc
            await self._check_conflicts(
                merged.user_id, merged.start_date, merged.end_date,
                merged.allocation_percent, exclude_id=allocation_id,
            )
            if not changes:
                return current
            updated = await self._store.update_by_id(allocation_id, changes)
            if updated is None:
                raise NotFoundError("Allocation", allocation_id)
            await self._emit("allocations.update", allocation_id, old=current, new=updated)

        logger.info("Allocation updated: id=%s fields=%s", allocation_id, sorted(changes))
        return updated

    async def delete_allocation(self, allocation_id: UUID) -> None:
        """Soft-delete. Deleting a missing or already-deleted allocation raises NotFoundError."""
        await self._require(Capability.DELETE)
        existing = await self._require_live(allocation_id)

        async with self._serialized(existing.user_id):
            deleted = await self._store.soft_delete_by_id(allocation_id)
            if deleted is None:
                raise NotFoundError("Allocation", allocation_id)
            await self._emit("allocations.delete", allocation_id, old=existing, new=None)

        logger.info("Allocation deleted: id=%s", allocation_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_allocation(self, allocation_id: UUID) -> Allocation:
        await self._require(Capability.READ)
        return await self._require_live(allocation_id)

    async def get_allocations(
        self,
        filters: AllocationFilters | Mapping[str, Any] | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> AllocationPage:
        """One page of live allocations, ordered by creation time."""
        await self._require(Capability.READ)
        parsed = _parse(AllocationFilters, filters or {})
        page_size = self._settings.DEFAULT_PAGE_SIZE if page_size is None else page_size
        if page < 1:
            msg = f"page must be >= 1, got {page}"
            raise ValidationError(msg)
        if not 1 <= page_size <= self._settings.MAX_PAGE_SIZE:
            msg = f"page_size must be between 1 and {self._settings.MAX_PAGE_SIZE}, got {page_size}"
            raise ValidationError(msg)

        items, total = await self._store.page(parsed, page, page_size)
        return AllocationPage(items=items, total=total, page=page, page_size=page_size)

    async def get_project_capacity(
        self,
        project_id: UUID,
        weeks: int | None = None,
        start: date | None = None,
    ) -> ProjectCapacityReport:
        """Weekly planned hours for a project over ``weeks`` weeks from ``start`` (default today)."""
        await self._require(Capability.VIEW_CAPACITY)
        await self._require_project(project_id)
        window_start, window_end = self._window(weeks, start)

        allocations = await self._store.find_non_deleted_by_project(project_id)
        hours_per_week = self._settings.HOURS_PER_FULL_WEEK
        series = weekly_capacity(allocations, window_start, window_end, hours_per_week)
        total_hours, average_percent = capacity_totals(series)

        return ProjectCapacityReport(
            project_id=project_id,
            project_name=await self._projects.name_of(project_id),
            window_start=window_start,
            window_end=window_end,
            hours_per_full_week=hours_per_week,
            allocations=per_user_totals(series),
            weeks=series,
            total_planned_hours=total_hours,
            average_planned_percent=average_percent,
        )

    async def get_user_capacity(
        self,
        user_id: UUID,
        weeks: int | None = None,
        start: date | None = None,
    ) -> UserCapacityReport:
        """Weekly utilisation of one person across every project they are allocated to."""
        await self._require(Capability.VIEW_CAPACITY)
        window_start, window_end = self._window(weeks, start)

        allocations = await self._store.find_non_deleted_by_user(user_id)
        hours_per_week = self._settings.HOURS_PER_FULL_WEEK
        series = weekly_capacity(allocations, window_start, window_end, hours_per_week)
        total_hours, average_percent = capacity_totals(series)

        return UserCapacityReport(
            user_id=user_id,
            window_start=window_start,
            window_end=window_end,
            hours_per_full_week=hours_per_week,
            weeks=series,
            total_planned_hours=total_hours,
            average_planned_percent=average_percent,
            peak_percent=peak_percent(series),
            over_allocated_weeks=[
                w.period_start for w in series if w.planned_percent > FULL_CAPACITY
            ],
        )
