"""Audit collaborator — one event per allocation write.

Audit is blocking: ``record`` is awaited inside the write's transaction, and
an exception from it aborts the write. ``SqlAuditLogger`` stores events in
the same session as the allocation change, so both commit or neither does.
"""

from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID

import structlog
from pydantic import Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from resourceplan.db.tables import AuditEventRow
from resourceplan.errors import StorageError
from resourceplan.models.common import (
    ResourcePlanBase,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)


class AuditEvent(ResourcePlanBase):
    """Who did what to which entity, with before/after snapshots."""

    audit_event_id: UUIDv7 = Field(default_factory=new_uuid7)
    organization_id: UUID
    actor_id: UUID
    action: str = Field(..., min_length=1)
    entity_type: str = Field(..., min_length=1)
    entity_id: UUID
    metadata: dict[str, Any] = Field(default_factory=dict)
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    created_at: UTCTimestamp = Field(default_factory=utc_now)


class AuditLogger(ABC):
    @abstractmethod
    async def record(self, event: AuditEvent) -> None:
        """Persist or emit one event.

        Failures other than ``AllocationError`` are wrapped as ``StorageError``
        by the service and the write is rolled back.
        """


class SqlAuditLogger(AuditLogger):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(self, event: AuditEvent) -> None:
        row = AuditEventRow(
            audit_event_id=event.audit_event_id,
            organization_id=event.organization_id,
            actor_id=event.actor_id,
            action=event.action,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            metadata_json=event.metadata,
            old_values=event.old_values,
            new_values=event.new_values,
            created_at=event.created_at,
        )
        try:
            self._session.add(row)
            await self._session.flush()
        except SQLAlchemyError as exc:
            msg = f"Audit event {event.action} for {event.entity_id} could not be stored: {exc}"
            raise StorageError(msg) from exc

    async def list_for_entity(self, entity_id: UUID) -> list[AuditEventRow]:
        result = await self._session.execute(
            select(AuditEventRow)
            .where(AuditEventRow.entity_id == entity_id)
            .order_by(AuditEventRow.created_at)
        )
        return list(result.scalars().all())


class StructlogAuditLogger(AuditLogger):
    """Emits audit events as structured log lines."""

    def __init__(self, logger: Any = None) -> None:
        self._logger = logger or structlog.get_logger("resourceplan.audit")

    async def record(self, event: AuditEvent) -> None:
        self._logger.info("audit_event", **event.model_dump(mode="json"))


class InMemoryAuditLogger(AuditLogger):
    """Collects events in a list. For tests."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self) -> list[str]:
        return [e.action for e in self.events]
