"""Tests for audit loggers."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from uuid_extensions import uuid7

from resourceplan.errors import StorageError
from resourceplan.governance.audit import (
    AuditEvent,
    InMemoryAuditLogger,
    SqlAuditLogger,
    StructlogAuditLogger,
)


def _event(entity_id=None, action="allocations.create") -> AuditEvent:
    return AuditEvent(
        organization_id=uuid7(),
        actor_id=uuid7(),
        action=action,
        entity_type="ResourceAllocation",
        entity_id=entity_id or uuid7(),
        new_values={"allocation_percent": "50"},
    )


class _RecordingLogger:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    def info(self, event: str, **kw) -> None:
        self.calls.append((event, kw))


class TestSqlAuditLogger:
    @pytest.mark.anyio
    async def test_record_and_list(self, db_session: AsyncSession) -> None:
        logger = SqlAuditLogger(db_session)
        entity = uuid7()
        await logger.record(_event(entity))
        await logger.record(_event(entity, action="allocations.delete"))
        await logger.record(_event())

        rows = await logger.list_for_entity(entity)
        assert [r.action for r in rows] == ["allocations.create", "allocations.delete"]
        assert rows[0].new_values == {"allocation_percent": "50"}
        assert rows[0].old_values is None

    @pytest.mark.anyio
    async def test_write_failure_is_storage_error(self, db_session: AsyncSession) -> None:
        logger = SqlAuditLogger(db_session)
        event = _event()
        await logger.record(event)
        with pytest.raises(StorageError, match="could not be stored"):
            await logger.record(event)


class TestStructlogAuditLogger:
    @pytest.mark.anyio
    async def test_emits_structured_line(self) -> None:
        sink = _RecordingLogger()
        event = _event()
        await StructlogAuditLogger(sink).record(event)
        (name, fields), = sink.calls
        assert name == "audit_event"
        assert fields["action"] == "allocations.create"
        assert fields["entity_id"] == str(event.entity_id)


class TestInMemoryAuditLogger:
    @pytest.mark.anyio
    async def test_collects_events(self) -> None:
        logger = InMemoryAuditLogger()
        await logger.record(_event())
        await logger.record(_event(action="allocations.update"))
        assert logger.actions() == ["allocations.create", "allocations.update"]
