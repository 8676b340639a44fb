"""SQLAlchemy ORM table models for ResourcePlan.

Uses FlexJSON (JSONB on Postgres, JSON on SQLite) for opaque payloads.

Categories:
- CORE: ResourceAllocationRow (soft-deleted, never purged)
- COLLABORATORS: ProjectRow, CapabilityGrantRow
- APPEND-ONLY: AuditEventRow
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from resourceplan.db.session import Base

# JSONB on PostgreSQL, plain JSON on SQLite (for tests)
FlexJSON = JSONB().with_variant(JSON(), "sqlite")


# ---------------------------------------------------------------------------
# Core
# ---------------------------------------------------------------------------


class ResourceAllocationRow(Base):
    """One person's share of time on one project over an inclusive date range."""

    __tablename__ = "resource_allocations"
    __table_args__ = (
        CheckConstraint(
            "allocation_percent > 0 AND allocation_percent <= 100",
            name="ck_allocation_percent_range",
        ),
        CheckConstraint("end_date >= start_date", name="ck_allocation_date_order"),
        Index("ix_resource_allocations_org_user", "organization_id", "user_id"),
        Index("ix_resource_allocations_org_project", "organization_id", "project_id"),
        Index("ix_resource_allocations_dates", "start_date", "end_date"),
    )

    allocation_id: Mapped[UUID] = mapped_column(primary_key=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    project_id: Mapped[UUID] = mapped_column(nullable=False)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    role: Mapped[str] = mapped_column(String(100), nullable=False)
    allocation_percent: Mapped[Decimal] = mapped_column(
        Numeric(5, 2, asdecimal=True), nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_billable: Mapped[bool] = mapped_column(default=True, nullable=False)
    notes = mapped_column(FlexJSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True,
    )


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class ProjectRow(Base):
    __tablename__ = "projects"

    project_id: Mapped[UUID] = mapped_column(primary_key=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class CapabilityGrantRow(Base):
    """A capability granted to a user within an organization."""

    __tablename__ = "capability_grants"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "user_id", "capability",
            name="uq_capability_grant",
        ),
    )

    grant_id: Mapped[UUID] = mapped_column(primary_key=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    capability: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Audit, append-only
# ---------------------------------------------------------------------------


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    actor_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    metadata_json = mapped_column(FlexJSON, nullable=False, default=dict)
    old_values = mapped_column(FlexJSON, nullable=True)
    new_values = mapped_column(FlexJSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
