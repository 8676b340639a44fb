"""Resource allocations, projects, capability grants, audit events.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # -- Resource allocations (soft-deleted, never purged) --
    op.create_table(
        "resource_allocations",
        sa.Column("allocation_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("project_id", UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("role", sa.String(100), nullable=False),
        sa.Column("allocation_percent", sa.Numeric(5, 2), nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column("is_billable", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("notes", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True, index=True),
        sa.CheckConstraint(
            "allocation_percent > 0 AND allocation_percent <= 100",
            name="ck_allocation_percent_range",
        ),
        sa.CheckConstraint("end_date >= start_date", name="ck_allocation_date_order"),
    )
    op.create_index(
        "ix_resource_allocations_org_user", "resource_allocations",
        ["organization_id", "user_id"],
    )
    op.create_index(
        "ix_resource_allocations_org_project", "resource_allocations",
        ["organization_id", "project_id"],
    )
    op.create_index(
        "ix_resource_allocations_dates", "resource_allocations",
        ["start_date", "end_date"],
    )

    # -- Projects (lookup collaborator) --
    op.create_table(
        "projects",
        sa.Column("project_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    # -- Capability grants (permission collaborator) --
    op.create_table(
        "capability_grants",
        sa.Column("grant_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("capability", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "organization_id", "user_id", "capability", name="uq_capability_grant",
        ),
    )

    # -- Audit events (append-only) --
    op.create_table(
        "audit_events",
        sa.Column("audit_event_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("metadata_json", JSONB, nullable=False),
        sa.Column("old_values", JSONB, nullable=True),
        sa.Column("new_values", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("capability_grants")
    op.drop_table("projects")
    op.drop_index("ix_resource_allocations_dates", table_name="resource_allocations")
    op.drop_index("ix_resource_allocations_org_project", table_name="resource_allocations")
    op.drop_index("ix_resource_allocations_org_user", table_name="resource_allocations")
    op.drop_table("resource_allocations")
