"""Allocation models — the allocation record, its inputs, conflicts and capacity reports.

Percentages are ``Decimal`` with at most two decimal places (DECIMAL(5,2) in
storage). Binary floats never enter the arithmetic, so sums across many
records stay exact.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from pydantic import Field, model_validator

from resourceplan.models.common import (
    AllocationRole,
    ConflictType,
    ResourcePlanBase,
    UTCTimestamp,
    UUIDv7,
    new_uuid7,
    utc_now,
)

AllocationPercent = Annotated[
    Decimal,
    Field(
        gt=0,
        le=100,
        max_digits=5,
        decimal_places=2,
        description="Share of the person's time, 0 < p <= 100.",
    ),
]

_FORBID_EXTRA = {**ResourcePlanBase.model_config, "extra": "forbid"}


def _check_date_order(start: date, end: date) -> None:
    if end < start:
        msg = "end_date must be on or after start_date"
        raise ValueError(msg)


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------


class Allocation(ResourcePlanBase):
    """A commitment of a share of a person's time to a project over a date range."""

    allocation_id: UUIDv7 = Field(default_factory=new_uuid7)
    organization_id: UUID
    project_id: UUID
    user_id: UUID
    role: AllocationRole
    allocation_percent: AllocationPercent
    start_date: date
    end_date: date
    is_billable: bool = True
    notes: dict[str, Any] = Field(default_factory=dict)
    created_at: UTCTimestamp = Field(default_factory=utc_now)
    updated_at: UTCTimestamp = Field(default_factory=utc_now)
    deleted_at: datetime | None = None

    @model_validator(mode="after")
    def _dates_ordered(self) -> "Allocation":
        _check_date_order(self.start_date, self.end_date)
        return self

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class AllocationCreate(ResourcePlanBase):
    """Payload for creating an allocation."""

    model_config = _FORBID_EXTRA

    project_id: UUID
    user_id: UUID
    role: AllocationRole
    allocation_percent: AllocationPercent
    start_date: date
    end_date: date
    is_billable: bool = True
    notes: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _dates_ordered(self) -> "AllocationCreate":
        _check_date_order(self.start_date, self.end_date)
        return self


class AllocationUpdate(ResourcePlanBase):
    """Partial update. Identity fields (project, user, organization) cannot change.

    Only fields explicitly set are applied; see ``changes()``.
    """

    model_config = _FORBID_EXTRA

    role: AllocationRole | None = None
    allocation_percent: AllocationPercent | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_billable: bool | None = None
    notes: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _no_explicit_nulls(self) -> "AllocationUpdate":
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                msg = f"{name} cannot be null"
                raise ValueError(msg)
        if self.start_date is not None and self.end_date is not None:
            _check_date_order(self.start_date, self.end_date)
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class AllocationFilters(ResourcePlanBase):
    """Listing filters. ``start_date``/``end_date`` bound the record's own range."""

    model_config = _FORBID_EXTRA

    project_id: UUID | None = None
    user_id: UUID | None = None
    role: AllocationRole | None = None
    is_billable: bool | None = None
    start_date: date | None = Field(
        default=None, description="Only records starting on or after this date.",
    )
    end_date: date | None = Field(
        default=None, description="Only records ending on or before this date.",
    )


class AllocationPage(ResourcePlanBase):
    """One page of allocations plus the total matching count."""

    items: list[Allocation]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class ConflictingAllocation(ResourcePlanBase):
    """An existing allocation that shares days with the candidate range."""

    allocation_id: UUID
    project_id: UUID
    role: AllocationRole
    allocation_percent: Decimal
    start_date: date
    end_date: date
    overlap_start: date
    overlap_end: date


class AllocationConflict(ResourcePlanBase):
    """Over-commitment detected for a user across overlapping allocations."""

    conflict_type: ConflictType = ConflictType.EXCEEDS_100_PERCENT
    user_id: UUID
    total_allocation: Decimal
    requested_allocation: Decimal
    overlapping: list[UUID] = Field(default_factory=list)
    conflicting_allocations: list[ConflictingAllocation] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Capacity reports
# ---------------------------------------------------------------------------


class UserCapacity(ResourcePlanBase):
    """Planned load of one user, for one period or a whole window."""

    user_id: UUID
    planned_hours: Decimal
    planned_percent: Decimal


class CapacityWeek(ResourcePlanBase):
    """One reporting bucket. The last bucket of a window may be shorter than 7 days."""

    period_start: date
    period_end: date
    planned_hours: Decimal
    planned_percent: Decimal
    per_user: list[UserCapacity] = Field(default_factory=list)

    @property
    def days(self) -> int:
        return (self.period_end - self.period_start).days + 1


class ProjectCapacityReport(ResourcePlanBase):
    """Weekly planned-hours series for a project."""

    project_id: UUID
    project_name: str
    window_start: date
    window_end: date
    hours_per_full_week: Decimal
    allocations: list[UserCapacity] = Field(
        default_factory=list,
        description="Per-user totals over the window (hours summed, percent day-weighted).",
    )
    weeks: list[CapacityWeek] = Field(default_factory=list)
    total_planned_hours: Decimal = Decimal("0.00")
    average_planned_percent: Decimal = Decimal("0.00")


class UserCapacityReport(ResourcePlanBase):
    """Weekly utilisation of one person across all of their projects."""

    user_id: UUID
    window_start: date
    window_end: date
    hours_per_full_week: Decimal
    weeks: list[CapacityWeek] = Field(default_factory=list)
    total_planned_hours: Decimal = Decimal("0.00")
    average_planned_percent: Decimal = Decimal("0.00")
    peak_percent: Decimal = Decimal("0.00")
    over_allocated_weeks: list[date] = Field(default_factory=list)
