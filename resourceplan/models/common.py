"""Shared types, enums, and base models used across ResourcePlan domain models."""

from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field
from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def utc_today() -> date:
    """Return the current calendar date in UTC."""
    return utc_now().date()


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


# --- Reusable annotated types ---

UUIDv7 = Annotated[UUID, Field(description="Time-sortable UUID v7.")]
UTCTimestamp = Annotated[
    datetime, Field(description="UTC timezone-aware timestamp.")
]


# --- Shared enums ---


class AllocationRole(StrEnum):
    """Role a person plays on a project. Echoed back, never interpreted."""

    DEVELOPER = "developer"
    DESIGNER = "designer"
    ARCHITECT = "architect"
    PROJECT_MANAGER = "project_manager"
    QA = "qa"
    ANALYST = "analyst"
    CONSULTANT = "consultant"


class Capability(StrEnum):
    """Capabilities checked against the permission collaborator."""

    CREATE = "allocations.create"
    READ = "allocations.read"
    UPDATE = "allocations.update"
    DELETE = "allocations.delete"
    VIEW_CAPACITY = "allocations.view_capacity"
    CLEANUP = "allocations.cleanup"


class ConflictType(StrEnum):
    """Kinds of allocation conflict reported by the overlap check."""

    EXCEEDS_100_PERCENT = "exceeds_100_percent"


# --- Base model ---


class ResourcePlanBase(BaseModel):
    """Base model with common configuration for all ResourcePlan Pydantic models."""

    model_config = {
        "populate_by_name": True,
        "protected_namespaces": (),
    }
