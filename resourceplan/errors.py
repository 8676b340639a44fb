"""Error kinds raised by the allocation service.

None of these are retried by the engine. Permission, not-found, validation
and conflict errors are terminal for the request; ``StorageError`` wraps an
unexpected persistence failure and leaves retry policy to the caller that
owns the transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from resourceplan.models.allocation import AllocationConflict


class AllocationError(Exception):
    """Base class for every error the allocation engine reports."""

    code = "allocation_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PermissionDeniedError(AllocationError):
    """The caller lacks the capability required by the operation."""

    code = "permission_denied"

    def __init__(self, capability: str, reason: str | None = None) -> None:
        message = f"User does not have permission: {capability}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.capability = capability
        self.reason = reason


class NotFoundError(AllocationError):
    """The entity does not exist in this organization, or is soft-deleted."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: UUID | str) -> None:
        super().__init__(f"{entity} {entity_id} not found.")
        self.entity = entity
        self.entity_id = entity_id


class ValidationError(AllocationError):
    """Input violates an allocation invariant (bad percent, inverted dates, ...)."""

    code = "validation_error"

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class ConflictError(AllocationError):
    """The write would commit a user beyond 100% of their capacity."""

    code = "allocation_conflict"

    def __init__(self, conflicts: list[AllocationConflict]) -> None:
        totals = ", ".join(f"{c.total_allocation}%" for c in conflicts)
        super().__init__(f"Allocation conflicts detected: total allocation {totals}")
        self.conflicts = conflicts


class StorageError(AllocationError):
    """Unexpected failure in a persistence collaborator."""

    code = "storage_error"
