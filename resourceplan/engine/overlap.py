"""Overlap detection for allocation conflict checks.

Deterministic engine code: pure functions, no I/O.

Date ranges are closed intervals. Two ranges overlap when
``a.start <= b.end and a.end >= b.start``, so ranges that only share a
boundary day still overlap.

A check produces at most one aggregated conflict: the percentages of every
existing allocation overlapping the candidate are summed with the candidate
percentage, and a total strictly above 100 is a conflict. Exactly 100 is not.
"""

import logging
import time
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from uuid import UUID

from resourceplan.models.allocation import (
    Allocation,
    AllocationConflict,
    ConflictingAllocation,
)
from resourceplan.models.common import ConflictType

logger = logging.getLogger(__name__)

FULL_CAPACITY = Decimal("100")


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """True when the closed ranges [a_start, a_end] and [b_start, b_end] share a day."""
    return a_start <= b_end and a_end >= b_start


def overlap_window(
    a_start: date, a_end: date, b_start: date, b_end: date,
) -> tuple[date, date] | None:
    """Shared sub-range of two closed ranges, or None when they are disjoint."""
    if not ranges_overlap(a_start, a_end, b_start, b_end):
        return None
    return max(a_start, b_start), min(a_end, b_end)


def overlapping_allocations(
    existing: Iterable[Allocation],
    user_id: UUID,
    start: date,
    end: date,
    exclude_id: UUID | None = None,
) -> list[Allocation]:
    """Live allocations of ``user_id`` sharing at least one day with [start, end].

    Ordered by (start_date, allocation_id).
    """
    selected = [
        a for a in existing
        if a.user_id == user_id
        and not a.is_deleted
        and a.allocation_id != exclude_id
        and ranges_overlap(a.start_date, a.end_date, start, end)
    ]
    selected.sort(key=lambda a: (a.start_date, a.allocation_id))
    return selected


def detect_conflicts(
    existing: Iterable[Allocation],
    user_id: UUID,
    candidate_start: date,
    candidate_end: date,
    candidate_percent: Decimal,
    exclude_id: UUID | None = None,
) -> list[AllocationConflict]:
    """Decide whether the candidate allocation would over-commit ``user_id``.

    Args:
        existing: Allocations already on record (organization-scoped). Other
            users' and soft-deleted records are ignored.
        user_id: Person the candidate is for.
        candidate_start: First day of the candidate range (inclusive).
        candidate_end: Last day of the candidate range (inclusive).
        candidate_percent: Candidate share of time, 0 < p <= 100.
        exclude_id: Allocation to leave out, used when re-checking an update
            against the record being updated.

    Returns:
        Empty list when there is no overlap or the total stays <= 100,
        otherwise a single ``AllocationConflict``.
    """
    if candidate_end < candidate_start:
        msg = f"candidate_end {candidate_end} is before candidate_start {candidate_start}"
        raise ValueError(msg)
    if not (Decimal("0") < candidate_percent <= FULL_CAPACITY):
        msg = f"candidate_percent must be in (0, 100], got {candidate_percent}"
        raise ValueError(msg)

    started = time.perf_counter()
    overlapping = overlapping_allocations(
        existing, user_id, candidate_start, candidate_end, exclude_id,
    )

    conflicts: list[AllocationConflict] = []
    if overlapping:
        total = sum((a.allocation_percent for a in overlapping), Decimal("0"))
        total += candidate_percent
        if total > FULL_CAPACITY:
            details = [
                ConflictingAllocation(
                    allocation_id=a.allocation_id,
                    project_id=a.project_id,
                    role=a.role,
                    allocation_percent=a.allocation_percent,
                    start_date=a.start_date,
                    end_date=a.end_date,
                    overlap_start=max(a.start_date, candidate_start),
                    overlap_end=min(a.end_date, candidate_end),
                )
                for a in overlapping
            ]
            conflicts.append(AllocationConflict(
                conflict_type=ConflictType.EXCEEDS_100_PERCENT,
                user_id=user_id,
                total_allocation=total,
                requested_allocation=candidate_percent,
                overlapping=[a.allocation_id for a in overlapping],
                conflicting_allocations=details,
            ))

    logger.debug(
        "Allocation conflict check for user %s: %d overlapping, %d conflicts in %.2fms",
        user_id, len(overlapping), len(conflicts),
        (time.perf_counter() - started) * 1000,
    )
    return conflicts
