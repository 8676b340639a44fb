"""Weekly capacity calculator — planned hours and percent per reporting bucket.

Deterministic engine code: pure functions, no I/O.

A window [start, end] is cut into consecutive 7-day buckets beginning at
``start``; the last bucket may be shorter. An allocation contributes to a
bucket in proportion to the share of the bucket's days it covers:

    hours   = percent / 100 * hours_per_full_week * overlap_days / bucket_days
    percent = percent * overlap_days / bucket_days

Arithmetic stays in Decimal and is rounded to 2 places only on output, so an
allocation covering a whole bucket contributes exactly
``percent / 100 * hours_per_full_week``.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from resourceplan.engine.overlap import overlap_window
from resourceplan.models.allocation import Allocation, CapacityWeek, UserCapacity

DEFAULT_HOURS_PER_FULL_WEEK = Decimal("40")
BUCKET_DAYS = 7

_CENT = Decimal("0.01")
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


def _round(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def _days(start: date, end: date) -> int:
    return (end - start).days + 1


def week_buckets(window_start: date, window_end: date) -> list[tuple[date, date]]:
    """Consecutive 7-day (start, end) pairs covering the window; the last may be shorter."""
    if window_end < window_start:
        msg = f"window_end {window_end} is before window_start {window_start}"
        raise ValueError(msg)
    buckets: list[tuple[date, date]] = []
    current = window_start
    while current <= window_end:
        bucket_end = min(current + timedelta(days=BUCKET_DAYS - 1), window_end)
        buckets.append((current, bucket_end))
        current = bucket_end + timedelta(days=1)
    return buckets


def weekly_capacity(
    allocations: Iterable[Allocation],
    window_start: date,
    window_end: date,
    hours_per_full_week: Decimal = DEFAULT_HOURS_PER_FULL_WEEK,
) -> list[CapacityWeek]:
    """Planned hours/percent per bucket, with a per-user breakdown.

    Soft-deleted allocations are skipped. Buckets with no coverage are still
    emitted with zero totals so the series is contiguous.
    """
    if hours_per_full_week <= _ZERO:
        msg = f"hours_per_full_week must be positive, got {hours_per_full_week}"
        raise ValueError(msg)

    live = [a for a in allocations if not a.is_deleted]
    weeks: list[CapacityWeek] = []

    for bucket_start, bucket_end in week_buckets(window_start, window_end):
        bucket_days = Decimal(_days(bucket_start, bucket_end))
        hours_by_user: dict[UUID, Decimal] = defaultdict(lambda: _ZERO)
        percent_by_user: dict[UUID, Decimal] = defaultdict(lambda: _ZERO)

        for alloc in live:
            window = overlap_window(
                alloc.start_date, alloc.end_date, bucket_start, bucket_end,
            )
            if window is None:
                continue
            covered = Decimal(_days(*window))
            percent = alloc.allocation_percent * covered / bucket_days
            hours_by_user[alloc.user_id] += percent / _HUNDRED * hours_per_full_week
            percent_by_user[alloc.user_id] += percent

        per_user = [
            UserCapacity(
                user_id=user_id,
                planned_hours=_round(hours_by_user[user_id]),
                planned_percent=_round(percent_by_user[user_id]),
            )
            for user_id in sorted(hours_by_user)
        ]
        weeks.append(CapacityWeek(
            period_start=bucket_start,
            period_end=bucket_end,
            planned_hours=_round(sum(hours_by_user.values(), _ZERO)),
            planned_percent=_round(sum(percent_by_user.values(), _ZERO)),
            per_user=per_user,
        ))

    return weeks


def capacity_totals(weeks: Iterable[CapacityWeek]) -> tuple[Decimal, Decimal]:
    """(total planned hours, day-weighted average planned percent) over a series."""
    weeks = list(weeks)
    total_days = sum(w.days for w in weeks)
    if total_days == 0:
        return _round(_ZERO), _round(_ZERO)
    hours = sum((w.planned_hours for w in weeks), _ZERO)
    weighted = sum((w.planned_percent * w.days for w in weeks), _ZERO)
    return _round(hours), _round(weighted / total_days)


def per_user_totals(weeks: Iterable[CapacityWeek]) -> list[UserCapacity]:
    """Per-user totals over a series: hours summed, percent day-weighted over the window."""
    weeks = list(weeks)
    total_days = sum(w.days for w in weeks)
    hours: dict[UUID, Decimal] = defaultdict(lambda: _ZERO)
    weighted: dict[UUID, Decimal] = defaultdict(lambda: _ZERO)
    for week in weeks:
        for entry in week.per_user:
            hours[entry.user_id] += entry.planned_hours
            weighted[entry.user_id] += entry.planned_percent * week.days
    return [
        UserCapacity(
            user_id=user_id,
            planned_hours=_round(hours[user_id]),
            planned_percent=_round(weighted[user_id] / total_days),
        )
        for user_id in sorted(hours)
    ]


def peak_percent(weeks: Iterable[CapacityWeek]) -> Decimal:
    """Highest planned percent of any bucket (0 for an empty series)."""
    return max((w.planned_percent for w in weeks), default=_round(_ZERO))
