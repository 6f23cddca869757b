"""
PeriodGrouper -- retrospective labels for stretches of activity.

Responsibility:
    Groups the months a Resource was active into consecutive historical
    buckets of at most three months and labels the bucket that contains a
    reference month (e.g. ``"4/2025 - 6/2025"``).  Used for reporting and
    audit only; bucket labels never take part in tracking identity.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - A gap between months always starts a new bucket; the grouper never
      bridges a missing month.
    - Dec -> Jan counts as consecutive.
    - A bucket is closed after three months even if activity continues.
    - An open interval followed by a later interval covers the months up to
      (excluding) the later interval's start month.
    - A trailing open interval runs to ``as_of`` or the fiscal year end,
      whichever is earlier.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from tracking_kernel.domain.coverage import ActivityInterval, ordered
from tracking_kernel.domain.fiscal_calendar import MonthRef, fiscal_year_last_month

MAX_BUCKET_MONTHS = 3


@dataclass(frozen=True)
class HistoricalBucket:
    """A labeled group of consecutive active months.

    ``group_number`` is 1-based; 0 with an empty label means no bucket
    contained the reference month.
    """

    group_number: int
    year: int
    label: str
    months: tuple[MonthRef, ...] = field(default=())

    @property
    def found(self) -> bool:
        return self.group_number > 0

    @classmethod
    def empty(cls) -> HistoricalBucket:
        return cls(group_number=0, year=0, label="")


def _walk(first: MonthRef, last: MonthRef) -> list[MonthRef]:
    months = []
    month = first
    while month <= last:
        months.append(month)
        month = month.next()
    return months


def historical_months(
    intervals: Iterable[ActivityInterval],
    fiscal_start: date,
    as_of: date,
) -> tuple[MonthRef, ...]:
    """Active months for grouping, sorted and deduplicated.

    Not clipped to the start of the fiscal year; bounded above by ``as_of``
    and by the last month of the fiscal year.
    """
    now_month = MonthRef.of(as_of)
    fiscal_last = fiscal_year_last_month(fiscal_start)
    horizon = min(now_month, fiscal_last)
    seq = ordered(intervals)

    months: set[MonthRef] = set()
    for index, interval in enumerate(seq):
        if interval.start > as_of:
            continue
        first = MonthRef.of(interval.start)

        if interval.is_open:
            if index < len(seq) - 1:
                # closed implicitly by the next interval
                following = MonthRef.of(seq[index + 1].start)
                last = min(following.shift(-1), now_month)
            else:
                last = horizon
        else:
            last = min(MonthRef.of(interval.end_date), horizon)

        months.add(first)
        months.update(_walk(first, last))
    return tuple(sorted(months))


def group_months(months: Iterable[MonthRef]) -> list[tuple[MonthRef, ...]]:
    """Partition sorted months into gap-aware buckets of at most 3."""
    groups: list[list[MonthRef]] = []
    for month in sorted(set(months)):
        if (
            groups
            and len(groups[-1]) < MAX_BUCKET_MONTHS
            and month.follows(groups[-1][-1])
        ):
            groups[-1].append(month)
        else:
            groups.append([month])
    return [tuple(g) for g in groups]


def bucket_label(months: tuple[MonthRef, ...]) -> str:
    if len(months) == 1:
        return months[0].label
    return f"{months[0].label} - {months[-1].label}"


def label_for(
    intervals: Iterable[ActivityInterval],
    fiscal_start: date,
    reference: MonthRef,
    as_of: date,
) -> HistoricalBucket:
    """The historical bucket containing ``reference``, or an empty bucket."""
    groups = group_months(historical_months(intervals, fiscal_start, as_of))
    for number, months in enumerate(groups, start=1):
        if reference in months:
            return HistoricalBucket(
                group_number=number,
                year=months[0].year,
                label=bucket_label(months),
                months=months,
            )
    return HistoricalBucket.empty()
