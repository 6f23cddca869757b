"""
PeriodCoverageResolver -- which fiscal months a Resource was active.

Responsibility:
    Turns a Resource's activity intervals into the sorted, deduplicated set
    of calendar months it covered inside one fiscal year, and answers
    whether a tracking period (month or quarter) is covered.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - An interval's end is a tagged value: ``Bounded(end)`` or
      ``OPEN_ENDED``.  Open ends are resolved at query time against the
      fiscal year end (and the optional ``as_of`` horizon), never stored
      as a sentinel date.
    - Coverage is computed at month granularity: an interval that touches
      any day of a month covers that month.
    - Intervals may overlap or leave gaps; overlapping and adjacent month
      ranges are merged before expansion, so the result is a set.
    - A quarterly period is covered when ANY of its three months is.

Failure modes:
    - InvalidActivityPeriodError from ``ActivityInterval.from_dates`` when
      the end date precedes the start date.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from tracking_kernel.domain.fiscal_calendar import (
    MonthRef,
    enumerate_fiscal_quarters,
    fiscal_year_end,
    is_in_fiscal_year,
)
from tracking_kernel.exceptions import InvalidActivityPeriodError


# =============================================================================
# Interval ends
# =============================================================================


@dataclass(frozen=True)
class Bounded:
    """Interval closed on ``end`` (inclusive)."""

    end: date

    def resolve(self, fallback: date) -> date:
        return self.end


@dataclass(frozen=True)
class OpenEnded:
    """Interval still active; resolved against a caller-supplied bound."""

    def resolve(self, fallback: date) -> date:
        return fallback


OPEN_ENDED = OpenEnded()

IntervalEnd = Bounded | OpenEnded


@dataclass(frozen=True)
class ActivityInterval:
    """One ActivityPeriod of a Resource, ordered by ``sequence``."""

    sequence: int
    start: date
    end: IntervalEnd = OPEN_ENDED

    @classmethod
    def from_dates(
        cls, sequence: int, start: date, end: date | None = None,
    ) -> ActivityInterval:
        if end is None:
            return cls(sequence=sequence, start=start, end=OPEN_ENDED)
        if end < start:
            raise InvalidActivityPeriodError(
                sequence, start.isoformat(), end.isoformat(),
            )
        return cls(sequence=sequence, start=start, end=Bounded(end))

    @property
    def is_open(self) -> bool:
        return isinstance(self.end, OpenEnded)

    @property
    def end_date(self) -> date | None:
        return self.end.end if isinstance(self.end, Bounded) else None


def ordered(intervals: Iterable[ActivityInterval]) -> list[ActivityInterval]:
    """Intervals in sequence-number order (start date breaks ties)."""
    return sorted(intervals, key=lambda i: (i.sequence, i.start))


# =============================================================================
# Coverage
# =============================================================================


def _month_ranges(
    intervals: Iterable[ActivityInterval], open_end: date, horizon: date | None,
) -> list[tuple[MonthRef, MonthRef]]:
    ranges = []
    for interval in intervals:
        end = interval.end.resolve(open_end)
        if horizon is not None:
            end = min(end, horizon)
        if end < interval.start:
            continue
        ranges.append((MonthRef.of(interval.start), MonthRef.of(end)))
    return ranges


def _merge(ranges: list[tuple[MonthRef, MonthRef]]) -> list[tuple[MonthRef, MonthRef]]:
    merged: list[tuple[MonthRef, MonthRef]] = []
    for first, last in sorted(ranges):
        if merged and first <= merged[-1][1].next():
            prev_first, prev_last = merged[-1]
            merged[-1] = (prev_first, max(prev_last, last))
        else:
            merged.append((first, last))
    return merged


def covered_months(
    intervals: Iterable[ActivityInterval],
    fiscal_start: date,
    as_of: date | None = None,
) -> tuple[MonthRef, ...]:
    """Sorted, deduplicated months covered inside the fiscal year.

    Open intervals run through the fiscal year end.  When ``as_of`` is
    given, no interval is considered past that date.
    """
    ranges = _merge(_month_ranges(intervals, fiscal_year_end(fiscal_start), as_of))

    months: list[MonthRef] = []
    for first, last in ranges:
        month = first
        while month <= last:
            if is_in_fiscal_year(fiscal_start, month):
                months.append(month)
            month = month.next()
    return tuple(months)


def is_period_covered(
    period_number: int,
    year: int,
    intervals: Sequence[ActivityInterval],
    fiscal_start: date,
    quarterly: bool,
    as_of: date | None = None,
) -> bool:
    """Whether the tracking period (month, or fiscal quarter) was covered.

    Monthly: ``period_number`` is the calendar month of ``year``.
    Quarterly: ``period_number`` is the fiscal quarter 1..4; ``year`` is
    not needed to locate it and is ignored.
    """
    if not intervals:
        return False
    covered = set(covered_months(intervals, fiscal_start, as_of))

    if not quarterly:
        return MonthRef(year, period_number) in covered

    for quarter in enumerate_fiscal_quarters(fiscal_start):
        if quarter.number == period_number:
            return any(quarter.contains(month) for month in covered)
    return False
