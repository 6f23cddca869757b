"""
FiscalCalendar -- contract-specific fiscal months, quarters and labels.

Responsibility:
    Maps calendar dates onto the fiscal calendar of one Service (a fiscal
    year of 12 months starting on the Service's fiscal-year-start date),
    enumerates its months and quarters, and produces the canonical
    schedule label of a tracking period.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Every function is
    deterministic given its arguments; "now" is always passed in.

Invariants enforced:
    - Month arithmetic rolls over the calendar year: fiscal month 9 of a
      year starting in April is December of the starting year, fiscal
      month 10 is January of the following year.
    - Quarters are built from the month enumeration, so quarter
      boundaries roll over exactly like months.
    - A target outside ``[fiscal start month, fiscal start month + 12)``
      has no fiscal month or quarter index.

Failure modes:
    - QuarterNotFoundError from ``canonical_schedule_label`` when a
      quarterly period number does not name one of the 4 quarters.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date

from tracking_kernel.exceptions import QuarterNotFoundError

MONTHS_PER_YEAR = 12
MONTHS_PER_QUARTER = 3
QUARTERS_PER_YEAR = 4


# =============================================================================
# Value objects
# =============================================================================


@dataclass(frozen=True, order=True)
class MonthRef:
    """A calendar month.  Orders by (year, month)."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= MONTHS_PER_YEAR:
            raise ValueError(f"month must be in 1..12, got {self.month}")

    @classmethod
    def of(cls, day: date) -> MonthRef:
        return cls(day.year, day.month)

    @property
    def label(self) -> str:
        return f"{self.month}/{self.year}"

    def shift(self, months: int) -> MonthRef:
        total = self.year * MONTHS_PER_YEAR + (self.month - 1) + months
        return MonthRef(total // MONTHS_PER_YEAR, total % MONTHS_PER_YEAR + 1)

    def next(self) -> MonthRef:
        return self.shift(1)

    def months_until(self, other: MonthRef) -> int:
        """Signed number of months from ``self`` to ``other``."""
        return (other.year - self.year) * MONTHS_PER_YEAR + (other.month - self.month)

    def follows(self, other: MonthRef) -> bool:
        """True if ``self`` is the month right after ``other`` (Dec -> Jan aware)."""
        return other.next() == self

    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    def last_day(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])


@dataclass(frozen=True)
class FiscalQuarter:
    """One of the four quarters of a fiscal year."""

    number: int  # 1..4
    start: MonthRef
    end: MonthRef

    @property
    def months(self) -> tuple[MonthRef, ...]:
        return tuple(self.start.shift(i) for i in range(MONTHS_PER_QUARTER))

    @property
    def label(self) -> str:
        return f"{self.start.label} - {self.end.label}"

    def contains(self, month: MonthRef) -> bool:
        return self.start <= month <= self.end


@dataclass(frozen=True)
class FiscalPosition:
    """Where a target date falls relative to one fiscal year."""

    fiscal_year: int
    fiscal_month: int | None  # 1..12, None outside the fiscal year
    fiscal_quarter: int | None  # 1..4, None outside the fiscal year
    calendar_month: int
    calendar_year: int

    @property
    def in_fiscal_year(self) -> bool:
        return self.fiscal_month is not None

    @property
    def month_ref(self) -> MonthRef:
        return MonthRef(self.calendar_year, self.calendar_month)


@dataclass(frozen=True)
class FiscalYearInfo:
    """Months, quarters and the current position for a reference date."""

    fiscal_year_start: date
    reference_date: date
    months: tuple[MonthRef, ...]
    quarters: tuple[FiscalQuarter, ...]
    current_month: MonthRef | None
    current_quarter: FiscalQuarter | None

    def quarter(self, number: int) -> FiscalQuarter | None:
        for quarter in self.quarters:
            if quarter.number == number:
                return quarter
        return None


@dataclass(frozen=True)
class FiscalPeriodRef:
    """A tracking period: calendar month (monthly) or fiscal quarter (quarterly).

    ``period_number`` and ``year`` are the tracking identity fields;
    ``schedule`` is the canonical label written on created trackings.
    """

    period_number: int
    year: int
    schedule: str
    months: tuple[MonthRef, ...]


# =============================================================================
# Calendar functions
# =============================================================================


def fiscal_period_of(fiscal_start: date, target: date) -> FiscalPosition:
    """Locate ``target`` in the fiscal year that starts on ``fiscal_start``."""
    months_diff = (
        (target.year - fiscal_start.year) * MONTHS_PER_YEAR
        + (target.month - fiscal_start.month)
    )
    fiscal_year = fiscal_start.year + months_diff // MONTHS_PER_YEAR

    if not 0 <= months_diff < MONTHS_PER_YEAR:
        return FiscalPosition(
            fiscal_year=fiscal_year,
            fiscal_month=None,
            fiscal_quarter=None,
            calendar_month=target.month,
            calendar_year=target.year,
        )

    fiscal_month = months_diff % MONTHS_PER_YEAR + 1
    return FiscalPosition(
        fiscal_year=fiscal_year,
        fiscal_month=fiscal_month,
        fiscal_quarter=-(-fiscal_month // MONTHS_PER_QUARTER),
        calendar_month=target.month,
        calendar_year=target.year,
    )


def enumerate_fiscal_months(fiscal_start: date) -> tuple[MonthRef, ...]:
    """The 12 calendar months of the fiscal year, in fiscal order."""
    first = MonthRef.of(fiscal_start)
    return tuple(first.shift(i) for i in range(MONTHS_PER_YEAR))


def enumerate_fiscal_quarters(fiscal_start: date) -> tuple[FiscalQuarter, ...]:
    """The 4 fiscal quarters, each with its first and last calendar month."""
    months = enumerate_fiscal_months(fiscal_start)
    return tuple(
        FiscalQuarter(
            number=q + 1,
            start=months[q * MONTHS_PER_QUARTER],
            end=months[q * MONTHS_PER_QUARTER + MONTHS_PER_QUARTER - 1],
        )
        for q in range(QUARTERS_PER_YEAR)
    )


def fiscal_year_last_month(fiscal_start: date) -> MonthRef:
    return MonthRef.of(fiscal_start).shift(MONTHS_PER_YEAR - 1)


def fiscal_year_end(fiscal_start: date) -> date:
    """Last day of the fiscal year (last day of its twelfth month)."""
    return fiscal_year_last_month(fiscal_start).last_day()


def is_in_fiscal_year(fiscal_start: date, month: MonthRef) -> bool:
    return 0 <= MonthRef.of(fiscal_start).months_until(month) < MONTHS_PER_YEAR


def fiscal_year_information(fiscal_start: date, reference: date) -> FiscalYearInfo:
    """Enumerate the fiscal year and locate ``reference`` inside it."""
    position = fiscal_period_of(fiscal_start, reference)
    quarters = enumerate_fiscal_quarters(fiscal_start)

    current_month: MonthRef | None = None
    current_quarter: FiscalQuarter | None = None
    if position.in_fiscal_year:
        current_month = position.month_ref
        current_quarter = quarters[position.fiscal_quarter - 1]

    return FiscalYearInfo(
        fiscal_year_start=fiscal_start,
        reference_date=reference,
        months=enumerate_fiscal_months(fiscal_start),
        quarters=quarters,
        current_month=current_month,
        current_quarter=current_quarter,
    )


# =============================================================================
# Tracking periods and schedule labels
# =============================================================================


def canonical_schedule_label(
    info: FiscalYearInfo,
    quarterly: bool,
    period_number: int,
    year: int,
) -> str:
    """Canonical schedule label of a tracking period.

    Quarterly: ``"{start month}/{start year} - {end month}/{end year}"`` of
    the fiscal quarter numbered ``period_number``.  Monthly:
    ``"{period_number}/{year}"``, the period number being the calendar month.

    Raises:
        QuarterNotFoundError: quarterly and no quarter has that number.
    """
    if quarterly:
        quarter = info.quarter(period_number)
        if quarter is None:
            raise QuarterNotFoundError(
                period_number, info.fiscal_year_start.isoformat(),
            )
        return quarter.label
    return f"{period_number}/{year}"


def _quarter_period(quarter: FiscalQuarter) -> FiscalPeriodRef:
    # Quarterly trackings are keyed by the year of the quarter's first month
    return FiscalPeriodRef(
        period_number=quarter.number,
        year=quarter.start.year,
        schedule=quarter.label,
        months=quarter.months,
    )


def _month_period(month: MonthRef) -> FiscalPeriodRef:
    return FiscalPeriodRef(
        period_number=month.month,
        year=month.year,
        schedule=month.label,
        months=(month,),
    )


def current_tracking_period(
    info: FiscalYearInfo, quarterly: bool,
) -> FiscalPeriodRef | None:
    """The tracking period containing the reference date, if inside the year."""
    if info.current_month is None:
        return None
    if quarterly:
        return _quarter_period(info.current_quarter)
    return _month_period(info.current_month)


def expected_tracking_periods(
    fiscal_start: date, quarterly: bool, as_of: date,
) -> tuple[FiscalPeriodRef, ...]:
    """Every tracking period of the fiscal year that has started by ``as_of``."""
    if quarterly:
        return tuple(
            _quarter_period(q)
            for q in enumerate_fiscal_quarters(fiscal_start)
            if q.start.first_day() <= as_of
        )
    return tuple(
        _month_period(m)
        for m in enumerate_fiscal_months(fiscal_start)
        if m.first_day() <= as_of
    )
