"""Pure domain core: fiscal calendar, coverage, grouping, clock and types."""

from tracking_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from tracking_kernel.domain.coverage import (
    OPEN_ENDED,
    ActivityInterval,
    Bounded,
    OpenEnded,
    covered_months,
    is_period_covered,
)
from tracking_kernel.domain.fiscal_calendar import (
    FiscalPeriodRef,
    FiscalPosition,
    FiscalQuarter,
    FiscalYearInfo,
    MonthRef,
    canonical_schedule_label,
    current_tracking_period,
    enumerate_fiscal_months,
    enumerate_fiscal_quarters,
    expected_tracking_periods,
    fiscal_period_of,
    fiscal_year_end,
    fiscal_year_information,
)
from tracking_kernel.domain.grouping import HistoricalBucket, group_months, label_for

__all__ = [
    "ActivityInterval",
    "Bounded",
    "Clock",
    "DeterministicClock",
    "FiscalPeriodRef",
    "FiscalPosition",
    "FiscalQuarter",
    "FiscalYearInfo",
    "HistoricalBucket",
    "MonthRef",
    "OPEN_ENDED",
    "OpenEnded",
    "SystemClock",
    "canonical_schedule_label",
    "covered_months",
    "current_tracking_period",
    "enumerate_fiscal_months",
    "enumerate_fiscal_quarters",
    "expected_tracking_periods",
    "fiscal_period_of",
    "fiscal_year_end",
    "fiscal_year_information",
    "group_months",
    "is_period_covered",
    "label_for",
]
