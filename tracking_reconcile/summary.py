"""
RunSummary and RunStatsAggregator -- the observable result of a run.

Responsibility:
    ``RunSummary`` is an immutable counter record produced for every unit of
    the Customer -> Service -> Resource traversal and merged upward.  A unit
    that fails becomes an error summary rather than an exception, so the
    caller folds successes and failures the same way.
    ``RunStatsAggregator`` folds the unit summaries of one run, stamps
    timing from the injected clock, decides the run status and emits the
    ``reconciliation_run_finished`` log record.

Architecture position:
    Reconcile layer.  Depends on the kernel clock, exceptions and logging.

Invariants enforced:
    - ``merge`` is associative and ``RunSummary()`` is its identity, so the
      order in which sibling units are merged does not change the totals.
    - Counters never decrease; summaries are never mutated in place.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any

from tracking_kernel.domain.clock import Clock
from tracking_kernel.logging_config import get_logger

logger = get_logger("reconcile.summary")

DEFAULT_TOP_SKIP_REASONS = 5


class SkipReason(str, Enum):
    """Why a unit was skipped.  Skips are counted, never raised."""

    NO_ACTIVE_SERVICE = "NoActiveService"
    OUTSIDE_FISCAL_YEAR = "OutsideFiscalYear"
    NO_ELIGIBLE_SERVICE = "NoEligibleService"
    NO_SERVICES = "NoServices"
    NO_EXPECTED_PERIODS = "NoExpectedPeriods"
    NO_ACTIVITY_PERIODS = "NoActivityPeriods"
    NOT_IN_ACTIVE_PERIOD = "NotInActivePeriod"
    PERIOD_NOT_COVERED = "PeriodNotCovered"
    ALREADY_EXISTS = "AlreadyExists"
    QUARTER_NOT_FOUND = "QuarterNotFound"
    SCHEDULE_UP_TO_DATE = "ScheduleUpToDate"


class RunStatus(str, Enum):
    COMPLETED = "COMPLETED"
    PARTIALLY_COMPLETED = "PARTIALLY_COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class UnitLevel(str, Enum):
    RUN = "run"
    CUSTOMER = "customer"
    SERVICE = "service"
    RESOURCE = "resource"
    BATCH = "batch"
    TRACKING = "tracking"


@dataclass(frozen=True)
class UnitError:
    """One failed unit: where, which, and why."""

    level: UnitLevel
    key: str
    code: str
    message: str


def _add_counts(a: Mapping[str, int], b: Mapping[str, int]) -> dict[str, int]:
    merged = dict(a)
    for key, count in b.items():
        merged[key] = merged.get(key, 0) + count
    return merged


@dataclass(frozen=True)
class RunSummary:
    """Counters for one unit of work, or for a whole run once folded."""

    customers_processed: int = 0
    customers_skipped: int = 0
    services_processed: int = 0
    resources_processed: int = 0
    resources_skipped: int = 0
    periods_checked: int = 0
    trackings_created: int = 0
    trackings_skipped: int = 0
    trackings_checked: int = 0
    trackings_fixed: int = 0
    historical_periods_processed: int = 0
    historical_trackings_created: int = 0
    errors: int = 0

    skip_reasons: Mapping[str, int] = field(default_factory=dict)
    created_by_content_type: Mapping[str, int] = field(default_factory=dict)
    unit_errors: tuple[UnitError, ...] = ()

    operation: str | None = None
    status: RunStatus | None = None
    cancelled: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None

    # -- Construction helpers ---------------------------------------------

    @classmethod
    def skipped(cls, reason: SkipReason, count: int = 1, **counters: int) -> RunSummary:
        """A summary recording ``count`` skips for ``reason`` plus counters."""
        return cls(skip_reasons={reason.value: count}, **counters)

    @classmethod
    def failure(cls, level: UnitLevel, key: Any, exc: BaseException) -> RunSummary:
        """Error summary for a unit that raised."""
        return cls(
            errors=1,
            unit_errors=(
                UnitError(
                    level=level,
                    key=str(key),
                    code=getattr(exc, "code", type(exc).__name__),
                    message=str(exc),
                ),
            ),
        )

    # -- Algebra ------------------------------------------------------------

    def merge(self, other: RunSummary) -> RunSummary:
        counters = {
            f.name: getattr(self, f.name) + getattr(other, f.name)
            for f in fields(self)
            if f.type in ("int", int)
        }
        return replace(
            self,
            skip_reasons=_add_counts(self.skip_reasons, other.skip_reasons),
            created_by_content_type=_add_counts(
                self.created_by_content_type, other.created_by_content_type,
            ),
            unit_errors=self.unit_errors + other.unit_errors,
            cancelled=self.cancelled or other.cancelled,
            **counters,
        )

    # -- Reporting ----------------------------------------------------------

    @property
    def total_skips(self) -> int:
        return sum(self.skip_reasons.values())

    def top_skip_reasons(self, n: int = DEFAULT_TOP_SKIP_REASONS) -> list[tuple[str, int]]:
        """Most frequent skip reasons, count descending then name."""
        ranked = sorted(self.skip_reasons.items(), key=lambda kv: (-kv[1], kv[0]))
        return ranked[:n]

    def to_dict(self, top_n: int = DEFAULT_TOP_SKIP_REASONS) -> dict[str, Any]:
        data = asdict(self)
        data["skip_reasons"] = dict(self.skip_reasons)
        data["created_by_content_type"] = dict(self.created_by_content_type)
        data["top_skip_reasons"] = [
            {"reason": reason, "count": count}
            for reason, count in self.top_skip_reasons(top_n)
        ]
        data["unit_errors"] = [
            {"level": e.level.value, "key": e.key, "code": e.code, "message": e.message}
            for e in self.unit_errors
        ]
        data["status"] = self.status.value if self.status else None
        data["started_at"] = self.started_at.isoformat() if self.started_at else None
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class RunStatsAggregator:
    """
    Folds unit summaries of one run and emits the final summary.

    Contract:
        ``add`` may be called any number of times; ``finish`` exactly once.
    """

    def __init__(
        self,
        operation: str,
        clock: Clock,
        top_n: int = DEFAULT_TOP_SKIP_REASONS,
    ):
        self._operation = operation
        self._clock = clock
        self._top_n = top_n
        self._summary = RunSummary(operation=operation)
        self._started_at = clock.now()

    @property
    def current(self) -> RunSummary:
        return self._summary

    def add(self, unit: RunSummary) -> RunSummary:
        self._summary = self._summary.merge(unit)
        return self._summary

    def finish(self, *, failed: bool = False, cancelled: bool = False) -> RunSummary:
        summary = self._summary
        if failed:
            status = RunStatus.FAILED
        elif cancelled or summary.cancelled:
            status = RunStatus.CANCELLED
        elif summary.errors:
            status = RunStatus.PARTIALLY_COMPLETED
        else:
            status = RunStatus.COMPLETED

        finished_at = self._clock.now()
        summary = replace(
            summary,
            operation=self._operation,
            status=status,
            cancelled=summary.cancelled or cancelled,
            started_at=self._started_at,
            finished_at=finished_at,
        )
        self._summary = summary

        log = logger.error if status is RunStatus.FAILED else logger.info
        log(
            "reconciliation_run_finished",
            extra={
                "operation": self._operation,
                "status": status.value,
                "customers_processed": summary.customers_processed,
                "customers_skipped": summary.customers_skipped,
                "services_processed": summary.services_processed,
                "resources_processed": summary.resources_processed,
                "resources_skipped": summary.resources_skipped,
                "trackings_created": summary.trackings_created,
                "trackings_skipped": summary.trackings_skipped,
                "trackings_fixed": summary.trackings_fixed,
                "historical_periods_processed": summary.historical_periods_processed,
                "historical_trackings_created": summary.historical_trackings_created,
                "errors": summary.errors,
                "created_by_content_type": dict(summary.created_by_content_type),
                "top_skip_reasons": summary.top_skip_reasons(self._top_n),
                "duration_ms": round(
                    (finished_at - self._started_at).total_seconds() * 1000, 2,
                ),
            },
        )
        return summary
