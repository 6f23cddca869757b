"""
TrackingReconciler -- creates, back-fills and repairs trackings.

Responsibility:
    Walks Customers -> Services -> Resources and reconciles stored trackings
    against the coverage computed by the domain core:

    ``create_current_period_trackings``
        Latest service per customer whose fiscal year contains today; one
        Draft tracking per content type for the current period when the
        resource covered it.
    ``backfill_missing_trackings``
        Every service started on or before today; every expected period
        from fiscal-year start through today.
    ``fix_schedule_labels``
        Every service; recompute each tracking's canonical label and update
        it only where it differs.

Architecture position:
    Reconcile layer.  Depends on the ``TrackingStore`` protocol, the injected
    Clock and the pure domain core.  Never touches a Session directly.

Invariants enforced:
    - Idempotence: existing identity tuples are loaded in bulk before any
      insert; a second run with unchanged data creates nothing.
    - Quarterly tracking year is the calendar year of the quarter's first
      month in both create and backfill.
    - Label repair uses the service's own fiscal start as the reference
      date; create and backfill use today.
    - Coverage in create and backfill is bounded by today: activity that
      starts later in the current period does not cover it yet.
    - Each Customer, Service, Resource and label-update batch is an isolated
      unit: a failure becomes an error summary and the siblings continue.

Failure modes:
    - FatalReconciliationError subclasses (StoreUnavailableError) and any
      failure to list customers stop the run.  The partial summary is
      emitted and ReconciliationAbortedError raised carrying it.
    - Cancellation (``stop_event``) is honoured between Customers and
      between Services; the run ends CANCELLED with committed work intact.
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Callable, Iterator, Sequence
from datetime import date
from typing import NoReturn
from uuid import uuid4

from tracking_kernel.domain.clock import Clock
from tracking_kernel.domain.coverage import ActivityInterval, is_period_covered
from tracking_kernel.domain.fiscal_calendar import (
    FiscalPeriodRef,
    MonthRef,
    canonical_schedule_label,
    current_tracking_period,
    enumerate_fiscal_quarters,
    expected_tracking_periods,
    fiscal_year_information,
)
from tracking_kernel.domain.grouping import label_for
from tracking_kernel.domain.types import (
    ALL_CONTENT_TYPES,
    ContentType,
    CustomerInfo,
    NewTracking,
    ResourceInfo,
    ServiceInfo,
    TrackingInfo,
    TrackingKey,
)
from tracking_kernel.exceptions import (
    FatalReconciliationError,
    NoEligibleServiceError,
    QuarterNotFoundError,
    ReconciliationAbortedError,
)
from tracking_kernel.logging_config import LogContext, get_logger
from tracking_reconcile.store import TrackingStore
from tracking_reconcile.summary import (
    DEFAULT_TOP_SKIP_REASONS,
    RunStatsAggregator,
    RunSummary,
    SkipReason,
    UnitLevel,
)

logger = get_logger("reconcile.reconciler")

OPERATION_CREATE = "create_current_period_trackings"
OPERATION_BACKFILL = "backfill_missing_trackings"
OPERATION_FIX_SCHEDULES = "fix_schedule_labels"

DEFAULT_UPDATE_BATCH_SIZE = 100


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _covers(
    intervals: Sequence[ActivityInterval],
    service: ServiceInfo,
    period: FiscalPeriodRef,
    as_of: date,
) -> bool:
    """Coverage up to ``as_of``; activity that has not started yet never counts."""
    return is_period_covered(
        period.period_number,
        period.year,
        intervals,
        service.fiscal_year_start,
        service.quarterly_evidence,
        as_of=as_of,
    )


class TrackingReconciler:
    """
    Reconciles trackings against computed coverage.

    Contract:
        Each entry point returns a ``RunSummary`` with status COMPLETED,
        PARTIALLY_COMPLETED or CANCELLED, or raises
        ``ReconciliationAbortedError`` whose ``summary`` has status FAILED.

    Non-goals:
        - Never deletes trackings or changes their identity tuple.
        - Never advances a tracking beyond Draft.
    """

    def __init__(
        self,
        store: TrackingStore,
        clock: Clock,
        *,
        content_types: Sequence[ContentType] = ALL_CONTENT_TYPES,
        update_batch_size: int = DEFAULT_UPDATE_BATCH_SIZE,
        top_skip_reasons: int = DEFAULT_TOP_SKIP_REASONS,
        stop_event: threading.Event | None = None,
    ):
        self._store = store
        self._clock = clock
        self._content_types = tuple(content_types)
        self._update_batch_size = max(1, update_batch_size)
        self._top_n = top_skip_reasons
        self._stop_event = stop_event

    @classmethod
    def from_config(
        cls,
        store: TrackingStore,
        clock: Clock,
        config,
        stop_event: threading.Event | None = None,
    ) -> TrackingReconciler:
        return cls(
            store,
            clock,
            content_types=config.content_types,
            update_batch_size=config.update_batch_size,
            top_skip_reasons=config.top_skip_reasons,
            stop_event=stop_event,
        )

    # =========================================================================
    # Entry points
    # =========================================================================

    def create_current_period_trackings(self) -> RunSummary:
        return self._run(OPERATION_CREATE, self._create_for_customer)

    def backfill_missing_trackings(self) -> RunSummary:
        return self._run(OPERATION_BACKFILL, self._backfill_for_customer)

    def fix_schedule_labels(self) -> RunSummary:
        return self._run(OPERATION_FIX_SCHEDULES, self._fix_for_customer)

    # =========================================================================
    # Run scaffolding
    # =========================================================================

    def _cancel_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    def _run(
        self, operation: str, per_customer: Callable[[CustomerInfo], RunSummary],
    ) -> RunSummary:
        run_id = LogContext.get_all().get("run_id") or str(uuid4())
        aggregator = RunStatsAggregator(operation, self._clock, self._top_n)

        with LogContext.bind(run_id=run_id, job_name=operation):
            logger.info(
                "reconciliation_run_started",
                extra={"operation": operation, "as_of": self._clock.today()},
            )

            try:
                customers = self._store.list_customers()
            except Exception as exc:
                self._abort(aggregator, operation, "list_customers_failed", exc)

            cancelled = False
            try:
                for customer in customers:
                    if self._cancel_requested():
                        cancelled = True
                        logger.warning(
                            "reconciliation_cancelled",
                            extra={"before_customer_id": customer.id},
                        )
                        break
                    aggregator.add(self._isolate(
                        UnitLevel.CUSTOMER, customer.id,
                        lambda c=customer: per_customer(c),
                    ))
            except FatalReconciliationError as exc:
                self._abort(aggregator, operation, exc.code, exc)

            return aggregator.finish(cancelled=cancelled)

    def _abort(
        self,
        aggregator: RunStatsAggregator,
        operation: str,
        reason: str,
        exc: Exception,
    ) -> NoReturn:
        logger.error(
            "reconciliation_run_aborted",
            extra={"operation": operation, "reason": reason},
            exc_info=True,
        )
        aggregator.add(RunSummary.failure(UnitLevel.RUN, operation, exc))
        summary = aggregator.finish(failed=True)
        raise ReconciliationAbortedError(operation, reason, summary) from exc

    def _isolate(
        self, level: UnitLevel, key, work: Callable[[], RunSummary],
    ) -> RunSummary:
        """Run one unit; a non-fatal failure becomes an error summary."""
        try:
            return work()
        except FatalReconciliationError:
            raise
        except Exception as exc:
            logger.error(
                f"{level.value}_failed",
                extra={"unit_level": level.value, "unit_key": str(key)},
                exc_info=True,
            )
            return RunSummary.failure(level, key, exc)

    def _services_loop(
        self,
        services: Sequence[ServiceInfo],
        per_service: Callable[[ServiceInfo], RunSummary],
    ) -> RunSummary:
        summary = RunSummary()
        for service in services:
            if self._cancel_requested():
                logger.warning(
                    "reconciliation_cancelled",
                    extra={"before_service_id": service.id},
                )
                return summary.merge(RunSummary(cancelled=True))
            summary = summary.merge(self._isolate(
                UnitLevel.SERVICE, service.id, lambda s=service: per_service(s),
            ))
        return summary

    def _customer_skip(self, reason: SkipReason) -> RunSummary:
        logger.info("customer_skipped", extra={"reason": reason.value})
        return RunSummary.skipped(reason, customers_skipped=1)

    def _resource_intervals(self, resource: ResourceInfo):
        intervals = resource.intervals()
        if not intervals:
            logger.info(
                "resource_skipped",
                extra={
                    "reason": SkipReason.NO_ACTIVITY_PERIODS.value,
                    "member": resource.member_name,
                },
            )
        return intervals

    def _write_batch(self, batch: Sequence[NewTracking]) -> int:
        with self._store.unit_of_work():
            return self._store.create_trackings(batch)

    # =========================================================================
    # CreateCurrentPeriodTrackings
    # =========================================================================

    def _current_service(
        self, customer: CustomerInfo,
    ) -> tuple[ServiceInfo, FiscalPeriodRef]:
        today = self._clock.today()
        service = self._store.find_latest_service_for_customer(customer.id, today)
        if service is None:
            raise NoEligibleServiceError(
                str(customer.id), today.isoformat(), SkipReason.NO_ACTIVE_SERVICE.value,
            )
        info = fiscal_year_information(service.fiscal_year_start, today)
        period = current_tracking_period(info, service.quarterly_evidence)
        if period is None:
            raise NoEligibleServiceError(
                str(customer.id), today.isoformat(), SkipReason.OUTSIDE_FISCAL_YEAR.value,
            )
        return service, period

    def _create_for_customer(self, customer: CustomerInfo) -> RunSummary:
        with LogContext.bind(customer_id=customer.id):
            try:
                service, period = self._current_service(customer)
            except NoEligibleServiceError as exc:
                return self._customer_skip(SkipReason(exc.reason))

            logger.info(
                "current_period_resolved",
                extra={
                    "customer": customer.name,
                    "service": service.description,
                    "period": period.period_number,
                    "year": period.year,
                    "schedule": period.schedule,
                },
            )
            return RunSummary(customers_processed=1).merge(self._isolate(
                UnitLevel.SERVICE, service.id,
                lambda: self._create_for_service(service, period),
            ))

    def _create_for_service(
        self, service: ServiceInfo, period: FiscalPeriodRef,
    ) -> RunSummary:
        with LogContext.bind(service_id=service.id):
            summary = RunSummary(services_processed=1)
            resources = self._store.list_active_resources_for_service(service.id)
            if not resources:
                logger.info("service_has_no_active_resources")
                return summary

            existing = self._store.list_trackings_for_resources(
                [r.id for r in resources], period.year, period.period_number,
            )
            for resource in resources:
                summary = summary.merge(self._isolate(
                    UnitLevel.RESOURCE, resource.id,
                    lambda r=resource: self._create_for_resource(
                        service, r, period, existing,
                    ),
                ))
            return summary

    def _create_for_resource(
        self,
        service: ServiceInfo,
        resource: ResourceInfo,
        period: FiscalPeriodRef,
        existing: set[TrackingKey],
    ) -> RunSummary:
        with LogContext.bind(resource_id=resource.id):
            intervals = self._resource_intervals(resource)
            if not intervals:
                return RunSummary.skipped(SkipReason.NO_ACTIVITY_PERIODS, resources_skipped=1)

            today = self._clock.today()
            if not _covers(intervals, service, period, today):
                logger.info(
                    "resource_skipped",
                    extra={
                        "reason": SkipReason.NOT_IN_ACTIVE_PERIOD.value,
                        "member": resource.member_name,
                    },
                )
                return RunSummary.skipped(SkipReason.NOT_IN_ACTIVE_PERIOD, resources_skipped=1)

            bucket = label_for(
                intervals, service.fiscal_year_start, MonthRef.of(today), today,
            )
            logger.info(
                "historical_bucket_resolved",
                extra={
                    "member": resource.member_name,
                    "group_number": bucket.group_number,
                    "label": bucket.label,
                },
            )

            summary = RunSummary(resources_processed=1, periods_checked=1)
            missing = [
                ct for ct in self._content_types
                if TrackingKey(resource.id, period.year, period.period_number, ct)
                not in existing
            ]
            already = len(self._content_types) - len(missing)
            if already:
                summary = summary.merge(RunSummary.skipped(
                    SkipReason.ALREADY_EXISTS, already, trackings_skipped=already,
                ))
            if not missing:
                return summary

            batch = [
                NewTracking(
                    resource_id=resource.id,
                    year=period.year,
                    period=period.period_number,
                    content_type=ct,
                    schedule=period.schedule,
                )
                for ct in missing
            ]
            created = self._write_batch(batch)
            logger.info(
                "trackings_created",
                extra={
                    "member": resource.member_name,
                    "count": created,
                    "period": period.period_number,
                    "year": period.year,
                    "schedule": period.schedule,
                },
            )
            return summary.merge(RunSummary(
                trackings_created=created,
                created_by_content_type={ct.value: 1 for ct in missing},
            ))

    # =========================================================================
    # BackfillMissingTrackings
    # =========================================================================

    def _backfill_for_customer(self, customer: CustomerInfo) -> RunSummary:
        with LogContext.bind(customer_id=customer.id):
            today = self._clock.today()
            services = self._store.list_services_for_customer(customer.id)
            if not services:
                return self._customer_skip(SkipReason.NO_SERVICES)
            eligible = [s for s in services if s.fiscal_year_start <= today]
            if not eligible:
                return self._customer_skip(SkipReason.NO_ELIGIBLE_SERVICE)

            return RunSummary(customers_processed=1).merge(
                self._services_loop(eligible, self._backfill_for_service)
            )

    def _backfill_for_service(self, service: ServiceInfo) -> RunSummary:
        with LogContext.bind(service_id=service.id):
            today = self._clock.today()
            expected = expected_tracking_periods(
                service.fiscal_year_start, service.quarterly_evidence, today,
            )
            if not expected:
                logger.info("service_skipped", extra={"reason": SkipReason.NO_EXPECTED_PERIODS.value})
                return RunSummary.skipped(SkipReason.NO_EXPECTED_PERIODS, services_processed=1)

            summary = RunSummary(services_processed=1)
            resources = self._store.list_active_resources_for_service(service.id)
            if not resources:
                logger.info("service_has_no_active_resources")
                return summary

            resource_ids = [r.id for r in resources]
            existing: set[TrackingKey] = set()
            for period in expected:
                existing |= self._store.list_trackings_for_resources(
                    resource_ids, period.year, period.period_number,
                )
            current = current_tracking_period(
                fiscal_year_information(service.fiscal_year_start, today),
                service.quarterly_evidence,
            )

            for resource in resources:
                summary = summary.merge(self._isolate(
                    UnitLevel.RESOURCE, resource.id,
                    lambda r=resource: self._backfill_for_resource(
                        service, r, expected, existing, current,
                    ),
                ))
            return summary

    def _backfill_for_resource(
        self,
        service: ServiceInfo,
        resource: ResourceInfo,
        expected: Sequence[FiscalPeriodRef],
        existing: set[TrackingKey],
        current: FiscalPeriodRef | None,
    ) -> RunSummary:
        with LogContext.bind(resource_id=resource.id):
            intervals = self._resource_intervals(resource)
            if not intervals:
                return RunSummary.skipped(SkipReason.NO_ACTIVITY_PERIODS, resources_skipped=1)

            today = self._clock.today()
            summary = RunSummary(resources_processed=1)
            batch: list[NewTracking] = []
            historical = 0

            for period in expected:
                summary = summary.merge(RunSummary(periods_checked=1))
                if not _covers(intervals, service, period, today):
                    summary = summary.merge(RunSummary.skipped(SkipReason.PERIOD_NOT_COVERED))
                    continue

                summary = summary.merge(RunSummary(historical_periods_processed=1))
                is_past = current is None or (
                    (period.year, period.period_number)
                    != (current.year, current.period_number)
                )
                for ct in self._content_types:
                    key = TrackingKey(resource.id, period.year, period.period_number, ct)
                    if key in existing:
                        summary = summary.merge(RunSummary.skipped(
                            SkipReason.ALREADY_EXISTS, trackings_skipped=1,
                        ))
                        continue
                    batch.append(NewTracking(
                        resource_id=resource.id,
                        year=period.year,
                        period=period.period_number,
                        content_type=ct,
                        schedule=period.schedule,
                    ))
                    if is_past:
                        historical += 1

            if not batch:
                return summary

            created = self._write_batch(batch)
            logger.info(
                "trackings_backfilled",
                extra={
                    "member": resource.member_name,
                    "count": created,
                    "historical": historical,
                    "schedules": sorted({t.schedule for t in batch}),
                },
            )
            return summary.merge(RunSummary(
                trackings_created=created,
                historical_trackings_created=historical,
                created_by_content_type=dict(Counter(t.content_type.value for t in batch)),
            ))

    # =========================================================================
    # FixScheduleLabels
    # =========================================================================

    def _fix_for_customer(self, customer: CustomerInfo) -> RunSummary:
        with LogContext.bind(customer_id=customer.id):
            services = self._store.list_services_for_customer(customer.id)
            if not services:
                return self._customer_skip(SkipReason.NO_SERVICES)
            return RunSummary(customers_processed=1).merge(
                self._services_loop(services, self._fix_for_service)
            )

    def _fix_for_service(self, service: ServiceInfo) -> RunSummary:
        with LogContext.bind(service_id=service.id):
            # Reference is the service's own fiscal start, not today
            info = fiscal_year_information(
                service.fiscal_year_start, service.fiscal_year_start,
            )
            trackings = self._store.list_trackings_for_service(service.id)
            summary = RunSummary(services_processed=1, trackings_checked=len(trackings))

            updates: list[tuple[TrackingInfo, str]] = []
            for tracking in trackings:
                try:
                    label = canonical_schedule_label(
                        info, service.quarterly_evidence, tracking.period, tracking.year,
                    )
                except QuarterNotFoundError as exc:
                    logger.warning(
                        "quarter_not_found",
                        extra={
                            "tracking_id": tracking.id,
                            "period": tracking.period,
                            "quarters": [q.number for q in enumerate_fiscal_quarters(service.fiscal_year_start)],
                        },
                    )
                    summary = summary.merge(
                        RunSummary.skipped(SkipReason.QUARTER_NOT_FOUND, trackings_skipped=1)
                    ).merge(RunSummary.failure(UnitLevel.TRACKING, tracking.id, exc))
                    continue

                if label == tracking.schedule:
                    summary = summary.merge(RunSummary.skipped(
                        SkipReason.SCHEDULE_UP_TO_DATE, trackings_skipped=1,
                    ))
                else:
                    updates.append((tracking, label))

            for number, chunk in enumerate(_chunks(updates, self._update_batch_size), start=1):
                summary = summary.merge(self._isolate(
                    UnitLevel.BATCH, f"{service.id}#{number}",
                    lambda c=chunk: self._apply_labels(c),
                ))
            return summary

    def _apply_labels(self, chunk: Sequence[tuple[TrackingInfo, str]]) -> RunSummary:
        fixed = 0
        with self._store.unit_of_work():
            for tracking, label in chunk:
                if self._store.update_tracking_schedule(tracking.id, label):
                    fixed += 1
        logger.info(
            "schedule_labels_fixed",
            extra={
                "count": fixed,
                "examples": [
                    {"from": t.schedule, "to": label} for t, label in chunk[:3]
                ],
            },
        )
        return RunSummary(trackings_fixed=fixed)
