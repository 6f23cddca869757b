"""
Typed Exception Hierarchy for the Tracking Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Reconciliation runs must tell apart three kinds of failure: a condition
that only skips work, an error confined to one Customer/Service/Resource,
and an error that stops the whole run. Catching by type keeps that
decision out of message parsing:

    try:
        label = canonical_schedule_label(...)
    except QuarterNotFoundError as e:      # skip this tracking, count it
        log.warning("quarter_not_found", extra={"period": e.period_number})

Every class carries a ``code`` class attribute (machine-readable) and keeps
its context as attributes so the structured log formatter can expand them.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    TrackingKernelError (base)
    |
    +-- FiscalCalendarError
    |   +-- QuarterNotFoundError
    |   +-- InvalidActivityPeriodError
    |
    +-- ReconciliationError
    |   +-- NoEligibleServiceError
    |   +-- TrackingConflictError
    |   +-- FatalReconciliationError
    |       +-- StoreUnavailableError
    |       +-- ReconciliationAbortedError
    |
    +-- BatchError
    |   +-- JobNotFoundError
    |   +-- JobAlreadyRunningError
    |   +-- JobIdempotencyError
    |   +-- TaskNotRegisteredError
    |
    +-- ConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | Run behavior
----------------|-----------------------------|-----------------------------------
Calendar        | QUARTER_NOT_FOUND           | Skip the tracking, count an error
                | INVALID_ACTIVITY_PERIOD     | Fails the owning Resource unit
----------------|-----------------------------|-----------------------------------
Reconciliation  | NO_ELIGIBLE_SERVICE         | Skip the Customer
                | TRACKING_CONFLICT           | Fails the owning Resource unit
                | STORE_UNAVAILABLE           | Aborts the run
                | RECONCILIATION_ABORTED      | Raised by entry points on abort
----------------|-----------------------------|-----------------------------------
Batch           | JOB_NOT_FOUND               | Caller error
                | JOB_ALREADY_RUNNING         | Single-flight guard
                | JOB_IDEMPOTENCY_CONFLICT    | Duplicate submission
                | TASK_NOT_REGISTERED         | Caller error
----------------|-----------------------------|-----------------------------------
Config          | CONFIG_ERROR                | Startup failure
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tracking_reconcile.summary import RunSummary


class TrackingKernelError(Exception):
    """
    Base exception for all tracking kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "TRACKING_KERNEL_ERROR"


# Fiscal calendar exceptions


class FiscalCalendarError(TrackingKernelError):
    """Base exception for fiscal calendar errors."""

    code: str = "FISCAL_CALENDAR_ERROR"


class QuarterNotFoundError(FiscalCalendarError):
    """No fiscal quarter matches the period number of a quarterly tracking."""

    code: str = "QUARTER_NOT_FOUND"

    def __init__(self, period_number: int, fiscal_year_start: str):
        self.period_number = period_number
        self.fiscal_year_start = fiscal_year_start
        super().__init__(
            f"Fiscal quarter {period_number} not found for fiscal year "
            f"starting {fiscal_year_start}"
        )


class InvalidActivityPeriodError(FiscalCalendarError):
    """Activity period end date precedes its start date."""

    code: str = "INVALID_ACTIVITY_PERIOD"

    def __init__(self, sequence: int, start_date: str, end_date: str):
        self.sequence = sequence
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            f"Activity period {sequence} ends ({end_date}) before it "
            f"starts ({start_date})"
        )


# Reconciliation exceptions


class ReconciliationError(TrackingKernelError):
    """Base exception for reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class NoEligibleServiceError(ReconciliationError):
    """Customer has no service whose fiscal year covers the reference date."""

    code: str = "NO_ELIGIBLE_SERVICE"

    def __init__(self, customer_id: str, as_of: str, reason: str = "NoActiveService"):
        self.customer_id = customer_id
        self.as_of = as_of
        self.reason = reason
        super().__init__(
            f"Customer {customer_id} has no eligible fiscal year for {as_of} "
            f"({reason})"
        )


class TrackingConflictError(ReconciliationError):
    """A tracking with the same identity tuple already exists in storage."""

    code: str = "TRACKING_CONFLICT"

    def __init__(self, resource_ids: tuple[str, ...], detail: str):
        self.resource_ids = resource_ids
        self.detail = detail
        super().__init__(
            f"Tracking uniqueness conflict for resources "
            f"{', '.join(resource_ids)}: {detail}"
        )


class FatalReconciliationError(ReconciliationError):
    """Errors that must stop the whole run instead of a single unit."""

    code: str = "FATAL_RECONCILIATION_ERROR"


class StoreUnavailableError(FatalReconciliationError):
    """The persistence layer rejected an operation after exhausting retries."""

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, attempts: int, detail: str):
        self.operation = operation
        self.attempts = attempts
        self.detail = detail
        super().__init__(
            f"Store operation {operation} failed after {attempts} "
            f"attempt(s): {detail}"
        )


class ReconciliationAbortedError(FatalReconciliationError):
    """A reconciliation run stopped early; carries the partial summary."""

    code: str = "RECONCILIATION_ABORTED"

    def __init__(self, operation: str, reason: str, summary: RunSummary | Any):
        self.operation = operation
        self.reason = reason
        self.summary = summary
        super().__init__(f"Reconciliation {operation} aborted: {reason}")


# Batch exceptions


class BatchError(TrackingKernelError):
    """Base exception for job runner errors."""

    code: str = "BATCH_ERROR"


class JobNotFoundError(BatchError):
    """No job record exists for the given id."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Batch job not found: {job_id}")


class JobAlreadyRunningError(BatchError):
    """Another job of the same task type is running or the job was executed."""

    code: str = "JOB_ALREADY_RUNNING"

    def __init__(self, task_type: str, job_id: str):
        self.task_type = task_type
        self.job_id = job_id
        super().__init__(
            f"Job {job_id} for task {task_type} is already running or finished"
        )


class JobIdempotencyError(BatchError):
    """A job with the same idempotency key was already submitted."""

    code: str = "JOB_IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, existing_job_id: str):
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id
        super().__init__(
            f"Idempotency key {idempotency_key} already used by job "
            f"{existing_job_id}"
        )


class TaskNotRegisteredError(BatchError):
    """Task type is not present in the registry."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str, available: tuple[str, ...]):
        self.task_type = task_type
        self.available = available
        super().__init__(
            f"No task registered for type '{task_type}'. "
            f"Available: {list(available)}"
        )


# Configuration exceptions


class ConfigError(TrackingKernelError):
    """Configuration could not be loaded or failed validation."""

    code: str = "CONFIG_ERROR"

    def __init__(self, field: str, detail: str):
        self.field = field
        self.detail = detail
        super().__init__(f"Invalid configuration for '{field}': {detail}")
