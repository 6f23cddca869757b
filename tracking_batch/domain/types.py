"""
tracking_batch.domain.types -- Pure frozen dataclasses for the job runner.

ZERO I/O.

Invariants enforced:
    - All DTOs are frozen dataclasses (immutable).
    - BatchJob carries an idempotency_key; the model enforces its uniqueness.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from tracking_reconcile.summary import RunStatus

if TYPE_CHECKING:
    from tracking_reconcile.summary import RunSummary


class BatchJobStatus(str, Enum):
    """Job-level lifecycle status."""

    PENDING = "pending"  # Created, not yet started
    RUNNING = "running"  # Execution in progress
    COMPLETED = "completed"  # Run finished without unit errors
    FAILED = "failed"  # Run aborted by a fatal error
    CANCELLED = "cancelled"  # Cancelled before or during execution
    PARTIALLY_COMPLETED = "partially_completed"  # Some units failed


RUN_STATUS_TO_JOB_STATUS: dict[RunStatus, BatchJobStatus] = {
    RunStatus.COMPLETED: BatchJobStatus.COMPLETED,
    RunStatus.PARTIALLY_COMPLETED: BatchJobStatus.PARTIALLY_COMPLETED,
    RunStatus.CANCELLED: BatchJobStatus.CANCELLED,
    RunStatus.FAILED: BatchJobStatus.FAILED,
}

TERMINAL_STATUSES = frozenset({
    BatchJobStatus.COMPLETED,
    BatchJobStatus.FAILED,
    BatchJobStatus.CANCELLED,
    BatchJobStatus.PARTIALLY_COMPLETED,
})


@dataclass(frozen=True)
class BatchJob:
    """Immutable snapshot of a job record.

    ``idempotency_key`` is UNIQUE: re-submitting the same key is refused.
    ``summary`` holds the serialized RunSummary once the job has run.
    """

    job_id: UUID
    job_name: str  # Human-readable label (e.g., "Backfill 2025-06-15")
    task_type: str  # Registered task key (e.g., "trackings.backfill_missing")
    status: BatchJobStatus
    idempotency_key: str
    parameters: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: UUID | None = None
    correlation_id: str | None = None
    error_summary: str | None = None
    summary: dict[str, Any] | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """Immutable result of executing one job.

    Returned by ``BatchExecutor.execute_job()``.
    """

    job_id: UUID
    status: BatchJobStatus
    summary: RunSummary | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    correlation_id: str | None = None
    error_summary: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status in (BatchJobStatus.COMPLETED, BatchJobStatus.PARTIALLY_COMPLETED)
