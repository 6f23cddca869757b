"""
BatchExecutor -- job lifecycle around one reconciliation run.

Contract:
    Orchestrates the job lifecycle: submit (with idempotency), execute
    (single-flight per task type), cancel, query.

Architecture: tracking_batch/services.  Imports from tracking_batch.domain,
    tracking_batch.models, tracking_batch.tasks and tracking_reconcile.

Invariants enforced:
    - Idempotency via UNIQUE idempotency_key.
    - Single flight: at most one RUNNING job per task_type.
    - Concurrency guard (SELECT...FOR UPDATE on the job row).
    - All timestamps from the injected Clock.
    - A run that aborts is recorded FAILED with its partial summary; the
      abort never propagates out of ``execute_job()``.

Job state transitions are committed as they happen so concurrent runners
observe RUNNING.  Unit work inside the run commits through the store.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from tracking_batch.domain.types import (
    RUN_STATUS_TO_JOB_STATUS,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)
from tracking_batch.models.batch import BatchJobModel
from tracking_batch.tasks.base import TaskRegistry
from tracking_kernel.domain.clock import Clock, SystemClock
from tracking_kernel.exceptions import (
    JobAlreadyRunningError,
    JobIdempotencyError,
    JobNotFoundError,
    ReconciliationAbortedError,
    TaskNotRegisteredError,
)
from tracking_kernel.logging_config import LogContext, get_logger
from tracking_reconcile.reconciler import TrackingReconciler
from tracking_reconcile.summary import RunSummary

logger = get_logger("batch.executor")

ReconcilerFactory = Callable[[Session, "threading.Event | None"], TrackingReconciler]


class BatchExecutor:
    """Runs registered reconciliation tasks as tracked jobs.

    Contract:
        - ``submit_job()`` creates a PENDING job (idempotency check).
        - ``execute_job()`` runs the task and records the outcome.
        - ``cancel_job()`` marks a PENDING job as CANCELLED.
        - ``get_job()`` / ``list_jobs()`` read job records.

    Guarantees:
        - ``execute_job()`` returns a BatchRunResult for every run that
          started, including runs that aborted.

    Non-goals:
        - Does NOT stop a RUNNING job from another process; running jobs
          are cancelled through the stop event passed to ``execute_job()``.
    """

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        reconciler_factory: ReconcilerFactory,
        clock: Clock | None = None,
    ):
        self._session = session
        self._registry = task_registry
        self._reconciler_factory = reconciler_factory
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    def submit_job(
        self,
        job_name: str,
        task_type: str,
        idempotency_key: str,
        actor_id: UUID,
        parameters: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> BatchJob:
        """Create a PENDING job.

        Raises:
            TaskNotRegisteredError: If task_type is not registered.
            JobIdempotencyError: If idempotency_key was already used.
        """
        if task_type not in self._registry:
            raise TaskNotRegisteredError(task_type, self._registry.list_tasks())

        existing = self._session.execute(
            select(BatchJobModel).where(
                BatchJobModel.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise JobIdempotencyError(idempotency_key, str(existing.id))

        job_model = BatchJobModel(
            id=uuid4(),
            job_name=job_name,
            task_type=task_type,
            status=BatchJobStatus.PENDING.value,
            idempotency_key=idempotency_key,
            parameters=parameters,
            correlation_id=correlation_id,
            created_by_id=actor_id,
        )
        self._session.add(job_model)
        self._session.commit()

        logger.info(
            "batch_job_submitted",
            extra={
                "job_id": str(job_model.id),
                "job_name": job_name,
                "task_type": task_type,
                "idempotency_key": idempotency_key,
            },
        )
        return job_model.to_dto()

    # -------------------------------------------------------------------------
    # Execute
    # -------------------------------------------------------------------------

    def execute_job(
        self,
        job_id: UUID,
        actor_id: UUID,
        stop_event: threading.Event | None = None,
    ) -> BatchRunResult:
        """Run a PENDING job to completion.

        Raises:
            JobNotFoundError: If job_id does not exist.
            JobAlreadyRunningError: If the job is not PENDING, or another
                job of the same task type is RUNNING.
        """
        start_time = time.monotonic()

        job_model = self._lock_job(job_id)
        if job_model.status != BatchJobStatus.PENDING.value:
            raise JobAlreadyRunningError(job_model.task_type, str(job_id))

        running = self._session.execute(
            select(BatchJobModel.id).where(
                BatchJobModel.task_type == job_model.task_type,
                BatchJobModel.status == BatchJobStatus.RUNNING.value,
                BatchJobModel.id != job_id,
            )
        ).scalars().first()
        if running is not None:
            raise JobAlreadyRunningError(job_model.task_type, str(running))

        task = self._registry.get(job_model.task_type)

        job_model.status = BatchJobStatus.RUNNING.value
        job_model.started_at = self._clock.now()
        job_model.updated_by_id = actor_id
        self._session.commit()

        with LogContext.bind(
            run_id=str(job_id),
            job_name=job_model.job_name,
            correlation_id=job_model.correlation_id,
        ):
            logger.info(
                "batch_job_started",
                extra={"job_id": str(job_id), "task_type": task.task_type},
            )

            summary: RunSummary | None = None
            error_summary: str | None = None
            try:
                reconciler = self._reconciler_factory(self._session, stop_event)
                summary = task.run(reconciler)
                status = RUN_STATUS_TO_JOB_STATUS[summary.status]
            except ReconciliationAbortedError as exc:
                summary = exc.summary
                status = BatchJobStatus.FAILED
                error_summary = str(exc)
            except Exception as exc:
                logger.exception(
                    "batch_job_crashed",
                    extra={"job_id": str(job_id), "error": str(exc)},
                )
                status = BatchJobStatus.FAILED
                error_summary = f"{type(exc).__name__}: {exc}"

            if status is BatchJobStatus.FAILED:
                # Drop whatever the failing unit left behind
                self._session.rollback()
                job_model = self._session.get(BatchJobModel, job_id)

            return self._finish_job(
                job_model, actor_id, status, summary, error_summary, start_time,
            )

    def _finish_job(
        self,
        job_model: BatchJobModel,
        actor_id: UUID,
        status: BatchJobStatus,
        summary: RunSummary | None,
        error_summary: str | None,
        start_time: float,
    ) -> BatchRunResult:
        """Record the final job state and return the result."""
        if error_summary is None and summary is not None and summary.unit_errors:
            error_summary = "; ".join(
                f"{e.level.value} {e.key}: {e.code}" for e in summary.unit_errors[:10]
            )

        job_model.status = status.value
        job_model.completed_at = self._clock.now()
        job_model.updated_by_id = actor_id
        job_model.error_summary = error_summary
        if summary is not None:
            job_model.summary = summary.to_dict()
            job_model.trackings_created = summary.trackings_created
            job_model.trackings_fixed = summary.trackings_fixed
            job_model.error_count = summary.errors
        self._session.commit()

        duration_ms = int((time.monotonic() - start_time) * 1000)
        log = logger.error if status is BatchJobStatus.FAILED else logger.info
        log(
            "batch_job_completed",
            extra={
                "job_id": str(job_model.id),
                "status": status.value,
                "duration_ms": duration_ms,
                "error_summary": error_summary,
            },
        )

        return BatchRunResult(
            job_id=job_model.id,
            status=status,
            summary=summary,
            started_at=job_model.started_at,
            completed_at=job_model.completed_at,
            duration_ms=duration_ms,
            correlation_id=job_model.correlation_id,
            error_summary=error_summary,
        )

    # -------------------------------------------------------------------------
    # Cancel
    # -------------------------------------------------------------------------

    def cancel_job(
        self,
        job_id: UUID,
        reason: str,
        actor_id: UUID,
    ) -> BatchJob:
        """Cancel a PENDING job.

        Raises:
            JobNotFoundError: If job_id does not exist.
            ValueError: If the job is not PENDING.
        """
        job_model = self._lock_job(job_id)

        if job_model.status != BatchJobStatus.PENDING.value:
            raise ValueError(
                f"Cannot cancel job in status {job_model.status}"
            )

        job_model.status = BatchJobStatus.CANCELLED.value
        job_model.completed_at = self._clock.now()
        job_model.updated_by_id = actor_id
        job_model.error_summary = f"Cancelled: {reason}"
        self._session.commit()

        logger.info(
            "batch_job_cancelled",
            extra={"job_id": str(job_id), "reason": reason},
        )
        return job_model.to_dto()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> BatchJob:
        """Retrieve a job by ID.

        Raises:
            JobNotFoundError: If job_id does not exist.
        """
        job_model = self._session.get(BatchJobModel, job_id)
        if job_model is None:
            raise JobNotFoundError(str(job_id))
        return job_model.to_dto()

    def list_jobs(self, task_type: str | None = None) -> list[BatchJob]:
        """Jobs newest first, optionally for one task type."""
        stmt = select(BatchJobModel).order_by(BatchJobModel.created_at.desc())
        if task_type is not None:
            stmt = stmt.where(BatchJobModel.task_type == task_type)
        return [m.to_dto() for m in self._session.execute(stmt).scalars()]

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _lock_job(self, job_id: UUID) -> BatchJobModel:
        job_model = self._session.execute(
            select(BatchJobModel)
            .where(BatchJobModel.id == job_id)
            .with_for_update()
        ).scalar_one_or_none()
        if job_model is None:
            raise JobNotFoundError(str(job_id))
        return job_model
