"""
BatchOrchestrator -- DI container for the reconciliation job runner.

Contract:
    Wires the TaskRegistry with the tracking tasks, builds stores and
    reconcilers from configuration, and creates BatchExecutors.  Single
    place where all job-runner dependencies are composed.

Architecture: tracking_batch (top-level).  This is the canonical entry point
    for configuring and running reconciliation jobs.

Invariants enforced:
    - Clock injection (store, reconciler and executor share one Clock).
    - Nothing in tracking_kernel or tracking_reconcile imports tracking_batch.
"""

from __future__ import annotations

import threading
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from tracking_batch.domain.types import BatchRunResult
from tracking_batch.services.executor import BatchExecutor
from tracking_batch.tasks.base import TaskRegistry
from tracking_batch.tasks.tracking_tasks import (
    BackfillMissingTask,
    CreateCurrentPeriodTask,
    FixScheduleLabelsTask,
)
from tracking_config.schema import ReconciliationConfig
from tracking_kernel.domain.clock import Clock, SystemClock
from tracking_kernel.logging_config import get_logger
from tracking_reconcile.reconciler import TrackingReconciler
from tracking_reconcile.store import SqlTrackingStore

logger = get_logger("batch.orchestrator")


def _default_task_registry() -> TaskRegistry:
    """Create a TaskRegistry pre-loaded with the tracking tasks."""
    registry = TaskRegistry()
    registry.register(CreateCurrentPeriodTask())
    registry.register(BackfillMissingTask())
    registry.register(FixScheduleLabelsTask())
    return registry


class BatchOrchestrator:
    """DI container for the reconciliation job runner.

    Contract:
        - ``from_session()`` factory creates a fully wired orchestrator.
        - ``create_executor()`` returns a BatchExecutor for ad-hoc jobs.
        - ``run()`` submits and executes one job in a single call.

    Non-goals:
        - Does NOT schedule runs -- an external trigger calls ``run()``.
        - Does NOT own the session -- the caller opens and closes it.
    """

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        config: ReconciliationConfig,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        self._session = session
        self._task_registry = task_registry
        self._config = config
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or config.system_actor_id

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        config: ReconciliationConfig | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        task_registry: TaskRegistry | None = None,
    ) -> BatchOrchestrator:
        """Create a fully wired BatchOrchestrator from a session.

        Args:
            session: SQLAlchemy session for persistence.
            config: Effective configuration; built-in defaults if None.
            clock: Optional clock for deterministic runs.
            actor_id: Actor recorded on written rows; the configured
                system actor if None.
            task_registry: Optional pre-configured registry. If None,
                uses the default registry with the tracking tasks.
        """
        registry = task_registry if task_registry is not None else _default_task_registry()
        return cls(
            session=session,
            task_registry=registry,
            config=config or ReconciliationConfig(),
            clock=clock or SystemClock(),
            actor_id=actor_id,
        )

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    def create_store(self, session: Session | None = None) -> SqlTrackingStore:
        return SqlTrackingStore(
            session or self._session,
            self._actor_id,
            excluded_statuses=self._config.excluded_statuses,
            commit_per_unit=self._config.commit_per_unit,
            retry_attempts=self._config.store_retry_attempts,
        )

    def create_reconciler(
        self,
        session: Session | None = None,
        stop_event: threading.Event | None = None,
    ) -> TrackingReconciler:
        return TrackingReconciler.from_config(
            self.create_store(session), self._clock, self._config, stop_event,
        )

    def create_executor(self, session: Session | None = None) -> BatchExecutor:
        """Create a BatchExecutor wired with the orchestrator's dependencies.

        Args:
            session: Optional session override. If None, uses the
                orchestrator's session.
        """
        return BatchExecutor(
            session=session or self._session,
            task_registry=self._task_registry,
            reconciler_factory=self.create_reconciler,
            clock=self._clock,
        )

    # -------------------------------------------------------------------------
    # One-shot run
    # -------------------------------------------------------------------------

    def run(
        self,
        task_type: str,
        *,
        job_name: str | None = None,
        idempotency_key: str | None = None,
        correlation_id: str | None = None,
        stop_event: threading.Event | None = None,
    ) -> BatchRunResult:
        """Submit and execute one job.

        Raises:
            TaskNotRegisteredError: If task_type is not registered.
            JobIdempotencyError: If idempotency_key was already used.
            JobAlreadyRunningError: If a job of this type is RUNNING.
        """
        now = self._clock.now()
        executor = self.create_executor()
        job = executor.submit_job(
            job_name=job_name or f"{task_type} {now.date().isoformat()}",
            task_type=task_type,
            idempotency_key=idempotency_key or f"{task_type}:{uuid4()}",
            actor_id=self._actor_id,
            parameters={"as_of": now.date().isoformat(), "config_checksum": self._config.checksum},
            correlation_id=correlation_id,
        )
        return executor.execute_job(job.job_id, self._actor_id, stop_event=stop_event)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> ReconciliationConfig:
        return self._config

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry

    @property
    def actor_id(self) -> UUID:
        return self._actor_id
