"""
Tests for tracking_batch.orchestrator -- wiring and one-shot runs.
"""

from dataclasses import replace
from datetime import date

import pytest

from tracking_batch.domain.types import BatchJobStatus
from tracking_batch.orchestrator import BatchOrchestrator
from tracking_batch.tasks.tracking_tasks import (
    TASK_BACKFILL_MISSING,
    TASK_CREATE_CURRENT_PERIOD,
    TASK_FIX_SCHEDULE_LABELS,
)
from tracking_config.schema import DEFAULT_SYSTEM_ACTOR_ID, ReconciliationConfig
from tracking_kernel.domain.types import ContentType, ProposalStatus
from tracking_kernel.exceptions import JobIdempotencyError, TaskNotRegisteredError
from tracking_reconcile.reconciler import TrackingReconciler
from tracking_reconcile.store import SqlTrackingStore


@pytest.fixture
def config():
    return replace(ReconciliationConfig(), checksum="test-checksum")


@pytest.fixture
def orchestrator(session, config, clock):
    return BatchOrchestrator.from_session(session, config=config, clock=clock)


def _seed(factory):
    service = factory.service(factory.customer(), date(2025, 4, 1))
    factory.resource(service, [(date(2025, 4, 1), None)])
    return service


class TestWiring:

    def test_defaults(self, session, clock):
        orch = BatchOrchestrator.from_session(session, clock=clock)

        assert orch.actor_id == DEFAULT_SYSTEM_ACTOR_ID
        assert orch.clock is clock
        assert len(orch.task_registry) == 3
        assert orch.session is session

    def test_explicit_actor(self, session, config, actor_id):
        orch = BatchOrchestrator.from_session(session, config=config, actor_id=actor_id)

        assert orch.actor_id == actor_id

    def test_components(self, orchestrator):
        assert isinstance(orchestrator.create_store(), SqlTrackingStore)
        assert isinstance(orchestrator.create_reconciler(), TrackingReconciler)
        assert orchestrator.create_executor() is not None


class TestRun:

    def test_create_then_backfill_then_fix(self, orchestrator, factory, all_trackings):
        _seed(factory)

        created = orchestrator.run(TASK_CREATE_CURRENT_PERIOD)
        backfilled = orchestrator.run(TASK_BACKFILL_MISSING)
        fixed = orchestrator.run(TASK_FIX_SCHEDULE_LABELS)

        assert created.status is BatchJobStatus.COMPLETED
        assert created.summary.trackings_created == 3
        assert backfilled.summary.trackings_created == 6
        assert fixed.summary.trackings_fixed == 0
        assert len(all_trackings()) == 9

    def test_job_records_parameters(self, orchestrator):
        result = orchestrator.run(TASK_BACKFILL_MISSING, job_name="manual")

        job = orchestrator.create_executor().get_job(result.job_id)
        assert job.job_name == "manual"
        assert job.parameters == {
            "as_of": "2025-06-15", "config_checksum": "test-checksum",
        }
        assert job.created_by == DEFAULT_SYSTEM_ACTOR_ID

    def test_idempotency_key_reuse_refused(self, orchestrator):
        orchestrator.run(TASK_BACKFILL_MISSING, idempotency_key="nightly-2025-06-15")

        with pytest.raises(JobIdempotencyError):
            orchestrator.run(TASK_BACKFILL_MISSING, idempotency_key="nightly-2025-06-15")

    def test_unknown_task(self, orchestrator):
        with pytest.raises(TaskNotRegisteredError):
            orchestrator.run("trackings.unknown")

    def test_config_flows_to_reconciler(self, session, clock, factory, all_trackings):
        service = _seed(factory)
        factory.resource(service, [(date(2025, 4, 1), None)], status=ProposalStatus.PENDING)
        config = replace(
            ReconciliationConfig(),
            content_types=(ContentType.EVIDENCE,),
            excluded_statuses=(ProposalStatus.PENDING,),
        )
        orch = BatchOrchestrator.from_session(session, config=config, clock=clock)

        result = orch.run(TASK_CREATE_CURRENT_PERIOD)

        assert result.summary.trackings_created == 1
        assert [r.content_type for r in all_trackings()] == ["Evidence"]
