"""
Tests for TrackingWriter -- inserts, label updates, conflicts and retries.
"""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from tracking_kernel.domain.types import ContentType, NewTracking
from tracking_kernel.exceptions import StoreUnavailableError, TrackingConflictError
from tracking_kernel.models import Tracking
from tracking_kernel.services.tracking_writer import TrackingWriter


def _new(resource, period=6, content_type=ContentType.EVIDENCE):
    return NewTracking(
        resource_id=resource.id,
        year=2025,
        period=period,
        content_type=content_type,
        schedule=f"{period}/2025",
    )


@pytest.fixture
def resource(factory):
    service = factory.service(factory.customer(), date(2025, 4, 1))
    return factory.resource(service, [(date(2025, 4, 1), None)])


class TestCreateTrackings:

    def test_inserts_draft_rows(self, session, resource, actor_id, all_trackings):
        written = TrackingWriter(session).create_trackings(
            [_new(resource), _new(resource, content_type=ContentType.TRAINING)], actor_id,
        )

        assert written == 2
        rows = all_trackings()
        assert {r.approve_status for r in rows} == {"Draft"}
        assert {r.created_by_id for r in rows} == {actor_id}

    def test_empty_batch(self, session, actor_id):
        assert TrackingWriter(session).create_trackings([], actor_id) == 0

    def test_duplicate_identity_rejected(self, session, resource, actor_id, factory, all_trackings):
        factory.tracking(resource, 2025, 6, ContentType.EVIDENCE, "6/2025")
        writer = TrackingWriter(session)

        with pytest.raises(TrackingConflictError) as exc_info:
            writer.create_trackings(
                [_new(resource, content_type=ContentType.TRAINING), _new(resource)], actor_id,
            )

        assert exc_info.value.resource_ids == (str(resource.id),)
        # Whole batch rolled back; the session is still usable
        assert len(all_trackings()) == 1
        assert writer.create_trackings([_new(resource, period=5)], actor_id) == 1


class TestUpdateSchedule:

    def test_updates_label_only(self, session, resource, actor_id, factory):
        tracking = factory.tracking(resource, 2025, 6, ContentType.EVIDENCE, "old")

        updated = TrackingWriter(session).update_tracking_schedule(tracking.id, "6/2025", actor_id)

        row = session.get(Tracking, tracking.id)
        assert updated is True
        assert row.schedule == "6/2025"
        assert row.updated_by_id == actor_id
        assert (row.year, row.period) == (2025, 6)

    def test_missing_tracking(self, session, actor_id):
        assert TrackingWriter(session).update_tracking_schedule(uuid4(), "x", actor_id) is False


class TestRetry:

    def test_transient_errors_exhaust_into_store_unavailable(self, session, actor_id, monkeypatch):
        writer = TrackingWriter(session, retry_attempts=2, retry_backoff_seconds=0)
        attempts = []

        def flaky(*args, **kwargs):
            attempts.append(1)
            raise OperationalError("UPDATE trackings", {}, Exception("server closed the connection"))

        monkeypatch.setattr(session, "execute", flaky)

        with pytest.raises(StoreUnavailableError) as exc_info:
            writer.update_tracking_schedule(uuid4(), "x", actor_id)

        assert len(attempts) == 2
        assert exc_info.value.attempts == 2

    def test_transient_error_then_success(self, session, resource, actor_id, factory, monkeypatch):
        tracking = factory.tracking(resource, 2025, 6, ContentType.EVIDENCE, "old")
        writer = TrackingWriter(session, retry_attempts=3, retry_backoff_seconds=0)
        real_execute = session.execute
        calls = []

        def once_flaky(*args, **kwargs):
            calls.append(1)
            if len(calls) == 1:
                raise OperationalError("UPDATE trackings", {}, Exception("deadlock detected"))
            return real_execute(*args, **kwargs)

        monkeypatch.setattr(session, "execute", once_flaky)

        assert writer.update_tracking_schedule(tracking.id, "6/2025", actor_id) is True
        assert len(calls) == 2
