"""
Pytest fixtures for the tracking reconciliation test suite.

Provides:
- In-memory SQLite sessions with SAVEPOINT support (no PostgreSQL required)
- A deterministic clock
- ORM factories for customers, services, resources and trackings
- Captured structured logs
"""

import json
import logging
from collections.abc import Iterator
from datetime import date
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tracking_kernel.db.base import Base
from tracking_kernel.db.engine import enable_sqlite_savepoints, import_all_models
from tracking_kernel.domain.clock import DeterministicClock
from tracking_kernel.domain.types import ContentType, ProposalStatus, TrackingStatus
from tracking_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from tracking_kernel.models import (
    ActivityPeriod,
    Customer,
    Member,
    Resource,
    Service,
    Tracking,
)
from tracking_reconcile.store import SqlTrackingStore

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture tracking_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, reconciler):
            reconciler.backfill_missing_trackings()
            logs = captured_logs()
            assert any(r["message"] == "trackings_backfilled" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("tracking_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(eng)
    import_all_models()
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine) -> Iterator[Session]:
    factory = sessionmaker(bind=engine, expire_on_commit=False)
    sess = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def clock() -> DeterministicClock:
    """Clock fixed on 2025-06-15 (fiscal month 3 of a year starting in April)."""
    return DeterministicClock.on(date(2025, 6, 15))


@pytest.fixture
def actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def store(session, actor_id) -> SqlTrackingStore:
    return SqlTrackingStore(session, actor_id, retry_backoff_seconds=0)


# =============================================================================
# Factories
# =============================================================================


class Factory:
    """Creates ORM rows and flushes them on the test session."""

    def __init__(self, session: Session):
        self.session = session
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def customer(self, name: str | None = None) -> Customer:
        customer = Customer(
            name=name or f"Customer {self._next():03d}",
            created_by_id=TEST_ACTOR_ID,
        )
        self.session.add(customer)
        self.session.flush()
        return customer

    def service(
        self,
        customer: Customer,
        fiscal_start: date,
        quarterly: bool = False,
        description: str | None = None,
    ) -> Service:
        service = Service(
            description=description or f"{fiscal_start.year} - {fiscal_start.year + 1}",
            fiscal_year_start=fiscal_start,
            quarterly_evidence=quarterly,
            customer_id=customer.id,
            created_by_id=TEST_ACTOR_ID,
        )
        self.session.add(service)
        self.session.flush()
        return service

    def resource(
        self,
        service: Service,
        periods: list[tuple[date, date | None]] = (),
        status: ProposalStatus = ProposalStatus.APPROVED,
    ) -> Resource:
        n = self._next()
        member = Member(
            full_name=f"Member {n:03d}",
            email=f"member{n:03d}@example.org",
            created_by_id=TEST_ACTOR_ID,
        )
        self.session.add(member)
        self.session.flush()

        resource = Resource(
            proposal_status=status.value,
            member_id=member.id,
            service_id=service.id,
            created_by_id=TEST_ACTOR_ID,
        )
        for number, (start, end) in enumerate(periods, start=1):
            resource.activity_periods.append(ActivityPeriod(
                number=number,
                start_date=start,
                end_date=end,
                created_by_id=TEST_ACTOR_ID,
            ))
        self.session.add(resource)
        self.session.flush()
        return resource

    def tracking(
        self,
        resource: Resource,
        year: int,
        period: int,
        content_type: ContentType = ContentType.EVIDENCE,
        schedule: str | None = None,
        status: TrackingStatus = TrackingStatus.DRAFT,
    ) -> Tracking:
        tracking = Tracking(
            resource_id=resource.id,
            year=year,
            period=period,
            content_type=content_type.value,
            approve_status=status.value,
            schedule=schedule,
            created_by_id=TEST_ACTOR_ID,
        )
        self.session.add(tracking)
        self.session.flush()
        return tracking


@pytest.fixture
def factory(session) -> Factory:
    return Factory(session)


@pytest.fixture
def all_trackings(session):
    """Callable returning every tracking row, ordered by identity."""

    def _load() -> list[Tracking]:
        return list(session.scalars(
            select(Tracking).order_by(
                Tracking.resource_id, Tracking.year, Tracking.period, Tracking.content_type,
            )
        ))

    return _load
