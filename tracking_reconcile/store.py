"""
TrackingStore -- the persistence collaborator of the reconciler.

Responsibility:
    Declares the read and write calls the reconciler makes (``TrackingStore``
    protocol) and provides the SQLAlchemy implementation that composes the
    kernel selector and writer over one session.

Architecture position:
    Reconcile layer.  The reconciler depends only on the protocol; tests
    substitute subclasses of ``SqlTrackingStore`` to inject failures.

Invariants enforced:
    - Every write unit runs inside ``unit_of_work()``: a SAVEPOINT that is
      released on success and rolled back on failure, leaving earlier units
      intact.  With ``commit_per_unit`` the outer transaction is committed
      after each successful unit so progress survives an interrupted run.
"""

from __future__ import annotations

from collections.abc import Collection, Iterator, Sequence
from contextlib import contextmanager
from datetime import date
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from tracking_kernel.domain.types import (
    DEFAULT_EXCLUDED_STATUSES,
    CustomerInfo,
    NewTracking,
    ProposalStatus,
    ResourceInfo,
    ServiceInfo,
    TrackingInfo,
    TrackingKey,
)
from tracking_kernel.logging_config import get_logger
from tracking_kernel.selectors.reconciliation_selector import ReconciliationSelector
from tracking_kernel.services.tracking_writer import TrackingWriter

logger = get_logger("reconcile.store")


@runtime_checkable
class TrackingStore(Protocol):
    """Read/write interface consumed by ``TrackingReconciler``."""

    def list_customers(self) -> list[CustomerInfo]: ...

    def find_latest_service_for_customer(
        self, customer_id: UUID, as_of: date,
    ) -> ServiceInfo | None: ...

    def list_services_for_customer(
        self, customer_id: UUID, up_to: date | None = None,
    ) -> list[ServiceInfo]: ...

    def list_active_resources_for_service(self, service_id: UUID) -> list[ResourceInfo]: ...

    def list_trackings_for_resources(
        self, resource_ids: Sequence[UUID], year: int, period: int,
    ) -> set[TrackingKey]: ...

    def list_trackings_for_service(self, service_id: UUID) -> list[TrackingInfo]: ...

    def create_trackings(self, batch: Sequence[NewTracking]) -> int: ...

    def update_tracking_schedule(self, tracking_id: UUID, new_label: str) -> bool: ...

    def unit_of_work(self): ...


class SqlTrackingStore:
    """
    ``TrackingStore`` over one SQLAlchemy session.

    Contract:
        The caller owns the session.  Writes are attributed to ``actor_id``.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        excluded_statuses: Collection[ProposalStatus] = DEFAULT_EXCLUDED_STATUSES,
        commit_per_unit: bool = True,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 0.2,
    ):
        self._session = session
        self._actor_id = actor_id
        self._excluded = frozenset(excluded_statuses)
        self._commit_per_unit = commit_per_unit
        self._selector = ReconciliationSelector(session)
        self._writer = TrackingWriter(
            session,
            retry_attempts=retry_attempts,
            retry_backoff_seconds=retry_backoff_seconds,
        )

    @property
    def session(self) -> Session:
        return self._session

    # -- Reads --------------------------------------------------------------

    def list_customers(self) -> list[CustomerInfo]:
        return self._selector.list_customers()

    def find_latest_service_for_customer(
        self, customer_id: UUID, as_of: date,
    ) -> ServiceInfo | None:
        return self._selector.find_latest_service_for_customer(customer_id, as_of)

    def list_services_for_customer(
        self, customer_id: UUID, up_to: date | None = None,
    ) -> list[ServiceInfo]:
        return self._selector.list_services_for_customer(customer_id, up_to)

    def list_active_resources_for_service(self, service_id: UUID) -> list[ResourceInfo]:
        return self._selector.list_active_resources_for_service(service_id, self._excluded)

    def list_trackings_for_resources(
        self, resource_ids: Sequence[UUID], year: int, period: int,
    ) -> set[TrackingKey]:
        return self._selector.list_trackings_for_resources(resource_ids, year, period)

    def list_trackings_for_service(self, service_id: UUID) -> list[TrackingInfo]:
        return self._selector.list_trackings_for_service(service_id)

    # -- Writes -------------------------------------------------------------

    def create_trackings(self, batch: Sequence[NewTracking]) -> int:
        return self._writer.create_trackings(batch, self._actor_id)

    def update_tracking_schedule(self, tracking_id: UUID, new_label: str) -> bool:
        return self._writer.update_tracking_schedule(tracking_id, new_label, self._actor_id)

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        """SAVEPOINT around one write unit; commit afterwards if configured."""
        with self._session.begin_nested():
            yield
        if self._commit_per_unit:
            self._session.commit()
            logger.debug("unit_committed")
