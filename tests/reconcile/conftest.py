"""
Fixtures for reconciler tests.

``InMemoryTrackingStore`` implements the TrackingStore protocol over plain
dicts, with hooks for injecting failures at any call.
"""

from collections.abc import Callable
from contextlib import contextmanager
from datetime import date
from uuid import UUID, uuid4

import pytest

from tracking_kernel.domain.types import (
    ActivityPeriodInfo,
    ContentType,
    CustomerInfo,
    NewTracking,
    ProposalStatus,
    ResourceInfo,
    ServiceInfo,
    TrackingInfo,
    TrackingKey,
    TrackingStatus,
)
from tracking_kernel.exceptions import TrackingConflictError
from tracking_reconcile.reconciler import TrackingReconciler


class InMemoryTrackingStore:
    """TrackingStore over dicts.

    ``fail_on`` maps a method name to a callable invoked with the call's
    arguments before the method runs; it may raise to simulate failures.
    """

    def __init__(self):
        self.customers: list[CustomerInfo] = []
        self.services: list[ServiceInfo] = []
        self.resources: dict[UUID, list[ResourceInfo]] = {}
        self.trackings: dict[TrackingKey, TrackingInfo] = {}
        self.fail_on: dict[str, Callable[..., None]] = {}
        self.units_committed = 0

    # -- Builders -----------------------------------------------------------

    def add_customer(self, name: str) -> CustomerInfo:
        customer = CustomerInfo(id=uuid4(), name=name)
        self.customers.append(customer)
        return customer

    def add_service(
        self, customer: CustomerInfo, fiscal_start: date, quarterly: bool = False,
    ) -> ServiceInfo:
        service = ServiceInfo(
            id=uuid4(),
            customer_id=customer.id,
            description=f"{fiscal_start.year} - {fiscal_start.year + 1}",
            fiscal_year_start=fiscal_start,
            quarterly_evidence=quarterly,
        )
        self.services.append(service)
        self.resources.setdefault(service.id, [])
        return service

    def add_resource(
        self,
        service: ServiceInfo,
        periods: list[tuple[date, date | None]] = (),
        status: ProposalStatus = ProposalStatus.APPROVED,
        name: str = "Member",
    ) -> ResourceInfo:
        resource = ResourceInfo(
            id=uuid4(),
            service_id=service.id,
            proposal_status=status,
            member_name=name,
            activity_periods=tuple(
                ActivityPeriodInfo(number=n, start_date=s, end_date=e)
                for n, (s, e) in enumerate(periods, start=1)
            ),
        )
        self.resources[service.id].append(resource)
        return resource

    def add_tracking(
        self,
        resource: ResourceInfo,
        year: int,
        period: int,
        content_type: ContentType = ContentType.EVIDENCE,
        schedule: str | None = None,
    ) -> TrackingInfo:
        tracking = TrackingInfo(
            id=uuid4(),
            resource_id=resource.id,
            year=year,
            period=period,
            content_type=content_type,
            approve_status=TrackingStatus.DRAFT,
            schedule=schedule,
        )
        self.trackings[tracking.key] = tracking
        return tracking

    def _hook(self, name: str, *args) -> None:
        hook = self.fail_on.get(name)
        if hook is not None:
            hook(*args)

    # -- TrackingStore ------------------------------------------------------

    def list_customers(self) -> list[CustomerInfo]:
        self._hook("list_customers")
        return list(self.customers)

    def find_latest_service_for_customer(self, customer_id, as_of):
        self._hook("find_latest_service_for_customer", customer_id, as_of)
        candidates = [
            s for s in self.services
            if s.customer_id == customer_id
            and s.fiscal_year_start <= as_of
            and s.fiscal_year_start > as_of.replace(year=as_of.year - 1)
        ]
        return max(candidates, key=lambda s: s.fiscal_year_start, default=None)

    def list_services_for_customer(self, customer_id, up_to=None):
        self._hook("list_services_for_customer", customer_id)
        return sorted(
            (
                s for s in self.services
                if s.customer_id == customer_id
                and (up_to is None or s.fiscal_year_start <= up_to)
            ),
            key=lambda s: s.fiscal_year_start,
            reverse=True,
        )

    def list_active_resources_for_service(self, service_id):
        self._hook("list_active_resources_for_service", service_id)
        return [
            r for r in self.resources.get(service_id, [])
            if r.proposal_status not in (ProposalStatus.REJECTED, ProposalStatus.DISMISSAL)
        ]

    def list_trackings_for_resources(self, resource_ids, year, period):
        ids = set(resource_ids)
        return {
            key for key in self.trackings
            if key.resource_id in ids and key.year == year and key.period == period
        }

    def list_trackings_for_service(self, service_id):
        ids = {r.id for r in self.resources.get(service_id, [])}
        return [t for t in self.trackings.values() if t.resource_id in ids]

    def create_trackings(self, batch: list[NewTracking]) -> int:
        self._hook("create_trackings", batch)
        for item in batch:
            if item.key in self.trackings:
                raise TrackingConflictError((str(item.resource_id),), "duplicate key")
        for item in batch:
            self.trackings[item.key] = TrackingInfo(
                id=uuid4(),
                resource_id=item.resource_id,
                year=item.year,
                period=item.period,
                content_type=item.content_type,
                approve_status=item.approve_status,
                schedule=item.schedule,
            )
        return len(batch)

    def update_tracking_schedule(self, tracking_id, new_label) -> bool:
        self._hook("update_tracking_schedule", tracking_id, new_label)
        for key, tracking in self.trackings.items():
            if tracking.id == tracking_id:
                self.trackings[key] = TrackingInfo(
                    id=tracking.id,
                    resource_id=tracking.resource_id,
                    year=tracking.year,
                    period=tracking.period,
                    content_type=tracking.content_type,
                    approve_status=tracking.approve_status,
                    schedule=new_label,
                )
                return True
        return False

    @contextmanager
    def unit_of_work(self):
        yield
        self.units_committed += 1


@pytest.fixture
def memory_store() -> InMemoryTrackingStore:
    return InMemoryTrackingStore()


@pytest.fixture
def reconciler(store, clock) -> TrackingReconciler:
    """Reconciler over the SQLite-backed store."""
    return TrackingReconciler(store, clock)
