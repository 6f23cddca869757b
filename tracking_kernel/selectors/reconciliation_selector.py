"""
Module: tracking_kernel.selectors.reconciliation_selector
Responsibility: Read side of the reconciliation engine -- customers, their
    services, eligible resources with activity periods, and existing
    trackings, all returned as frozen DTOs.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Resources are listed with their activity periods eagerly loaded
      (no per-resource lazy load during a run).
    - Resources in an excluded (terminal) proposal status are never returned.
    - Existence checks are bulk: one query per (service, year, period),
      not one per resource and content type.
"""

from collections.abc import Collection, Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tracking_kernel.domain.types import (
    ActivityPeriodInfo,
    ContentType,
    CustomerInfo,
    ProposalStatus,
    ResourceInfo,
    ServiceInfo,
    TrackingInfo,
    TrackingKey,
    TrackingStatus,
)
from tracking_kernel.models.customer import Customer
from tracking_kernel.models.resource import Resource
from tracking_kernel.models.service import Service
from tracking_kernel.models.tracking import Tracking
from tracking_kernel.selectors.base import BaseSelector


def one_year_before(day: date) -> date:
    """Same calendar day one year earlier (Feb 29 maps to Feb 28)."""
    try:
        return day.replace(year=day.year - 1)
    except ValueError:
        return day.replace(year=day.year - 1, day=28)


class ReconciliationSelector(BaseSelector[Resource]):
    """
    Selector for the reconciliation read paths.

    Returns DTOs rather than ORM models; uses the caller's Session.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # -- Conversions ---------------------------------------------------------

    def _to_service(self, service: Service) -> ServiceInfo:
        return ServiceInfo(
            id=service.id,
            customer_id=service.customer_id,
            description=service.description,
            fiscal_year_start=service.fiscal_year_start,
            quarterly_evidence=bool(service.quarterly_evidence),
        )

    def _to_resource(self, resource: Resource) -> ResourceInfo:
        return ResourceInfo(
            id=resource.id,
            service_id=resource.service_id,
            proposal_status=ProposalStatus(resource.proposal_status),
            member_name=resource.member.full_name if resource.member else "",
            activity_periods=tuple(
                ActivityPeriodInfo(
                    number=p.number,
                    start_date=p.start_date,
                    end_date=p.end_date,
                )
                for p in resource.activity_periods
            ),
        )

    def _to_tracking(self, tracking: Tracking) -> TrackingInfo:
        return TrackingInfo(
            id=tracking.id,
            resource_id=tracking.resource_id,
            year=tracking.year,
            period=tracking.period,
            content_type=ContentType(tracking.content_type),
            approve_status=TrackingStatus(tracking.approve_status),
            schedule=tracking.schedule,
        )

    # -- Customers and services ---------------------------------------------

    def list_customers(self) -> list[CustomerInfo]:
        rows = self.session.execute(
            select(Customer.id, Customer.name).order_by(Customer.name, Customer.id)
        ).all()
        return [CustomerInfo(id=row.id, name=row.name) for row in rows]

    def find_latest_service_for_customer(
        self, customer_id: UUID, as_of: date,
    ) -> ServiceInfo | None:
        """Most recent service whose fiscal year contains ``as_of``."""
        service = self.session.scalars(
            select(Service)
            .where(Service.customer_id == customer_id)
            .where(Service.fiscal_year_start <= as_of)
            .where(Service.fiscal_year_start > one_year_before(as_of))
            .order_by(Service.fiscal_year_start.desc(), Service.created_at.desc())
            .limit(1)
        ).first()
        return self._to_service(service) if service is not None else None

    def list_services_for_customer(
        self, customer_id: UUID, up_to: date | None = None,
    ) -> list[ServiceInfo]:
        """Services of a customer (started on or before ``up_to``), newest first."""
        stmt = select(Service).where(Service.customer_id == customer_id)
        if up_to is not None:
            stmt = stmt.where(Service.fiscal_year_start <= up_to)
        stmt = stmt.order_by(Service.fiscal_year_start.desc(), Service.id)
        return [self._to_service(s) for s in self.session.scalars(stmt)]

    # -- Resources ----------------------------------------------------------

    def list_active_resources_for_service(
        self,
        service_id: UUID,
        excluded_statuses: Collection[ProposalStatus] = (),
    ) -> list[ResourceInfo]:
        stmt = (
            select(Resource)
            .where(Resource.service_id == service_id)
            .options(
                selectinload(Resource.activity_periods),
                selectinload(Resource.member),
            )
            .order_by(Resource.created_at, Resource.id)
        )
        if excluded_statuses:
            stmt = stmt.where(
                Resource.proposal_status.not_in([s.value for s in excluded_statuses])
            )
        return [self._to_resource(r) for r in self.session.scalars(stmt)]

    # -- Trackings ----------------------------------------------------------

    def list_trackings_for_resources(
        self, resource_ids: Sequence[UUID], year: int, period: int,
    ) -> set[TrackingKey]:
        """Identity keys of existing trackings for one (year, period)."""
        if not resource_ids:
            return set()
        rows = self.session.execute(
            select(Tracking.resource_id, Tracking.content_type)
            .where(Tracking.resource_id.in_(list(resource_ids)))
            .where(Tracking.year == year)
            .where(Tracking.period == period)
        ).all()
        return {
            TrackingKey(
                resource_id=row.resource_id,
                year=year,
                period=period,
                content_type=ContentType(row.content_type),
            )
            for row in rows
        }

    def list_trackings_for_service(self, service_id: UUID) -> list[TrackingInfo]:
        stmt = (
            select(Tracking)
            .join(Resource, Resource.id == Tracking.resource_id)
            .where(Resource.service_id == service_id)
            .order_by(Tracking.year, Tracking.period, Tracking.resource_id, Tracking.content_type)
        )
        return [self._to_tracking(t) for t in self.session.scalars(stmt)]
