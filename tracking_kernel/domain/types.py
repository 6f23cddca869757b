"""
Domain types -- enums and immutable DTOs crossing the persistence boundary.

Selectors convert ORM rows into these frozen dataclasses so the reconciler
never holds a live ORM object; writers accept ``NewTracking`` values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from uuid import UUID

from tracking_kernel.domain.coverage import ActivityInterval


class ContentType(str, Enum):
    """Kinds of compliance record tracked per period."""

    EVIDENCE = "Evidence"
    TRAINING = "Training"
    ABSENCE = "Absence"


ALL_CONTENT_TYPES: tuple[ContentType, ...] = tuple(ContentType)


class TrackingStatus(str, Enum):
    """Approval state of a tracking.  The engine only ever writes DRAFT."""

    DRAFT = "Draft"
    SENT = "Sent"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    NOT_NECESSARY = "NotNecessary"


class ProposalStatus(str, Enum):
    """Lifecycle status of a Resource assignment."""

    CREATED = "Created"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    DISMISSAL = "Dismissal"
    DISMISSAL_NOTIFICATION = "DismissalNotification"
    APPROVED_SDII = "ApprovedSDII"
    APPROVED_100_150 = "Approved100_150"


DEFAULT_EXCLUDED_STATUSES: frozenset[ProposalStatus] = frozenset({
    ProposalStatus.REJECTED,
    ProposalStatus.DISMISSAL,
})


@dataclass(frozen=True)
class CustomerInfo:
    id: UUID
    name: str


@dataclass(frozen=True)
class ServiceInfo:
    """A customer contract and its fiscal calendar."""

    id: UUID
    customer_id: UUID
    description: str
    fiscal_year_start: date
    quarterly_evidence: bool


@dataclass(frozen=True)
class ActivityPeriodInfo:
    """Stored activity period, as read.  Not yet validated."""

    number: int
    start_date: date
    end_date: date | None = None


@dataclass(frozen=True)
class ResourceInfo:
    """An assignment with its activity periods in sequence order."""

    id: UUID
    service_id: UUID
    proposal_status: ProposalStatus
    member_name: str
    activity_periods: tuple[ActivityPeriodInfo, ...] = field(default=())

    def intervals(self) -> tuple[ActivityInterval, ...]:
        """Validated intervals.

        Raises:
            InvalidActivityPeriodError: a period ends before it starts.
        """
        return tuple(
            ActivityInterval.from_dates(p.number, p.start_date, p.end_date)
            for p in sorted(self.activity_periods, key=lambda p: p.number)
        )


@dataclass(frozen=True)
class TrackingKey:
    """Identity tuple of a tracking: at most one row per key."""

    resource_id: UUID
    year: int
    period: int
    content_type: ContentType


@dataclass(frozen=True)
class TrackingInfo:
    id: UUID
    resource_id: UUID
    year: int
    period: int
    content_type: ContentType
    approve_status: TrackingStatus
    schedule: str | None

    @property
    def key(self) -> TrackingKey:
        return TrackingKey(self.resource_id, self.year, self.period, self.content_type)


@dataclass(frozen=True)
class NewTracking:
    """A tracking to insert."""

    resource_id: UUID
    year: int
    period: int
    content_type: ContentType
    schedule: str
    approve_status: TrackingStatus = TrackingStatus.DRAFT

    @property
    def key(self) -> TrackingKey:
        return TrackingKey(self.resource_id, self.year, self.period, self.content_type)
