"""SQLAlchemy ORM models for the tracking kernel."""

from tracking_kernel.models.customer import Customer, Member
from tracking_kernel.models.resource import ActivityPeriod, Resource
from tracking_kernel.models.service import Service
from tracking_kernel.models.tracking import Tracking

__all__ = [
    "ActivityPeriod",
    "Customer",
    "Member",
    "Resource",
    "Service",
    "Tracking",
]
