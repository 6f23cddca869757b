"""Flush-only write services."""

from tracking_kernel.services.base import BaseService
from tracking_kernel.services.tracking_writer import TrackingWriter

__all__ = ["BaseService", "TrackingWriter"]
