"""Read-only selectors returning DTOs."""

from tracking_kernel.selectors.base import BaseSelector
from tracking_kernel.selectors.reconciliation_selector import ReconciliationSelector

__all__ = ["BaseSelector", "ReconciliationSelector"]
