"""
Tracking reconciliation engine.

Creates current-period trackings, back-fills historical gaps and repairs
schedule labels, reporting every run as a ``RunSummary``.
"""

from tracking_reconcile.reconciler import (
    OPERATION_BACKFILL,
    OPERATION_CREATE,
    OPERATION_FIX_SCHEDULES,
    TrackingReconciler,
)
from tracking_reconcile.store import SqlTrackingStore, TrackingStore
from tracking_reconcile.summary import (
    RunStatsAggregator,
    RunStatus,
    RunSummary,
    SkipReason,
    UnitError,
    UnitLevel,
)

__all__ = [
    "OPERATION_BACKFILL",
    "OPERATION_CREATE",
    "OPERATION_FIX_SCHEDULES",
    "RunStatsAggregator",
    "RunStatus",
    "RunSummary",
    "SkipReason",
    "SqlTrackingStore",
    "TrackingReconciler",
    "TrackingStore",
    "UnitError",
    "UnitLevel",
]
