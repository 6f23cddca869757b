"""Tracking reconciliation tasks: current period, backfill, label repair."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tracking_reconcile.reconciler import TrackingReconciler
    from tracking_reconcile.summary import RunSummary

TASK_CREATE_CURRENT_PERIOD = "trackings.create_current_period"
TASK_BACKFILL_MISSING = "trackings.backfill_missing"
TASK_FIX_SCHEDULE_LABELS = "trackings.fix_schedule_labels"


class CreateCurrentPeriodTask:
    """Create Draft trackings for the current fiscal period."""

    @property
    def task_type(self) -> str:
        return TASK_CREATE_CURRENT_PERIOD

    @property
    def description(self) -> str:
        return "Create trackings for the current period of every customer"

    def run(self, reconciler: TrackingReconciler) -> RunSummary:
        return reconciler.create_current_period_trackings()


class BackfillMissingTask:
    """Create trackings missing for any started period of any service."""

    @property
    def task_type(self) -> str:
        return TASK_BACKFILL_MISSING

    @property
    def description(self) -> str:
        return "Back-fill missing trackings for all started fiscal periods"

    def run(self, reconciler: TrackingReconciler) -> RunSummary:
        return reconciler.backfill_missing_trackings()


class FixScheduleLabelsTask:
    """Recompute and correct stored schedule labels."""

    @property
    def task_type(self) -> str:
        return TASK_FIX_SCHEDULE_LABELS

    @property
    def description(self) -> str:
        return "Repair tracking schedule labels"

    def run(self, reconciler: TrackingReconciler) -> RunSummary:
        return reconciler.fix_schedule_labels()
