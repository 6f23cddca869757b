"""Job task protocol, registry and the tracking tasks."""

from tracking_batch.tasks.base import ReconciliationTask, TaskRegistry
from tracking_batch.tasks.tracking_tasks import (
    TASK_BACKFILL_MISSING,
    TASK_CREATE_CURRENT_PERIOD,
    TASK_FIX_SCHEDULE_LABELS,
    BackfillMissingTask,
    CreateCurrentPeriodTask,
    FixScheduleLabelsTask,
)

__all__ = [
    "TASK_BACKFILL_MISSING",
    "TASK_CREATE_CURRENT_PERIOD",
    "TASK_FIX_SCHEDULE_LABELS",
    "BackfillMissingTask",
    "CreateCurrentPeriodTask",
    "FixScheduleLabelsTask",
    "ReconciliationTask",
    "TaskRegistry",
]
