"""
ReconciliationTask protocol and TaskRegistry.

Contract:
    ``ReconciliationTask`` defines the interface every job task implements.
    ``TaskRegistry`` stores registered tasks keyed by ``task_type``.

Architecture:
    tracking_batch/tasks.  Tasks receive a ready-made reconciler; they never
    open sessions or manage transactions.

Invariants enforced:
    - One task per ``task_type`` string.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tracking_reconcile.reconciler import TrackingReconciler
    from tracking_reconcile.summary import RunSummary


@runtime_checkable
class ReconciliationTask(Protocol):
    """Protocol for job task implementations.

    Contract:
        - ``task_type``: unique string key registered in TaskRegistry.
        - ``description``: human-readable label for logs and job records.
        - ``run()``: runs one reconciliation entry point and returns its
          summary, or raises ReconciliationAbortedError.

    Non-goals:
        - Does NOT manage transactions -- the store's unit of work does.
        - Does NOT record job state -- the executor does.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def run(self, reconciler: TrackingReconciler) -> RunSummary: ...


class TaskRegistry:
    """Registry mapping task_type strings to task implementations.

    Contract:
        - ``register()`` adds a task; raises ValueError on duplicate.
        - ``get()`` retrieves by task_type; raises KeyError if missing.
        - ``list_tasks()`` returns all registered task_type strings.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, ReconciliationTask] = {}

    def register(self, task: ReconciliationTask) -> None:
        """Register a task implementation.

        Raises:
            ValueError: If a task with the same task_type is already registered.
        """
        if task.task_type in self._tasks:
            raise ValueError(
                f"Task type '{task.task_type}' is already registered"
            )
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> ReconciliationTask:
        """Retrieve a registered task by task_type.

        Raises:
            KeyError: If no task is registered for the given task_type.
        """
        try:
            return self._tasks[task_type]
        except KeyError:
            raise KeyError(
                f"No task registered for type '{task_type}'. "
                f"Available: {sorted(self._tasks.keys())}"
            ) from None

    def list_tasks(self) -> tuple[str, ...]:
        """Return all registered task_type strings, sorted."""
        return tuple(sorted(self._tasks.keys()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._tasks
