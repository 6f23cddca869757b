"""
tracking_batch -- Job runner for tracking reconciliation.

Wraps the three reconciliation entry points (current-period creation,
back-fill, schedule-label repair) in persistent jobs with idempotent
submission, single-flight execution per task type and a recorded run
summary.

Architecture:
    tracking_batch/ is a top-level package.  Nothing in tracking_kernel/
    or tracking_reconcile/ imports from tracking_batch.
"""
