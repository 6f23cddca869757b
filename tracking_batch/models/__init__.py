"""ORM models for the job runner."""

from tracking_batch.models.batch import BatchJobModel

__all__ = ["BatchJobModel"]
