from tracking_batch.services.executor import BatchExecutor

__all__ = ["BatchExecutor"]
