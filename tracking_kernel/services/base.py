"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every write
    service in the kernel.  Services persist via ``session.flush()`` and
    never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit or rollback it.  The caller (the tracking store's
      unit of work, or a test) owns commit and rollback.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from tracking_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()`` on the caller's transaction.

    Non-goals:
        - Does NOT provide read methods -- those belong in
          ``tracking_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
