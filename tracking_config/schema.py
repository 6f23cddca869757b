"""
ReconciliationConfig schema.

The frozen runtime configuration of reconciliation runs and the job
runner.  YAML documents are parsed into this type by the loader.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from tracking_kernel.domain.types import (
    ALL_CONTENT_TYPES,
    DEFAULT_EXCLUDED_STATUSES,
    ContentType,
    ProposalStatus,
)

# Actor recorded on rows written by unattended runs
DEFAULT_SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


@dataclass(frozen=True)
class ReconciliationConfig:
    """Effective configuration for one process."""

    database_url: str = "sqlite:///tracking.db"
    excluded_statuses: tuple[ProposalStatus, ...] = tuple(
        sorted(DEFAULT_EXCLUDED_STATUSES, key=lambda s: s.value)
    )
    content_types: tuple[ContentType, ...] = ALL_CONTENT_TYPES
    update_batch_size: int = 100
    commit_per_unit: bool = True
    store_retry_attempts: int = 3
    top_skip_reasons: int = 5
    log_level: str = "INFO"
    system_actor_id: UUID = DEFAULT_SYSTEM_ACTOR_ID
    checksum: str = field(default="", compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Plain representation, used for checksums and logging."""
        return {
            "database_url": self.database_url,
            "excluded_statuses": [s.value for s in self.excluded_statuses],
            "content_types": [c.value for c in self.content_types],
            "update_batch_size": self.update_batch_size,
            "commit_per_unit": self.commit_per_unit,
            "store_retry_attempts": self.store_retry_attempts,
            "top_skip_reasons": self.top_skip_reasons,
            "log_level": self.log_level,
            "system_actor_id": str(self.system_actor_id),
        }
