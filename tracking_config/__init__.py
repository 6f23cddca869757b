"""
tracking_config -- single public entrypoint for reconciliation configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  Scripts and the job runner call it once at startup and
    pass the frozen ``ReconciliationConfig`` down.

Failure modes:
    - ``ConfigError`` on invalid values.
    - ``FileNotFoundError`` when an explicit configuration file is missing.
"""

from __future__ import annotations

from pathlib import Path

from tracking_config.loader import compute_checksum, load_config
from tracking_config.schema import ReconciliationConfig
from tracking_kernel.logging_config import get_logger

_logger = get_logger("config")


def get_active_config(path: Path | str | None = None) -> ReconciliationConfig:
    """Load the effective configuration and log its identity."""
    config = load_config(path)
    _logger.info(
        "tracking_config_loaded",
        extra={
            "checksum": config.checksum,
            "source": str(path) if path else "defaults/env",
            "excluded_statuses": [s.value for s in config.excluded_statuses],
            "content_types": [c.value for c in config.content_types],
        },
    )
    return config


__all__ = [
    "ReconciliationConfig",
    "compute_checksum",
    "get_active_config",
    "load_config",
]
