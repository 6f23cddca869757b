"""
Configuration Loader (``tracking_config.loader``).

Responsibility
--------------
Loads YAML configuration files, layers them over the packaged defaults
and environment overrides, and parses the result into a frozen
``ReconciliationConfig``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on kernel domain
types only.  Runtime callers use ``tracking_config.get_active_config()``.

Invariants enforced
-------------------
* Resolution order: packaged defaults -> file -> environment.
* Every invalid value raises ``ConfigError`` naming the field; unknown
  keys are rejected rather than ignored.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  effective configuration.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid or unknown keys  -> ``ConfigError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from tracking_config.schema import ReconciliationConfig
from tracking_kernel.domain.types import ContentType, ProposalStatus
from tracking_kernel.exceptions import ConfigError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

ENV_CONFIG_PATH = "TRACKING_CONFIG"
ENV_DATABASE_URL = "TRACKING_DATABASE_URL"
ENV_LOG_LEVEL = "TRACKING_LOG_LEVEL"

_KNOWN_KEYS = frozenset({
    "database_url",
    "excluded_statuses",
    "content_types",
    "update_batch_size",
    "commit_per_unit",
    "store_retry_attempts",
    "top_skip_reasons",
    "log_level",
    "system_actor_id",
})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(str(path), "top-level YAML value must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _positive_int(data: Mapping[str, Any], key: str) -> int:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(key, f"must be a positive integer, got {value!r}")
    return value


def _enum_tuple(data: Mapping[str, Any], key: str, enum_cls) -> tuple:
    raw = data[key]
    if not isinstance(raw, (list, tuple)):
        raise ConfigError(key, f"must be a list, got {raw!r}")
    try:
        return tuple(enum_cls(item) for item in raw)
    except ValueError as exc:
        valid = [m.value for m in enum_cls]
        raise ConfigError(key, f"{exc}; valid values: {valid}") from exc


def parse_config(data: Mapping[str, Any]) -> ReconciliationConfig:
    """
    Build a ``ReconciliationConfig`` from a fully merged mapping.

    Raises:
        ConfigError: on unknown keys or invalid values.
    """
    unknown = sorted(set(data) - _KNOWN_KEYS)
    if unknown:
        raise ConfigError(unknown[0], f"unknown configuration key(s): {unknown}")

    database_url = data["database_url"]
    if not isinstance(database_url, str) or not database_url:
        raise ConfigError("database_url", "must be a non-empty string")

    content_types = _enum_tuple(data, "content_types", ContentType)
    if not content_types:
        raise ConfigError("content_types", "at least one content type is required")

    log_level = str(data["log_level"]).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError("log_level", f"unknown level {data['log_level']!r}")

    commit_per_unit = data["commit_per_unit"]
    if not isinstance(commit_per_unit, bool):
        raise ConfigError("commit_per_unit", f"must be a boolean, got {commit_per_unit!r}")

    try:
        actor_id = UUID(str(data["system_actor_id"]))
    except ValueError as exc:
        raise ConfigError("system_actor_id", str(exc)) from exc

    config = ReconciliationConfig(
        database_url=database_url,
        excluded_statuses=_enum_tuple(data, "excluded_statuses", ProposalStatus),
        content_types=content_types,
        update_batch_size=_positive_int(data, "update_batch_size"),
        commit_per_unit=commit_per_unit,
        store_retry_attempts=_positive_int(data, "store_retry_attempts"),
        top_skip_reasons=_positive_int(data, "top_skip_reasons"),
        log_level=log_level,
        system_actor_id=actor_id,
    )
    return replace(config, checksum=compute_checksum(config.to_dict()))


def load_config(
    path: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> ReconciliationConfig:
    """
    Resolve the effective configuration.

    ``path`` wins over ``TRACKING_CONFIG``; environment values for the
    database URL and log level win over both files.
    """
    env = os.environ if env is None else env
    merged = load_yaml_file(DEFAULTS_PATH)

    file_path = path or env.get(ENV_CONFIG_PATH)
    if file_path:
        merged.update(load_yaml_file(Path(file_path)))

    if env.get(ENV_DATABASE_URL):
        merged["database_url"] = env[ENV_DATABASE_URL]
    if env.get(ENV_LOG_LEVEL):
        merged["log_level"] = env[ENV_LOG_LEVEL]

    return parse_config(merged)
