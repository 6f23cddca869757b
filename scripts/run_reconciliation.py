#!/usr/bin/env python3
"""
Run tracking reconciliation jobs against the configured database.

Each operation runs as a recorded job (batch_jobs table).  The final run
summaries are printed to stdout as JSON; structured logs go to stderr.

Usage:
    python3 scripts/run_reconciliation.py <operation> [options]

Operations:
    create          Create trackings for the current fiscal period
    backfill        Create trackings missing for any started period
    fix-schedules   Repair stored schedule labels
    all             create, then backfill, then fix-schedules

Examples:
    # Nightly back-fill with the default configuration
    python3 scripts/run_reconciliation.py backfill

    # Replay a run as of a fixed date on a local SQLite file
    python3 scripts/run_reconciliation.py create --as-of 2025-06-15 \\
        --database-url sqlite:///tracking.db --create-tables

Exit status:
    0  every run COMPLETED, PARTIALLY_COMPLETED or CANCELLED
    1  at least one run FAILED
    2  configuration error, or a run of the same type is already RUNNING
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import threading
from dataclasses import replace
from datetime import date
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

OPERATIONS = {
    "create": "trackings.create_current_period",
    "backfill": "trackings.backfill_missing",
    "fix-schedules": "trackings.fix_schedule_labels",
}


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create, back-fill and repair trackings.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "operation",
        choices=[*OPERATIONS, "all"],
        help="Reconciliation operation to run.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML configuration file (default: built-in defaults, or $TRACKING_CONFIG).",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Override the configured database URL.",
    )
    parser.add_argument(
        "--as-of",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Run as if today were this date (YYYY-MM-DD). Default: today.",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before running.",
    )
    return parser.parse_args(argv)


def _install_stop_handlers(stop_event: threading.Event) -> None:
    """SIGINT/SIGTERM request cancellation between units."""

    def _handler(signum, frame):
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from tracking_batch.domain.types import BatchJobStatus
    from tracking_batch.orchestrator import BatchOrchestrator
    from tracking_config import get_active_config
    from tracking_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from tracking_kernel.domain.clock import DeterministicClock, SystemClock
    from tracking_kernel.exceptions import (
        ConfigError,
        JobAlreadyRunningError,
        JobIdempotencyError,
    )
    from tracking_kernel.logging_config import configure_logging, get_logger

    try:
        config = get_active_config(args.config)
    except ConfigError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2
    if args.database_url:
        config = replace(config, database_url=args.database_url)

    configure_logging(level=config.log_level)
    logger = get_logger("scripts.run_reconciliation")

    init_engine_from_url(config.database_url)
    if args.create_tables:
        create_tables()

    clock = DeterministicClock.on(args.as_of) if args.as_of else SystemClock()
    stop_event = threading.Event()
    _install_stop_handlers(stop_event)

    operations = list(OPERATIONS) if args.operation == "all" else [args.operation]
    results = []
    exit_code = 0

    for name in operations:
        if stop_event.is_set():
            break
        task_type = OPERATIONS[name]
        try:
            with session_scope() as session:
                orchestrator = BatchOrchestrator.from_session(session, config=config, clock=clock)
                result = orchestrator.run(task_type, stop_event=stop_event)
        except (JobAlreadyRunningError, JobIdempotencyError) as exc:
            logger.error(
                "reconciliation_not_started",
                extra={"task_type": task_type, "error": str(exc)},
            )
            results.append({"operation": name, "status": "not_started", "error": str(exc)})
            exit_code = max(exit_code, 2)
            continue

        results.append({
            "operation": name,
            "job_id": str(result.job_id),
            "status": result.status.value,
            "duration_ms": result.duration_ms,
            "error_summary": result.error_summary,
            "summary": result.summary.to_dict(config.top_skip_reasons) if result.summary else None,
        })
        if result.status is BatchJobStatus.FAILED:
            exit_code = max(exit_code, 1)

    print(json.dumps(
        {"as_of": clock.today().isoformat(), "config_checksum": config.checksum, "runs": results},
        indent=2,
        default=str,
    ))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
