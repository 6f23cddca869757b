#!/usr/bin/env python3
"""
Seed the database with a small demo dataset for reconciliation runs.

Drops all tables, recreates them, and inserts:
  - two customers, each with a monthly service ("2024 - 2025", fiscal start
    2024-09-01) and a quarterly service ("2025 - 2026", fiscal start
    2025-09-01);
  - members and resources with open-ended, bounded and split activity
    periods, plus one dismissed resource that reconciliation ignores;
  - one tracking with a stale schedule label for fix-schedules to repair.

Usage:
    python3 scripts/seed_data.py [--database-url URL]

Then, for example:
    python3 scripts/run_reconciliation.py all --as-of 2025-10-15
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DB_URL = "sqlite:///tracking.db"
MONTHLY_FY_START = date(2024, 9, 1)
QUARTERLY_FY_START = date(2025, 9, 1)

CUSTOMERS = [
    ("Fundación Odec", "G12345678", "CRM-0001"),
    ("Colegio San Martín", "R87654321", "CRM-0002"),
]

# (full_name, email, ministry, periods as (start, end|None), proposal_status)
MEMBERS = [
    ("Ana López", "ana.lopez@example.org", "Education",
     [(date(2024, 9, 1), None)], "Approved"),
    ("Bruno Díaz", "bruno.diaz@example.org", "Education",
     [(date(2024, 10, 15), date(2025, 2, 28))], "Approved"),
    ("Carla Ruiz", "carla.ruiz@example.org", "Labour",
     [(date(2024, 9, 1), date(2024, 11, 30)), (date(2025, 3, 1), None)], "Pending"),
    ("David Gil", "david.gil@example.org", "Labour",
     [(date(2024, 9, 1), None)], "Dismissal"),
]


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed demo reconciliation data.")
    parser.add_argument(
        "--database-url",
        default=DB_URL,
        help=f"Target database (default: {DB_URL}).",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    logging.disable(logging.CRITICAL)

    from tracking_config.schema import DEFAULT_SYSTEM_ACTOR_ID
    from tracking_kernel.db.engine import (
        create_tables,
        drop_tables,
        get_session,
        init_engine_from_url,
    )
    from tracking_kernel.domain.types import ContentType, ProposalStatus, TrackingStatus
    from tracking_kernel.models import (
        ActivityPeriod,
        Customer,
        Member,
        Resource,
        Service,
        Tracking,
    )

    actor_id = DEFAULT_SYSTEM_ACTOR_ID

    # -----------------------------------------------------------------
    # 1. Connect + reset
    # -----------------------------------------------------------------
    print()
    print(f"  [1/4] Connecting to {args.database_url}...")
    try:
        init_engine_from_url(args.database_url, echo=False)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print("  [2/4] Dropping old tables and recreating schema...")
    drop_tables()
    create_tables()

    session = get_session()

    # -----------------------------------------------------------------
    # 2. Members
    # -----------------------------------------------------------------
    print(f"  [3/4] Creating {len(MEMBERS)} members and {len(CUSTOMERS)} customers...")
    members = []
    for full_name, email, ministry, _periods, _status in MEMBERS:
        member = Member(
            full_name=full_name,
            email=email,
            ministry_name=ministry,
            created_by_id=actor_id,
        )
        session.add(member)
        members.append(member)
    session.flush()

    # -----------------------------------------------------------------
    # 3. Customers, services, resources
    # -----------------------------------------------------------------
    stale_resource = None
    resource_count = 0
    for name, cif, crm_id in CUSTOMERS:
        customer = Customer(name=name, cif=cif, crm_account_id=crm_id, created_by_id=actor_id)
        session.add(customer)
        session.flush()

        for description, fiscal_start, quarterly in (
            ("2024 - 2025", MONTHLY_FY_START, False),
            ("2025 - 2026", QUARTERLY_FY_START, True),
        ):
            service = Service(
                description=description,
                fiscal_year_start=fiscal_start,
                quarterly_evidence=quarterly,
                customer_id=customer.id,
                created_by_id=actor_id,
            )
            session.add(service)
            session.flush()

            offset = fiscal_start.year - MONTHLY_FY_START.year
            for member, (_n, _e, _m, periods, status) in zip(members, MEMBERS):
                resource = Resource(
                    proposal_status=ProposalStatus(status).value,
                    member_id=member.id,
                    service_id=service.id,
                    created_by_id=actor_id,
                )
                for number, (start, end) in enumerate(periods, start=1):
                    resource.activity_periods.append(ActivityPeriod(
                        number=number,
                        start_date=start.replace(year=start.year + offset),
                        end_date=end.replace(year=end.year + offset) if end else None,
                        created_by_id=actor_id,
                    ))
                session.add(resource)
                resource_count += 1
                if stale_resource is None and quarterly:
                    stale_resource = resource
            session.flush()

    # -----------------------------------------------------------------
    # 4. One stale label for fix-schedules
    # -----------------------------------------------------------------
    print("  [4/4] Inserting one tracking with a stale schedule label...")
    session.add(Tracking(
        resource_id=stale_resource.id,
        year=2025,
        period=1,
        content_type=ContentType.EVIDENCE.value,
        approve_status=TrackingStatus.DRAFT.value,
        schedule="9/2025",
        created_by_id=actor_id,
    ))

    session.commit()
    session.close()

    print()
    print(f"  Seeded {len(CUSTOMERS)} customers, {len(CUSTOMERS) * 2} services, "
          f"{resource_count} resources.")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
