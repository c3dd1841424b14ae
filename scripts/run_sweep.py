#!/usr/bin/env python3
"""
Run the reservation sweep once from the command line.

Usage:
    python scripts/run_sweep.py --dry-run
    python scripts/run_sweep.py --type full --property <property-id>
"""

import argparse
import asyncio
import json

from lifecycle_engine.config import settings
from lifecycle_engine.database import async_session, close_db
from lifecycle_engine.services.engine import LifecycleEngine


async def run_sweep(cleanup_type: str, dry_run: bool, property_id: str | None) -> None:
    """Run one sweep and print the report."""
    engine = LifecycleEngine.from_session_factory(settings, async_session)
    try:
        report = await engine.sweep.run(
            property_id=property_id,
            dry_run=dry_run,
            cleanup_type=cleanup_type,
        )
    finally:
        await close_db()

    print(json.dumps(report.model_dump(mode="json"), indent=2))
    mode = "DRY RUN" if dry_run else "APPLIED"
    print(
        f"\n{mode}: examined={report.examined} applied={report.applied} "
        f"would_apply={report.would_apply} approvals={report.approvals_requested} "
        f"skipped={report.skipped} failed={report.failed}"
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the reservation cleanup sweep")
    parser.add_argument(
        "--type",
        dest="cleanup_type",
        choices=["stale-reservations", "integrity", "full"],
        default="stale-reservations",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    parser.add_argument("--property", dest="property_id", default=None)
    args = parser.parse_args()

    asyncio.run(run_sweep(args.cleanup_type, args.dry_run, args.property_id))


if __name__ == "__main__":
    main()
