"""Celery background tasks for reservation automation."""

import asyncio
import logging

from celery import shared_task

from lifecycle_engine.config import settings
from lifecycle_engine.database import build_engine, build_session_factory
from lifecycle_engine.services.engine import LifecycleEngine

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


async def _run_sweep(cleanup_type: str, dry_run: bool = False, property_id: str | None = None) -> dict:
    # One engine per run: pooled connections must not outlive the event loop
    db_engine = build_engine(settings.database_url)
    try:
        engine = LifecycleEngine.from_session_factory(settings, build_session_factory(db_engine))
        report = await engine.sweep.run(
            property_id=property_id,
            dry_run=dry_run,
            cleanup_type=cleanup_type,
        )
    finally:
        await db_engine.dispose()
    return report.model_dump(mode="json", exclude={"outcomes", "integrity"})


@shared_task(bind=True, max_retries=3)
def sweep_stale_reservations(self, dry_run: bool = False, property_id: str | None = None):
    """Cancel stale pending reservations, mark no-shows and check out overdue stays.

    Runs every `sweep_interval_minutes`. Every change is validated first.
    """
    try:
        summary = run_async(_run_sweep("stale-reservations", dry_run, property_id))
        return {"status": "success", "summary": summary}
    except Exception as exc:
        logger.error(f"Reservation sweep failed: {exc}")
        raise self.retry(exc=exc, countdown=300)


@shared_task(bind=True, max_retries=3)
def sweep_integrity(self, dry_run: bool = False, property_id: str | None = None):
    """Check active reservations and apply auto-fixable corrections."""
    try:
        summary = run_async(_run_sweep("integrity", dry_run, property_id))
        return {"status": "success", "summary": summary}
    except Exception as exc:
        logger.error(f"Integrity sweep failed: {exc}")
        raise self.retry(exc=exc, countdown=300)
