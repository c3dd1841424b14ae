"""Automation endpoints."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends

from lifecycle_engine.api.deps import get_engine
from lifecycle_engine.schemas.automation import DayTransitionRequest, SweepReport, SweepRequest
from lifecycle_engine.schemas.integrity import DayTransitionResult
from lifecycle_engine.services.engine import LifecycleEngine
from lifecycle_engine.services.integrity_service import operational_day_start

router = APIRouter()


@router.post("/sweep", response_model=SweepReport)
async def run_sweep(
    data: SweepRequest,
    engine: Annotated[LifecycleEngine, Depends(get_engine)],
) -> SweepReport:
    """Run the cleanup sweep now. Use `dry_run` to preview changes."""
    return await engine.sweep.run(
        now=data.now,
        property_id=data.property_id,
        dry_run=data.dry_run,
        cleanup_type=data.cleanup_type,
    )


@router.post("/day-transition", response_model=DayTransitionResult)
async def check_day_transition(
    data: DayTransitionRequest,
    engine: Annotated[LifecycleEngine, Depends(get_engine)],
) -> DayTransitionResult:
    """List the departures that block opening the property's next operational day."""
    day_start = data.day_start or operational_day_start(
        datetime.now(UTC), engine.settings.operational_day_start_hour
    )
    return await engine.integrity.check_day_transition(data.property_id, day_start)
