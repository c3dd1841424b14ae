"""Status transition endpoints (validation only; nothing is applied here)."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends

from lifecycle_engine.api.deps import get_engine, require_reservation
from lifecycle_engine.domain.auto_status import resolve_automatic_status
from lifecycle_engine.domain.reservation_state import ReservationStatus
from lifecycle_engine.schemas.integrity import AutoFixRequest, AutoFixResult
from lifecycle_engine.schemas.reservation import ReservationRecord
from lifecycle_engine.schemas.transition import (
    StatusResolveRequest,
    StatusResolveResponse,
    StatusTransitionContext,
    TransitionListResponse,
    TransitionValidateRequest,
    ValidationResult,
)
from lifecycle_engine.services.engine import LifecycleEngine

router = APIRouter()


@router.get("/status/transitions/{status}", response_model=TransitionListResponse)
async def list_transitions(
    status: ReservationStatus,
    engine: Annotated[LifecycleEngine, Depends(get_engine)],
) -> TransitionListResponse:
    """Statuses reachable from `status`."""
    return TransitionListResponse(
        status=status,
        allowed_transitions=sorted(engine.graph.allowed_targets(status), key=lambda s: s.value),
        is_terminal=engine.graph.is_terminal(status),
    )


@router.post("/status/resolve", response_model=StatusResolveResponse)
async def resolve_status(data: StatusResolveRequest) -> StatusResolveResponse:
    """Infer the status a reservation should have from payment and schedule."""
    resolved = resolve_automatic_status(
        data.current_status,
        data.payment_percentage,
        data.check_in,
        data.check_out,
        data.now or datetime.now(UTC),
    )
    return StatusResolveResponse(
        current_status=data.current_status,
        resolved_status=resolved,
        changed=resolved != data.current_status,
    )


@router.post("/reservations/{reservation_id}/status/validate", response_model=ValidationResult)
async def validate_transition(
    data: TransitionValidateRequest,
    reservation: Annotated[ReservationRecord, Depends(require_reservation)],
    engine: Annotated[LifecycleEngine, Depends(get_engine)],
) -> ValidationResult:
    """Validate a status change for a stored reservation.

    A valid result with `requires_approval` must go to the approval
    workflow instead of being applied.
    """
    context = StatusTransitionContext(
        reservation_id=reservation.id,
        current_status=reservation.status,
        new_status=data.new_status,
        reason=data.reason,
        user_id=data.user_id,
        user_role=data.user_role,
        property_id=data.property_id,
        organization_id=data.organization_id,
        is_automatic=data.is_automatic,
        reservation=reservation.to_snapshot(),
        now=data.now or datetime.now(UTC),
    )
    return await engine.validator.validate(context)


@router.post("/reservations/{reservation_id}/integrity/auto-fix", response_model=AutoFixResult)
async def auto_fix(
    data: AutoFixRequest,
    reservation: Annotated[ReservationRecord, Depends(require_reservation)],
    engine: Annotated[LifecycleEngine, Depends(get_engine)],
) -> AutoFixResult:
    """Apply the mechanical fixes of the given auto-fixable issues."""
    return await engine.integrity.auto_fix_issues(reservation.id, data.issues)
