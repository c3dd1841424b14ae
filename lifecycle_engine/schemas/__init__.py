"""Pydantic schemas for API validation."""

from lifecycle_engine.schemas.automation import (
    DayTransitionRequest,
    IntegrityOutcome,
    SweepAction,
    SweepOutcome,
    SweepReport,
    SweepRequest,
)
from lifecycle_engine.schemas.integrity import (
    AutoFixRequest,
    AutoFixResult,
    DataIntegrityIssue,
    DataIntegrityResult,
    DayTransitionResult,
    FixCode,
    IssueSeverity,
    IssueType,
)
from lifecycle_engine.schemas.reservation import (
    ReservationRecord,
    RoomRef,
    StatusHistoryEntry,
)
from lifecycle_engine.schemas.transition import (
    ReservationSnapshot,
    RuleTestRequest,
    StatusResolveRequest,
    StatusResolveResponse,
    StatusTransitionContext,
    TransitionListResponse,
    TransitionValidateRequest,
    ValidationResult,
)

__all__ = [
    # Transition
    "ReservationSnapshot",
    "StatusTransitionContext",
    "ValidationResult",
    "TransitionValidateRequest",
    "TransitionListResponse",
    "StatusResolveRequest",
    "StatusResolveResponse",
    "RuleTestRequest",
    # Integrity
    "IssueType",
    "IssueSeverity",
    "FixCode",
    "DataIntegrityIssue",
    "DataIntegrityResult",
    "AutoFixRequest",
    "AutoFixResult",
    "DayTransitionResult",
    # Reservation
    "RoomRef",
    "ReservationRecord",
    "StatusHistoryEntry",
    # Automation
    "SweepAction",
    "SweepRequest",
    "SweepOutcome",
    "IntegrityOutcome",
    "SweepReport",
    "DayTransitionRequest",
]
