"""Automation sweep Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from lifecycle_engine.domain.reservation_state import ReservationStatus

CleanupType = Literal["stale-reservations", "integrity", "full"]


class SweepAction(str, Enum):
    APPLIED = "applied"
    WOULD_APPLY = "would_apply"
    APPROVAL_REQUESTED = "approval_requested"
    SKIPPED = "skipped"
    FAILED = "failed"


class SweepRequest(BaseModel):
    """Schema for triggering a sweep."""

    property_id: str | None = None
    dry_run: bool = False
    cleanup_type: CleanupType = "stale-reservations"
    now: datetime | None = None


class SweepOutcome(BaseModel):
    """What the sweep did with one reservation."""

    reservation_id: str
    current_status: ReservationStatus
    target_status: ReservationStatus
    action: SweepAction
    reason: str
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class IntegrityOutcome(BaseModel):
    reservation_id: str
    issues: int
    auto_fixable: int
    fixed: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class SweepReport(BaseModel):
    """Schema for the sweep summary."""

    now: datetime
    dry_run: bool
    cleanup_type: CleanupType
    examined: int = 0
    applied: int = 0
    would_apply: int = 0
    approvals_requested: int = 0
    skipped: int = 0
    failed: int = 0
    outcomes: list[SweepOutcome] = Field(default_factory=list)
    integrity: list[IntegrityOutcome] = Field(default_factory=list)


class DayTransitionRequest(BaseModel):
    """Schema for checking a property's day transition.

    `day_start` defaults to the start of the current operational day.
    """

    property_id: str
    day_start: datetime | None = None
