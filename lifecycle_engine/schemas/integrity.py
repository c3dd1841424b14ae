"""Data integrity Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, computed_field


class IssueType(str, Enum):
    CONFLICT = "CONFLICT"
    INCONSISTENCY = "INCONSISTENCY"
    MISSING_DATA = "MISSING_DATA"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"


class IssueSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


BLOCKING_SEVERITIES = frozenset({IssueSeverity.HIGH, IssueSeverity.CRITICAL})


class FixCode(str, Enum):
    """Mechanical corrections the checker knows how to apply."""

    CLAMP_ADULTS = "clamp_adults"
    CLAMP_DEPOSIT = "clamp_deposit"
    SYNC_STATUS_HISTORY = "sync_status_history"


class DataIntegrityIssue(BaseModel):
    """One failed integrity check."""

    type: IssueType
    severity: IssueSeverity
    description: str
    affected_fields: list[str] = Field(default_factory=list)
    suggested_fix: str | None = None
    auto_fixable: bool = False
    fix_code: FixCode | None = None
    related_records: list[str] = Field(default_factory=list)


class DataIntegrityResult(BaseModel):
    """Schema for a data integrity check."""

    issues: list[DataIntegrityIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    reservation_found: bool = True

    @computed_field
    @property
    def is_valid(self) -> bool:
        return not any(issue.severity in BLOCKING_SEVERITIES for issue in self.issues)

    @computed_field
    @property
    def auto_fixable(self) -> list[DataIntegrityIssue]:
        return [issue for issue in self.issues if issue.auto_fixable]


class AutoFixRequest(BaseModel):
    """Schema for applying auto-fixes to a reservation."""

    issues: list[DataIntegrityIssue]


class AutoFixResult(BaseModel):
    """Schema for the auto-fix outcome."""

    fixed: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class DayTransitionResult(BaseModel):
    """Departures that block closing a property's previous operational day."""

    property_id: str
    day_start: datetime
    day_end: datetime
    issues: list[DataIntegrityIssue] = Field(default_factory=list)

    @computed_field
    @property
    def can_transition(self) -> bool:
        return not self.issues
