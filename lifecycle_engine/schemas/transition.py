"""Status transition Pydantic schemas."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from lifecycle_engine.core.permissions import PropertyRole
from lifecycle_engine.domain.payment_progress import PaymentStatus
from lifecycle_engine.domain.reservation_state import ReservationStatus
from lifecycle_engine.schemas.integrity import DataIntegrityIssue


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class ReservationSnapshot(BaseModel):
    """Read-only copy of the reservation fields the engine reasons about."""

    model_config = ConfigDict(frozen=True)

    guest_name: str | None = None
    check_in: datetime
    check_out: datetime
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    amount_captured: Decimal | None = None
    paid_amount: Decimal | None = None
    deposit_amount: Decimal | None = None
    total_amount: Decimal | None = None
    room_id: str | None = None
    adults: int = 1
    children: int = 0
    created_at: datetime | None = None
    guest_type: str | None = None
    booking_source: str | None = None

    @field_validator("check_in", "check_out", "created_at")
    @classmethod
    def validate_timezone(cls, v: datetime | None) -> datetime | None:
        return ensure_aware(v) if v is not None else None


class StatusTransitionContext(BaseModel):
    """A proposed status change and everything needed to judge it."""

    model_config = ConfigDict(frozen=True)

    reservation_id: str
    current_status: ReservationStatus
    new_status: ReservationStatus
    reason: str = ""
    user_id: str
    user_role: PropertyRole
    property_id: str
    organization_id: str
    is_automatic: bool = False
    reservation: ReservationSnapshot | None = None
    now: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("now")
    @classmethod
    def validate_now(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    def hours_since_check_in(self) -> float | None:
        if self.reservation is None:
            return None
        return (self.now - self.reservation.check_in).total_seconds() / 3600


class ValidationResult(BaseModel):
    """Accumulated decision for one transition attempt.

    `is_valid` is derived from `errors` and cannot be set.
    """

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    requires_approval: bool = False
    approval_reason: str | None = None
    approval_reasons: list[str] = Field(default_factory=list)
    business_rule_violations: list[str] = Field(default_factory=list)
    data_integrity_issues: list[str] = Field(default_factory=list)
    auto_fixable_issues: list[DataIntegrityIssue] = Field(default_factory=list)

    @computed_field
    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, message: str) -> None:
        if message not in self.errors:
            self.errors.append(message)

    def add_warning(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def add_violation(self, message: str) -> None:
        if message not in self.business_rule_violations:
            self.business_rule_violations.append(message)

    def require_approval(self, reason: str) -> None:
        """Flag for approval. The first reason recorded stays the headline."""
        self.requires_approval = True
        if self.approval_reason is None:
            self.approval_reason = reason
        if reason not in self.approval_reasons:
            self.approval_reasons.append(reason)

    def merge(self, other: ValidationResult) -> None:
        for message in other.errors:
            self.add_error(message)
        for message in other.warnings:
            self.add_warning(message)
        for message in other.business_rule_violations:
            self.add_violation(message)
        for reason in other.approval_reasons:
            self.require_approval(reason)
        if other.requires_approval and not other.approval_reasons:
            self.requires_approval = True
        self.data_integrity_issues.extend(other.data_integrity_issues)
        self.auto_fixable_issues.extend(other.auto_fixable_issues)


class TransitionValidateRequest(BaseModel):
    """Schema for validating a status change on a stored reservation."""

    new_status: ReservationStatus
    reason: str = Field(default="", max_length=1000)
    user_id: str
    user_role: PropertyRole
    property_id: str
    organization_id: str
    is_automatic: bool = False
    now: datetime | None = None


class RuleTestRequest(BaseModel):
    """Schema for evaluating business rules against an ad-hoc context."""

    context: StatusTransitionContext


class StatusResolveRequest(BaseModel):
    """Schema for the automatic status resolver."""

    current_status: ReservationStatus
    payment_percentage: float = Field(ge=0)
    check_in: datetime
    check_out: datetime
    now: datetime | None = None


class StatusResolveResponse(BaseModel):
    current_status: ReservationStatus
    resolved_status: ReservationStatus
    changed: bool


class TransitionListResponse(BaseModel):
    status: ReservationStatus
    allowed_transitions: list[ReservationStatus]
    is_terminal: bool
