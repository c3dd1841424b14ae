"""Declarative business rules for status transitions.

A rule applies when all of its conditions hold; its actions are then
applied in order. Every matching rule runs. Priority only fixes the
evaluation order, an `allow` action never suppresses another rule.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from lifecycle_engine.core.permissions import MANAGER_ROLES, PropertyRole
from lifecycle_engine.domain.conditions import (
    ConditionEvaluator,
    ConditionOperator,
    ConditionType,
    ConditionValue,
)
from lifecycle_engine.domain.payment_progress import PaymentStatus
from lifecycle_engine.domain.reservation_state import ReservationStatus

if TYPE_CHECKING:
    from lifecycle_engine.schemas.transition import StatusTransitionContext, ValidationResult


class RuleCategory(str, Enum):
    TIME_CONSTRAINT = "TIME_CONSTRAINT"
    PAYMENT_REQUIREMENT = "PAYMENT_REQUIREMENT"
    ROLE_PERMISSION = "ROLE_PERMISSION"
    ROOM_AVAILABILITY = "ROOM_AVAILABILITY"
    GUEST_POLICY = "GUEST_POLICY"


class ActionType(str, Enum):
    ALLOW = "allow"
    DENY = "deny"
    REQUIRE_APPROVAL = "require_approval"
    ADD_WARNING = "add_warning"
    ADD_ERROR = "add_error"
    SET_FEE = "set_fee"
    SEND_NOTIFICATION = "send_notification"


ActionValue = Union[str, int, float, bool, None]


class RuleCondition(BaseModel):
    """(fact, operator, value) triple.

    `type` and `operator` stay plain strings so a stored rule with an
    unknown fact or operator still loads; it simply never matches.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    operator: str
    value: ConditionValue = None


class RuleAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ActionType
    value: ActionValue = None
    message: str | None = None


class BusinessRule(BaseModel):
    """Immutable business rule."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    category: RuleCategory
    priority: int = 0
    is_active: bool = True
    organization_id: str
    property_id: str | None = None
    conditions: tuple[RuleCondition, ...] = ()
    actions: tuple[RuleAction, ...] = ()
    metadata: Mapping[str, Any] = Field(default_factory=dict, validate_default=True)

    @field_validator("metadata")
    @classmethod
    def freeze_metadata(cls, v: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(v))

    @field_serializer("metadata")
    def serialize_metadata(self, v: Mapping[str, Any]) -> dict[str, Any]:
        return dict(v)

    def applies_to(self, organization_id: str, property_id: str | None) -> bool:
        if not self.is_active or self.organization_id != organization_id:
            return False
        return self.property_id is None or self.property_id == property_id


class BusinessRuleCreate(BaseModel):
    """Schema for creating a custom business rule."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    category: RuleCategory
    priority: int = 0
    is_active: bool = True
    property_id: str | None = None
    conditions: tuple[RuleCondition, ...] = ()
    actions: tuple[RuleAction, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)


def sort_rules(rules: list[BusinessRule] | tuple[BusinessRule, ...]) -> tuple[BusinessRule, ...]:
    """Descending priority, then id, for a stable evaluation order."""
    return tuple(sorted(rules, key=lambda rule: (-rule.priority, rule.id)))


def apply_action(action: RuleAction, rule: BusinessRule, result: ValidationResult) -> None:
    match action.type:
        case ActionType.ALLOW:
            pass
        case ActionType.DENY:
            result.add_error(action.message or f"Rule violation: {rule.name}")
        case ActionType.ADD_ERROR:
            result.add_error(action.message or f"Error: {rule.name}")
        case ActionType.REQUIRE_APPROVAL:
            result.require_approval(action.message or f"Approval required: {rule.name}")
        case ActionType.ADD_WARNING:
            result.add_warning(action.message or f"Warning: {rule.name}")
        case ActionType.SET_FEE:
            if action.message:
                result.add_warning(action.message)
            elif action.value is not None:
                result.add_warning(f"Fee applies: {rule.name} ({action.value})")
            else:
                result.add_warning(f"Fee applies: {rule.name}")
        case ActionType.SEND_NOTIFICATION:
            result.add_warning(action.message or f"Notification will be sent: {rule.name}")


def evaluate_rules(
    context: StatusTransitionContext,
    rules: tuple[BusinessRule, ...],
    evaluator: ConditionEvaluator,
    result: ValidationResult,
) -> ValidationResult:
    """Apply every matching rule, in the given order, to `result`."""
    for rule in rules:
        if evaluator.evaluate_all(context, rule.conditions):
            for action in rule.actions:
                apply_action(action, rule, result)
    return result


def _condition(fact: ConditionType, operator: ConditionOperator, value: ConditionValue) -> RuleCondition:
    return RuleCondition(type=fact.value, operator=operator.value, value=value)


def _status_to(status: ReservationStatus) -> RuleCondition:
    return _condition(ConditionType.STATUS_TO, ConditionOperator.EQUALS, status.value)


def default_rules(organization_id: str) -> tuple[BusinessRule, ...]:
    """Default rule set instantiated for one organization."""
    eq = ConditionOperator.EQUALS
    S = ReservationStatus
    manager_roles = tuple(sorted(role.value for role in MANAGER_ROLES))

    definitions: list[dict[str, Any]] = [
        {
            "slug": "early-checkin-approval",
            "name": "Early Check-in Approval Required",
            "description": "Require manager approval for check-ins more than 4 hours before scheduled time",
            "category": RuleCategory.TIME_CONSTRAINT,
            "priority": 10,
            "conditions": (
                _status_to(S.IN_HOUSE),
                _condition(ConditionType.TIME_BEFORE_CHECKIN, ConditionOperator.GREATER_THAN, 4),
                _condition(ConditionType.USER_ROLE, ConditionOperator.NOT_IN, manager_roles),
            ),
            "actions": (
                RuleAction(
                    type=ActionType.REQUIRE_APPROVAL,
                    message="Early check-in requires manager approval",
                ),
            ),
        },
        {
            "slug": "confirmation-payment",
            "name": "Payment Required for Confirmation",
            "description": "Require minimum 20% payment before confirming reservation",
            "category": RuleCategory.PAYMENT_REQUIREMENT,
            "priority": 5,
            "conditions": (
                _status_to(S.CONFIRMED),
                _condition(ConditionType.PAYMENT_AMOUNT, ConditionOperator.LESS_THAN, 0.2),
            ),
            "actions": (
                RuleAction(
                    type=ActionType.ADD_ERROR,
                    message="Minimum 20% payment required for confirmation",
                ),
            ),
        },
        {
            "slug": "housekeeping-cancel-confirmed",
            "name": "Housekeeping Cannot Cancel Confirmed Reservations",
            "description": "Prevent housekeeping staff from cancelling confirmed reservations",
            "category": RuleCategory.ROLE_PERMISSION,
            "priority": 8,
            "conditions": (
                _condition(ConditionType.STATUS_FROM, eq, S.CONFIRMED.value),
                _status_to(S.CANCELLED),
                _condition(ConditionType.USER_ROLE, eq, PropertyRole.HOUSEKEEPING.value),
            ),
            "actions": (
                RuleAction(
                    type=ActionType.REQUIRE_APPROVAL,
                    message="Housekeeping staff cannot cancel confirmed reservations",
                ),
            ),
        },
        {
            "slug": "no-show-grace-period",
            "name": "No-Show Grace Period",
            "description": "Cannot mark as no-show until 6 hours after check-in time",
            "category": RuleCategory.TIME_CONSTRAINT,
            "priority": 7,
            "conditions": (
                _status_to(S.NO_SHOW),
                # fewer than 6 hours elapsed since check-in
                _condition(ConditionType.TIME_BEFORE_CHECKIN, ConditionOperator.GREATER_THAN, -6),
            ),
            "actions": (
                RuleAction(
                    type=ActionType.ADD_ERROR,
                    message="Cannot mark as no-show until 6 hours after check-in time",
                ),
            ),
        },
        {
            "slug": "checkout-full-payment",
            "name": "Full Payment Required for Checkout",
            "description": "Require full payment before allowing checkout",
            "category": RuleCategory.PAYMENT_REQUIREMENT,
            "priority": 9,
            "conditions": (
                _status_to(S.CHECKED_OUT),
                _condition(
                    ConditionType.PAYMENT_STATUS,
                    ConditionOperator.NOT_EQUALS,
                    PaymentStatus.PAID.value,
                ),
            ),
            "actions": (
                RuleAction(
                    type=ActionType.ADD_WARNING,
                    message="Full payment should be completed before checkout",
                ),
            ),
        },
        {
            "slug": "same-day-cancellation-fee",
            "name": "Same-Day Cancellation Fee",
            "description": "Apply cancellation fee for same-day cancellations",
            "category": RuleCategory.GUEST_POLICY,
            "priority": 6,
            "conditions": (
                _status_to(S.CANCELLED),
                _condition(ConditionType.TIME_BEFORE_CHECKIN, ConditionOperator.LESS_THAN, 24),
            ),
            "actions": (
                RuleAction(
                    type=ActionType.SET_FEE,
                    value=0.5,
                    message="50% cancellation fee applies for same-day cancellations",
                ),
                RuleAction(
                    type=ActionType.ADD_WARNING,
                    message="Same-day cancellation fee will be applied",
                ),
            ),
        },
        {
            "slug": "vip-priority-checkin",
            "name": "VIP Guest Priority Check-in",
            "description": "Allow early check-in for VIP guests without approval",
            "category": RuleCategory.GUEST_POLICY,
            "priority": 15,
            "conditions": (
                _status_to(S.IN_HOUSE),
                _condition(ConditionType.GUEST_TYPE, eq, "VIP"),
            ),
            "actions": (
                RuleAction(type=ActionType.ALLOW, message="VIP guest early check-in approved"),
            ),
        },
        {
            "slug": "corporate-flexible-cancellation",
            "name": "Corporate Booking Flexible Cancellation",
            "description": "Allow flexible cancellation for corporate bookings",
            "category": RuleCategory.GUEST_POLICY,
            "priority": 12,
            "conditions": (
                _status_to(S.CANCELLED),
                _condition(ConditionType.BOOKING_SOURCE, eq, "CORPORATE"),
            ),
            "actions": (
                RuleAction(type=ActionType.ALLOW, message="Corporate booking cancellation approved"),
            ),
        },
    ]

    return tuple(
        BusinessRule(
            id=f"default-{definition.pop('slug')}",
            organization_id=organization_id,
            **definition,
        )
        for definition in definitions
    )
