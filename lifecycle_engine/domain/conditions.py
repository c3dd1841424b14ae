"""Rule condition evaluation.

A condition is a (fact, operator, value) triple. Facts are read from the
transition context; every time fact is computed against `context.now`.
Evaluation fails closed: unknown facts, unknown operators and
type-mismatched comparisons are False.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Union

from lifecycle_engine.domain.payment_progress import payment_fraction

if TYPE_CHECKING:
    from lifecycle_engine.domain.business_rules import RuleCondition
    from lifecycle_engine.schemas.transition import StatusTransitionContext


class ConditionType(str, Enum):
    STATUS_FROM = "status_from"
    STATUS_TO = "status_to"
    USER_ROLE = "user_role"
    TIME_BEFORE_CHECKIN = "time_before_checkin"
    TIME_AFTER_CHECKOUT = "time_after_checkout"
    PAYMENT_STATUS = "payment_status"
    PAYMENT_AMOUNT = "payment_amount"
    GUEST_TYPE = "guest_type"
    BOOKING_SOURCE = "booking_source"


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"


ConditionValue = Union[str, int, float, bool, tuple[str, ...], None]
FactValue = Union[str, float, None]

_ORDERING = {
    ConditionOperator.GREATER_THAN: lambda a, b: a > b,
    ConditionOperator.LESS_THAN: lambda a, b: a < b,
    ConditionOperator.GREATER_THAN_OR_EQUAL: lambda a, b: a >= b,
    ConditionOperator.LESS_THAN_OR_EQUAL: lambda a, b: a <= b,
}


def _is_number(value: object) -> bool:
    # bool is an int subclass but never compares as a number here
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def resolve_fact(context: StatusTransitionContext, fact: ConditionType) -> FactValue:
    """Read one fact from the context. Facts needing a snapshot are None without one."""
    reservation = context.reservation

    match fact:
        case ConditionType.STATUS_FROM:
            return context.current_status.value
        case ConditionType.STATUS_TO:
            return context.new_status.value
        case ConditionType.USER_ROLE:
            return context.user_role.value
        case ConditionType.TIME_BEFORE_CHECKIN:
            if reservation is None:
                return None
            return (reservation.check_in - context.now).total_seconds() / 3600
        case ConditionType.TIME_AFTER_CHECKOUT:
            if reservation is None:
                return None
            return (context.now - reservation.check_out).total_seconds() / 3600
        case ConditionType.PAYMENT_STATUS:
            return reservation.payment_status.value if reservation else None
        case ConditionType.PAYMENT_AMOUNT:
            return payment_fraction(reservation) if reservation else None
        case ConditionType.GUEST_TYPE:
            return reservation.guest_type if reservation else None
        case ConditionType.BOOKING_SOURCE:
            return reservation.booking_source if reservation else None
    return None


def compare(fact: FactValue, operator: ConditionOperator, expected: ConditionValue) -> bool:
    """Apply an operator to a resolved fact and a rule value."""
    if fact is None:
        return operator == ConditionOperator.EQUALS and expected is None

    match operator:
        case ConditionOperator.EQUALS | ConditionOperator.NOT_EQUALS:
            if _is_number(fact) and _is_number(expected):
                same = fact == expected
            elif isinstance(fact, str) and isinstance(expected, str):
                same = fact == expected
            else:
                return False
            return same if operator == ConditionOperator.EQUALS else not same
        case (
            ConditionOperator.GREATER_THAN
            | ConditionOperator.LESS_THAN
            | ConditionOperator.GREATER_THAN_OR_EQUAL
            | ConditionOperator.LESS_THAN_OR_EQUAL
        ):
            if not (_is_number(fact) and _is_number(expected)):
                return False
            return _ORDERING[operator](fact, expected)
        case ConditionOperator.IN | ConditionOperator.NOT_IN:
            if not isinstance(expected, tuple) or not isinstance(fact, str):
                return False
            member = fact in expected
            return member if operator == ConditionOperator.IN else not member
        case ConditionOperator.CONTAINS:
            if not (isinstance(fact, str) and isinstance(expected, str)):
                return False
            return expected in fact
    return False


class ConditionEvaluator:
    """Evaluates rule conditions against a transition context."""

    def resolve_fact(self, context: StatusTransitionContext, fact: ConditionType) -> FactValue:
        return resolve_fact(context, fact)

    def evaluate(self, context: StatusTransitionContext, condition: RuleCondition) -> bool:
        try:
            fact_type = ConditionType(condition.type)
            operator = ConditionOperator(condition.operator)
        except ValueError:
            return False
        return compare(resolve_fact(context, fact_type), operator, condition.value)

    def evaluate_all(
        self,
        context: StatusTransitionContext,
        conditions: tuple[RuleCondition, ...],
    ) -> bool:
        """True when every condition holds."""
        return all(self.evaluate(context, condition) for condition in conditions)
