"""Tests for rule condition evaluation."""

from datetime import timedelta
from decimal import Decimal

import pytest

from lifecycle_engine.domain.business_rules import RuleCondition
from lifecycle_engine.domain.conditions import (
    ConditionEvaluator,
    ConditionOperator,
    ConditionType,
    compare,
)
from lifecycle_engine.domain.payment_progress import PaymentStatus
from lifecycle_engine.domain.reservation_state import ReservationStatus

Op = ConditionOperator


@pytest.mark.parametrize(
    "fact,operator,expected,outcome",
    [
        (None, Op.EQUALS, None, True),
        (None, Op.NOT_EQUALS, "VIP", False),
        (None, Op.LESS_THAN, 5, False),
        ("VIP", Op.EQUALS, "VIP", True),
        ("VIP", Op.NOT_EQUALS, "VIP", False),
        (1.0, Op.EQUALS, 1, True),
        (1.0, Op.EQUALS, True, False),
        ("5", Op.GREATER_THAN, 3, False),
        (4.5, Op.GREATER_THAN, 4, True),
        (4.0, Op.GREATER_THAN_OR_EQUAL, 4, True),
        (-7.0, Op.LESS_THAN_OR_EQUAL, -6, True),
        ("FRONT_DESK", Op.IN, ("FRONT_DESK", "HOUSEKEEPING"), True),
        ("PROPERTY_MGR", Op.NOT_IN, ("FRONT_DESK", "HOUSEKEEPING"), True),
        ("FRONT_DESK", Op.IN, "FRONT_DESK", False),
        ("VIP_GOLD", Op.CONTAINS, "VIP", True),
        ("REGULAR", Op.CONTAINS, "VIP", False),
    ],
)
def test_compare(fact, operator, expected, outcome) -> None:
    assert compare(fact, operator, expected) is outcome


def test_time_facts_use_context_now(make_reservation, make_context, now) -> None:
    record = make_reservation(
        check_in=now + timedelta(hours=10), check_out=now + timedelta(hours=58)
    )
    evaluator = ConditionEvaluator()
    context = make_context(record, ReservationStatus.IN_HOUSE)

    assert evaluator.resolve_fact(context, ConditionType.TIME_BEFORE_CHECKIN) == pytest.approx(10.0)
    assert evaluator.resolve_fact(context, ConditionType.TIME_AFTER_CHECKOUT) == pytest.approx(-58.0)

    later = make_context(record, ReservationStatus.IN_HOUSE, now=now + timedelta(hours=12))
    assert evaluator.resolve_fact(later, ConditionType.TIME_BEFORE_CHECKIN) == pytest.approx(-2.0)


def test_status_and_role_facts(make_reservation, make_context) -> None:
    record = make_reservation()
    context = make_context(record, ReservationStatus.NO_SHOW)
    evaluator = ConditionEvaluator()

    assert evaluator.resolve_fact(context, ConditionType.STATUS_FROM) == "CONFIRMED"
    assert evaluator.resolve_fact(context, ConditionType.STATUS_TO) == "NO_SHOW"
    assert evaluator.resolve_fact(context, ConditionType.USER_ROLE) == "PROPERTY_MGR"
    assert evaluator.resolve_fact(context, ConditionType.PAYMENT_STATUS) == "PAID"


@pytest.mark.parametrize(
    "payment_status,paid,deposit,fraction",
    [
        (PaymentStatus.PARTIALLY_PAID, Decimal("500"), Decimal("1000"), 0.5),
        (PaymentStatus.PAID, Decimal("2000"), Decimal("1000"), 1.0),
        (PaymentStatus.UNPAID, Decimal("0"), Decimal("1000"), 0.0),
        (PaymentStatus.PARTIALLY_PAID, None, None, 0.5),
        (PaymentStatus.PAID, None, Decimal("0"), 1.0),
        (PaymentStatus.REFUNDED, None, None, 0.0),
    ],
)
def test_payment_amount_fact(
    make_reservation, make_context, payment_status, paid, deposit, fraction
) -> None:
    record = make_reservation(payment_status=payment_status, paid_amount=paid, deposit_amount=deposit)
    context = make_context(record, ReservationStatus.CONFIRMED)

    assert ConditionEvaluator().resolve_fact(context, ConditionType.PAYMENT_AMOUNT) == fraction


def test_facts_without_snapshot_are_none(make_reservation, make_context) -> None:
    context = make_context(make_reservation(), ReservationStatus.IN_HOUSE, reservation=None)
    evaluator = ConditionEvaluator()

    assert evaluator.resolve_fact(context, ConditionType.TIME_BEFORE_CHECKIN) is None
    assert evaluator.resolve_fact(context, ConditionType.GUEST_TYPE) is None
    assert not evaluator.evaluate(
        context, RuleCondition(type="time_before_checkin", operator="greater_than", value=4)
    )
    assert evaluator.evaluate(context, RuleCondition(type="guest_type", operator="equals", value=None))


def test_unknown_fact_or_operator_never_matches(make_reservation, make_context) -> None:
    context = make_context(make_reservation(), ReservationStatus.IN_HOUSE)
    evaluator = ConditionEvaluator()

    assert not evaluator.evaluate(context, RuleCondition(type="weather", operator="equals", value="rain"))
    assert not evaluator.evaluate(
        context, RuleCondition(type="status_to", operator="matches", value="IN_HOUSE")
    )


def test_evaluate_all_requires_every_condition(make_reservation, make_context) -> None:
    context = make_context(make_reservation(guest_type="VIP"), ReservationStatus.IN_HOUSE)
    evaluator = ConditionEvaluator()
    to_in_house = RuleCondition(type="status_to", operator="equals", value="IN_HOUSE")
    vip = RuleCondition(type="guest_type", operator="equals", value="VIP")
    corporate = RuleCondition(type="booking_source", operator="equals", value="CORPORATE")

    assert evaluator.evaluate_all(context, (to_in_house, vip))
    assert not evaluator.evaluate_all(context, (to_in_house, corporate))
    assert evaluator.evaluate_all(context, ())
