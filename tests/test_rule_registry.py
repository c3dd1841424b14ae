"""Tests for business rule storage and evaluation."""

from datetime import timedelta

import pytest

from lifecycle_engine.core.exceptions import NotFoundError
from lifecycle_engine.core.permissions import PropertyRole
from lifecycle_engine.domain.business_rules import (
    ActionType,
    BusinessRule,
    BusinessRuleCreate,
    RuleAction,
    RuleCategory,
    RuleCondition,
    default_rules,
)
from lifecycle_engine.domain.payment_progress import PaymentStatus
from lifecycle_engine.domain.reservation_state import ReservationStatus
from lifecycle_engine.services.rule_registry import BusinessRuleRegistry, StaticRuleRepository

S = ReservationStatus


@pytest.fixture
def registry() -> BusinessRuleRegistry:
    return BusinessRuleRegistry(StaticRuleRepository())


def custom_rule(**overrides) -> BusinessRule:
    data = {
        "id": "custom-late-arrival",
        "name": "Late Arrival Notice",
        "category": RuleCategory.GUEST_POLICY,
        "organization_id": "org-1",
        "conditions": (RuleCondition(type="status_to", operator="equals", value="IN_HOUSE"),),
        "actions": (RuleAction(type=ActionType.SEND_NOTIFICATION),),
    }
    data.update(overrides)
    return BusinessRule(**data)


def test_default_rules_are_deterministic() -> None:
    first = default_rules("org-1")
    second = default_rules("org-1")

    assert first == second
    assert len(first) == 8
    assert all(rule.id.startswith("default-") for rule in first)
    assert {rule.organization_id for rule in default_rules("org-2")} == {"org-2"}


@pytest.mark.anyio
async def test_active_rules_are_ordered_by_priority(registry: BusinessRuleRegistry) -> None:
    rules = await registry.active_rules("org-1", "prop-1")

    assert [rule.id for rule in rules] == [
        "default-vip-priority-checkin",
        "default-corporate-flexible-cancellation",
        "default-early-checkin-approval",
        "default-checkout-full-payment",
        "default-housekeeping-cancel-confirmed",
        "default-no-show-grace-period",
        "default-same-day-cancellation-fee",
        "default-confirmation-payment",
    ]


@pytest.mark.anyio
async def test_property_scope_and_inactive_rules(registry: BusinessRuleRegistry) -> None:
    await registry.update_rule(custom_rule(id="custom-other-property", property_id="prop-2"))
    await registry.update_rule(custom_rule(id="custom-disabled", is_active=False))

    active = {rule.id for rule in await registry.active_rules("org-1", "prop-1")}
    everything = {rule.id for rule in await registry.all_rules("org-1")}

    assert "custom-other-property" not in active
    assert "custom-disabled" not in active
    assert {"custom-other-property", "custom-disabled"} <= everything
    assert "custom-other-property" in {
        rule.id for rule in await registry.active_rules("org-1", "prop-2")
    }


@pytest.mark.anyio
async def test_create_rule_replaces_cached_set(registry: BusinessRuleRegistry) -> None:
    before = await registry.active_rules("org-1", "prop-1")

    created = await registry.create_rule(
        "org-1",
        BusinessRuleCreate(
            name="Block Agent Cancellations",
            category=RuleCategory.ROLE_PERMISSION,
            priority=20,
            conditions=(
                RuleCondition(type="status_to", operator="equals", value="CANCELLED"),
                RuleCondition(type="booking_source", operator="in", value=("AGENT", "OTA")),
            ),
            actions=(RuleAction(type=ActionType.DENY),),
        ),
    )
    after = await registry.active_rules("org-1", "prop-1")

    assert created.id.startswith("custom-")
    assert len(before) == 8
    assert after[0].id == created.id
    assert created.id not in {rule.id for rule in before}


@pytest.mark.anyio
async def test_delete_rule(registry: BusinessRuleRegistry) -> None:
    await registry.delete_rule("org-1", "default-vip-priority-checkin")

    remaining = {rule.id for rule in await registry.all_rules("org-1")}
    assert "default-vip-priority-checkin" not in remaining
    assert len(remaining) == 7

    with pytest.raises(NotFoundError):
        await registry.delete_rule("org-1", "default-vip-priority-checkin")
    with pytest.raises(NotFoundError):
        await registry.delete_rule("org-1", "custom-unknown")


@pytest.mark.anyio
async def test_early_checkin_requires_approval_even_for_vip(
    registry: BusinessRuleRegistry, make_reservation, make_context, now
) -> None:
    record = make_reservation(
        guest_type="VIP",
        check_in=now + timedelta(hours=10),
        check_out=now + timedelta(days=2),
    )
    context = make_context(record, S.IN_HOUSE, role=PropertyRole.FRONT_DESK)

    result = await registry.evaluate_for(context)

    assert result.requires_approval
    assert result.approval_reason == "Early check-in requires manager approval"
    assert result.is_valid


@pytest.mark.anyio
async def test_early_checkin_by_manager_needs_no_approval(
    registry: BusinessRuleRegistry, make_reservation, make_context, now
) -> None:
    record = make_reservation(check_in=now + timedelta(hours=10))
    context = make_context(record, S.IN_HOUSE, role=PropertyRole.PROPERTY_MGR)

    result = await registry.evaluate_for(context)

    assert not result.requires_approval
    assert result.errors == []


@pytest.mark.anyio
async def test_same_day_cancellation_fee_applies_to_corporate_bookings(
    registry: BusinessRuleRegistry, make_reservation, make_context, now
) -> None:
    record = make_reservation(booking_source="CORPORATE", check_in=now + timedelta(hours=6))
    context = make_context(record, S.CANCELLED)

    result = await registry.evaluate_for(context)

    assert result.warnings == [
        "50% cancellation fee applies for same-day cancellations",
        "Same-day cancellation fee will be applied",
    ]
    assert result.is_valid


@pytest.mark.anyio
async def test_confirmation_without_payment_is_an_error(
    registry: BusinessRuleRegistry, make_reservation, make_context
) -> None:
    record = make_reservation(
        status=S.PENDING_CONFIRMATION,
        payment_status=PaymentStatus.UNPAID,
        paid_amount=0,
        deposit_amount=1000,
    )
    result = await registry.evaluate_for(make_context(record, S.CONFIRMED))

    assert result.errors == ["Minimum 20% payment required for confirmation"]
    assert not result.is_valid


@pytest.mark.anyio
async def test_housekeeping_cancel_and_checkout_rules(
    registry: BusinessRuleRegistry, make_reservation, make_context, now
) -> None:
    record = make_reservation(check_in=now + timedelta(days=3), check_out=now + timedelta(days=5))
    cancel = await registry.evaluate_for(
        make_context(record, S.CANCELLED, role=PropertyRole.HOUSEKEEPING)
    )
    assert cancel.approval_reasons == ["Housekeeping staff cannot cancel confirmed reservations"]

    in_house = make_reservation(status=S.IN_HOUSE, payment_status=PaymentStatus.PARTIALLY_PAID)
    checkout = await registry.evaluate_for(make_context(in_house, S.CHECKED_OUT))
    assert checkout.warnings == ["Full payment should be completed before checkout"]


def test_action_default_messages(registry: BusinessRuleRegistry, make_reservation, make_context) -> None:
    rules = (
        custom_rule(
            id="custom-a",
            name="Deny Check-in",
            actions=(
                RuleAction(type=ActionType.DENY),
                RuleAction(type=ActionType.SET_FEE, value=25),
                RuleAction(type=ActionType.REQUIRE_APPROVAL),
                RuleAction(type=ActionType.ALLOW),
            ),
        ),
        custom_rule(id="custom-b", name="Second Opinion", actions=(RuleAction(type=ActionType.REQUIRE_APPROVAL),)),
    )
    context = make_context(make_reservation(), S.IN_HOUSE)

    result = registry.evaluate(context, rules)

    assert result.errors == ["Rule violation: Deny Check-in"]
    assert result.warnings == ["Fee applies: Deny Check-in (25)"]
    assert result.approval_reason == "Approval required: Deny Check-in"
    assert result.approval_reasons == [
        "Approval required: Deny Check-in",
        "Approval required: Second Opinion",
    ]
    assert not result.is_valid


def test_evaluate_is_pure(registry: BusinessRuleRegistry, make_reservation, make_context) -> None:
    rules = default_rules("org-1")
    context = make_context(make_reservation(), S.NO_SHOW)

    first = registry.evaluate(context, rules)
    second = registry.evaluate(context, rules)

    assert first == second
    assert first is not second
    assert first.errors == ["Cannot mark as no-show until 6 hours after check-in time"]


def test_rule_metadata_is_read_only() -> None:
    rule = custom_rule(metadata={"source": "import"})

    with pytest.raises(TypeError):
        rule.metadata["source"] = "edited"

    assert rule.metadata == {"source": "import"}
    assert rule.model_dump()["metadata"] == {"source": "import"}
    assert type(rule.model_dump()["metadata"]) is dict
