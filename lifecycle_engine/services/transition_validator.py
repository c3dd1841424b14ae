"""Transition validation: composes every check into one decision.

The validator never applies a change. A result that is valid but
requires approval must be routed to the approval workflow, not applied.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from lifecycle_engine.config import Settings
from lifecycle_engine.core.permissions import RolePermissionPolicy, can_override_business_rules
from lifecycle_engine.domain.payment_progress import PaymentStatus, paid_amount, total_due
from lifecycle_engine.domain.reservation_state import ReservationStatus, StatusGraph
from lifecycle_engine.schemas.integrity import (
    DataIntegrityResult,
    IssueSeverity,
    IssueType,
)
from lifecycle_engine.schemas.transition import (
    ReservationSnapshot,
    StatusTransitionContext,
    ValidationResult,
)
from lifecycle_engine.services.integrity_service import DataIntegrityChecker
from lifecycle_engine.services.rule_registry import BusinessRuleRegistry

logger = logging.getLogger(__name__)

INTEGRITY_REVIEW_REASON = "Data integrity issues require manager review"
RULE_VIOLATION_REASON = "Business rule violations require manager approval"


class TransitionValidator:
    """Validate a proposed reservation status change."""

    def __init__(
        self,
        graph: StatusGraph,
        policy: RolePermissionPolicy,
        rules: BusinessRuleRegistry,
        integrity: DataIntegrityChecker,
        settings: Settings,
    ) -> None:
        self.graph = graph
        self.policy = policy
        self.rules = rules
        self.integrity = integrity
        self.settings = settings

    async def validate(self, context: StatusTransitionContext) -> ValidationResult:
        """Run graph, role, rule, integrity, time-window and payment checks in order.

        Args:
            context: Proposed transition with its reservation snapshot

        Returns:
            ValidationResult: Fresh result owned by the caller
        """
        result = ValidationResult()

        self._check_graph(context, result)

        permission = self.policy.check(context.user_role, context.current_status, context.new_status)
        for reason in permission.reasons:
            result.require_approval(reason)

        await self._apply_business_rules(context, result)

        integrity = await self.integrity.check(context)
        if not integrity.reservation_found:
            result.add_error("Reservation not found")
            result.data_integrity_issues.extend(issue.description for issue in integrity.issues)
            return result
        self._merge_integrity(integrity, result)

        if context.reservation is not None:
            self._check_time_windows(context, context.reservation, result)
            self._check_payment_thresholds(context, context.reservation, result)

        if result.business_rule_violations and not can_override_business_rules(context.user_role):
            result.require_approval(RULE_VIOLATION_REASON)

        logger.debug(
            f"Validated {context.reservation_id} {context.current_status.value} -> "
            f"{context.new_status.value}: valid={result.is_valid} "
            f"approval={result.requires_approval}"
        )
        return result

    async def _apply_business_rules(
        self, context: StatusTransitionContext, result: ValidationResult
    ) -> None:
        """Merge the organization's rules; a failed load is routed to review."""
        timeout = self.settings.integrity_read_timeout_seconds
        try:
            rules_result = await asyncio.wait_for(self.rules.evaluate_for(context), timeout=timeout)
        except TimeoutError:
            logger.warning(f"Timed out loading business rules for organization {context.organization_id}")
            description = "Timed out while loading business rules"
        except Exception as e:
            logger.error(f"Failed to load business rules for organization {context.organization_id}: {e}")
            description = "Failed to load business rules"
        else:
            result.merge(rules_result)
            return

        result.data_integrity_issues.append(description)
        result.require_approval(INTEGRITY_REVIEW_REASON)

    def _check_graph(self, context: StatusTransitionContext, result: ValidationResult) -> None:
        if context.current_status == context.new_status:
            result.add_error("Cannot transition to the same status")
        elif not self.graph.can_transition(context.current_status, context.new_status):
            result.add_error(
                f"Invalid transition from {context.current_status.value} "
                f"to {context.new_status.value}"
            )

    def _merge_integrity(self, integrity: DataIntegrityResult, result: ValidationResult) -> None:
        blocking = False
        for issue in integrity.issues:
            result.data_integrity_issues.append(issue.description)
            if issue.auto_fixable:
                result.auto_fixable_issues.append(issue)

            if issue.severity == IssueSeverity.CRITICAL and issue.type == IssueType.INVALID_REFERENCE:
                result.add_error(issue.description)
            elif issue.severity in (IssueSeverity.HIGH, IssueSeverity.CRITICAL):
                blocking = True

        for warning in integrity.warnings:
            result.add_warning(warning)

        if blocking:
            result.require_approval(INTEGRITY_REVIEW_REASON)

    def _check_time_windows(
        self,
        context: StatusTransitionContext,
        reservation: ReservationSnapshot,
        result: ValidationResult,
    ) -> None:
        s = self.settings
        hours_since_check_in = (context.now - reservation.check_in).total_seconds() / 3600
        days_from_check_in = hours_since_check_in / 24
        days_from_check_out = (context.now - reservation.check_out).total_seconds() / 86400

        match context.new_status:
            case ReservationStatus.NO_SHOW:
                if hours_since_check_in < s.no_show_min_hours:
                    result.add_error(
                        f"Cannot mark as no-show until {s.no_show_min_hours:g} hours "
                        "after check-in time"
                    )
                elif hours_since_check_in > s.no_show_late_warning_hours:
                    result.add_warning(
                        f"Marking as no-show {hours_since_check_in:.0f} hours after check-in time"
                    )
            case ReservationStatus.IN_HOUSE:
                if days_from_check_in < -s.checkin_early_days:
                    result.add_warning(
                        f"Early check-in: {-days_from_check_in:.1f} days before scheduled check-in"
                    )
                elif days_from_check_in > s.checkin_late_days:
                    result.add_warning(
                        f"Late check-in: {days_from_check_in:.1f} days after scheduled check-in"
                    )
            case ReservationStatus.CHECKED_OUT:
                if days_from_check_out < -s.checkout_early_days:
                    result.add_warning(
                        f"Early check-out: {-days_from_check_out:.1f} days before scheduled check-out"
                    )
                elif days_from_check_out > s.checkout_late_days:
                    result.add_warning(
                        f"Late check-out: {days_from_check_out:.1f} days after scheduled check-out"
                    )

    def _check_payment_thresholds(
        self,
        context: StatusTransitionContext,
        reservation: ReservationSnapshot,
        result: ValidationResult,
    ) -> None:
        s = self.settings
        rate = s.estimated_nightly_rate
        due = total_due(reservation, rate)
        paid = paid_amount(reservation, rate)

        match context.new_status:
            case ReservationStatus.CONFIRMED:
                if reservation.payment_status not in (
                    PaymentStatus.PAID,
                    PaymentStatus.PARTIALLY_PAID,
                ):
                    result.add_violation("Payment is required before confirming the reservation")
                if paid < due * _fraction(s.confirm_min_payment_fraction):
                    result.add_violation(
                        f"At least {s.confirm_min_payment_fraction:.0%} of the total must be paid "
                        "before confirmation"
                    )
            case ReservationStatus.IN_HOUSE:
                if paid < due * _fraction(s.checkin_min_payment_fraction):
                    result.add_violation(
                        f"At least {s.checkin_min_payment_fraction:.0%} of the total must be paid "
                        "before check-in"
                    )
            case ReservationStatus.CHECKED_OUT:
                if reservation.payment_status != PaymentStatus.PAID:
                    result.add_warning("Checking out guest with outstanding payment")


def _fraction(value: float) -> Decimal:
    return Decimal(str(value))
