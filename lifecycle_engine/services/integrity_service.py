"""Cross-record data integrity checks (read-only) and explicit auto-fixes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

from lifecycle_engine.config import Settings
from lifecycle_engine.domain.payment_progress import PaymentStatus
from lifecycle_engine.domain.reservation_state import ACTIVE_STATUSES, ReservationStatus
from lifecycle_engine.schemas.integrity import (
    AutoFixResult,
    DataIntegrityIssue,
    DataIntegrityResult,
    DayTransitionResult,
    FixCode,
    IssueSeverity,
    IssueType,
)
from lifecycle_engine.schemas.reservation import ReservationRecord, StatusHistoryEntry
from lifecycle_engine.schemas.transition import StatusTransitionContext, ensure_aware
from lifecycle_engine.services.reservation_store import ReservationStore

logger = logging.getLogger(__name__)

CheckResult = tuple[list[DataIntegrityIssue], list[str]]


def _issue(
    type: IssueType,
    severity: IssueSeverity,
    description: str,
    affected_fields: list[str],
    suggested_fix: str | None = None,
    fix_code: FixCode | None = None,
    related_records: list[str] | None = None,
) -> DataIntegrityIssue:
    return DataIntegrityIssue(
        type=type,
        severity=severity,
        description=description,
        affected_fields=affected_fields,
        suggested_fix=suggested_fix,
        auto_fixable=fix_code is not None,
        fix_code=fix_code,
        related_records=related_records or [],
    )


def _guest_label(reservation: ReservationRecord) -> str:
    guest = (reservation.guest_name or "").strip() or "Unknown guest"
    room = reservation.room.name if reservation.room and reservation.room.name else "N/A"
    return f"{guest} (room {room})"


def operational_day_start(now: datetime, start_hour: int) -> datetime:
    """Start of the operational day containing `now` (UTC)."""
    now = ensure_aware(now).astimezone(UTC)
    start = now.replace(hour=start_hour, minute=0, second=0, microsecond=0)
    return start if start <= now else start - timedelta(days=1)


class DataIntegrityChecker:
    """Read-only integrity validator for one reservation and its neighbours."""

    def __init__(self, store: ReservationStore, settings: Settings) -> None:
        self.store = store
        self.settings = settings

    @property
    def _timeout(self) -> float:
        return self.settings.integrity_read_timeout_seconds

    async def check(self, context: StatusTransitionContext) -> DataIntegrityResult:
        """Run every check for a proposed transition. Never raises for data problems."""
        result = DataIntegrityResult()

        try:
            reservation = await asyncio.wait_for(
                self.store.get_reservation(context.reservation_id), timeout=self._timeout
            )
        except TimeoutError:
            logger.warning(f"Timed out loading reservation {context.reservation_id}")
            result.issues.append(
                _issue(
                    IssueType.MISSING_DATA,
                    IssueSeverity.CRITICAL,
                    "Timed out while loading reservation data",
                    ["reservation"],
                )
            )
            return result
        except Exception as e:
            logger.error(f"Failed to load reservation {context.reservation_id}: {e}")
            result.issues.append(
                _issue(
                    IssueType.MISSING_DATA,
                    IssueSeverity.CRITICAL,
                    "Failed to load reservation data",
                    ["reservation"],
                )
            )
            return result

        if reservation is None:
            result.reservation_found = False
            result.issues.append(
                _issue(
                    IssueType.MISSING_DATA,
                    IssueSeverity.CRITICAL,
                    "Reservation record not found",
                    ["reservation"],
                )
            )
            return result

        for check in (
            self._check_consistency,
            self._check_payments,
            self._check_guest_data,
            self._check_references,
            self._check_policy_compliance,
        ):
            issues, warnings = check(context, reservation)
            result.issues.extend(issues)
            result.warnings.extend(warnings)

        store_checks = await asyncio.gather(
            self._bounded(
                "room availability", self._check_room_conflicts(context, reservation)
            ),
            self._bounded("status history", self._check_status_history(context, reservation)),
        )
        for issues, warnings in store_checks:
            result.issues.extend(issues)
            result.warnings.extend(warnings)

        return result

    async def _bounded(self, what: str, check: Awaitable[CheckResult]) -> CheckResult:
        """Run a store-backed check under the read timeout; failures become MEDIUM issues."""
        try:
            return await asyncio.wait_for(check, timeout=self._timeout)
        except TimeoutError:
            logger.warning(f"Integrity check timed out: {what}")
            description = f"Timed out while validating {what}"
        except Exception as e:
            logger.error(f"Integrity check failed: {what}: {e}")
            description = f"Failed to validate {what}"
        return [_issue(IssueType.MISSING_DATA, IssueSeverity.MEDIUM, description, [])], []

    # ==================== IN-MEMORY CHECKS ====================

    def _check_consistency(
        self, context: StatusTransitionContext, reservation: ReservationRecord
    ) -> CheckResult:
        issues = []

        if reservation.check_in >= reservation.check_out:
            issues.append(
                _issue(
                    IssueType.INCONSISTENCY,
                    IssueSeverity.HIGH,
                    "Check-in date is not before check-out date",
                    ["check_in", "check_out"],
                    "Correct the check-in or check-out dates",
                )
            )

        if reservation.adults < 1:
            issues.append(
                _issue(
                    IssueType.INCONSISTENCY,
                    IssueSeverity.MEDIUM,
                    "Adult count must be at least 1",
                    ["adults"],
                    "Set adults count to 1",
                    fix_code=FixCode.CLAMP_ADULTS,
                )
            )

        if reservation.room is not None and reservation.total_guests > reservation.room.capacity:
            issues.append(
                _issue(
                    IssueType.BUSINESS_RULE_VIOLATION,
                    IssueSeverity.HIGH,
                    f"Guest count ({reservation.total_guests}) exceeds room capacity "
                    f"({reservation.room.capacity})",
                    ["adults", "children", "room_id"],
                    "Assign a larger room or reduce guest count",
                )
            )

        if reservation.property_id != context.property_id:
            issues.append(
                _issue(
                    IssueType.INVALID_REFERENCE,
                    IssueSeverity.CRITICAL,
                    "Reservation does not belong to the specified property",
                    ["property_id"],
                )
            )

        if reservation.organization_id != context.organization_id:
            issues.append(
                _issue(
                    IssueType.INVALID_REFERENCE,
                    IssueSeverity.CRITICAL,
                    "Reservation does not belong to the specified organization",
                    ["organization_id"],
                )
            )

        return issues, []

    def _check_payments(
        self, context: StatusTransitionContext, reservation: ReservationRecord
    ) -> CheckResult:
        issues: list[DataIntegrityIssue] = []
        warnings: list[str] = []
        captured = reservation.amount_captured
        deposit = reservation.deposit_amount

        if captured is not None and captured < 0:
            issues.append(
                _issue(
                    IssueType.INCONSISTENCY,
                    IssueSeverity.HIGH,
                    "Captured amount cannot be negative",
                    ["amount_captured"],
                    "Correct the captured amount",
                )
            )

        if reservation.paid_amount is not None and reservation.paid_amount < 0:
            issues.append(
                _issue(
                    IssueType.INCONSISTENCY,
                    IssueSeverity.HIGH,
                    "Paid amount cannot be negative",
                    ["paid_amount"],
                    "Correct the paid amount",
                )
            )

        if captured is not None and captured >= 0 and deposit is not None and deposit > captured:
            issues.append(
                _issue(
                    IssueType.INCONSISTENCY,
                    IssueSeverity.MEDIUM,
                    "Deposit amount exceeds captured amount",
                    ["deposit_amount", "amount_captured"],
                    "Adjust deposit amount to not exceed captured amount",
                    fix_code=FixCode.CLAMP_DEPOSIT,
                )
            )

        if (
            context.new_status == ReservationStatus.CONFIRMED
            and reservation.payment_status == PaymentStatus.UNPAID
            and not deposit
        ):
            warnings.append("Confirming reservation without any payment received")

        return issues, warnings

    def _check_guest_data(
        self, context: StatusTransitionContext, reservation: ReservationRecord
    ) -> CheckResult:
        issues = []
        name = (reservation.guest_name or "").strip()

        if len(name) < 2:
            issues.append(
                _issue(
                    IssueType.MISSING_DATA,
                    IssueSeverity.HIGH,
                    "Guest name is missing or too short",
                    ["guest_name"],
                    "Provide valid guest name",
                )
            )

        if (
            context.new_status == ReservationStatus.IN_HOUSE
            and not reservation.email
            and not reservation.phone
        ):
            issues.append(
                _issue(
                    IssueType.MISSING_DATA,
                    IssueSeverity.LOW,
                    "No contact information available for guest",
                    ["email", "phone"],
                    "Collect an email address or phone number at check-in",
                )
            )

        return issues, []

    def _check_references(
        self, context: StatusTransitionContext, reservation: ReservationRecord
    ) -> CheckResult:
        issues = []

        if reservation.room_id and reservation.room is None:
            issues.append(
                _issue(
                    IssueType.INVALID_REFERENCE,
                    IssueSeverity.HIGH,
                    "Referenced room does not exist",
                    ["room_id"],
                    "Assign valid room to reservation",
                )
            )

        if not reservation.property_exists:
            issues.append(
                _issue(
                    IssueType.INVALID_REFERENCE,
                    IssueSeverity.CRITICAL,
                    "Referenced property does not exist",
                    ["property_id"],
                )
            )

        return issues, []

    def _check_policy_compliance(
        self, context: StatusTransitionContext, reservation: ReservationRecord
    ) -> CheckResult:
        issues = []
        warnings = []
        hours_until_check_in = (reservation.check_in - context.now).total_seconds() / 3600

        if context.new_status == ReservationStatus.NO_SHOW and hours_until_check_in > 0:
            issues.append(
                _issue(
                    IssueType.BUSINESS_RULE_VIOLATION,
                    IssueSeverity.HIGH,
                    "No-show cannot be marked before check-in time",
                    ["status"],
                    "Wait until after check-in time",
                )
            )

        if context.new_status == ReservationStatus.CANCELLED and 0 <= hours_until_check_in < 24:
            warnings.append("Cancellation within 24 hours may incur fees")

        return issues, warnings

    # ==================== STORE-BACKED CHECKS ====================

    async def _check_room_conflicts(
        self, context: StatusTransitionContext, reservation: ReservationRecord
    ) -> CheckResult:
        if context.new_status != ReservationStatus.IN_HOUSE or not reservation.room_id:
            return [], []

        conflicts = await self.store.find_overlapping(
            reservation.room_id,
            reservation.check_in,
            reservation.check_out,
            ACTIVE_STATUSES,
            exclude_id=reservation.id,
        )
        if not conflicts:
            return [], []

        return [
            _issue(
                IssueType.CONFLICT,
                IssueSeverity.HIGH,
                f"Room has {len(conflicts)} conflicting reservation(s)",
                ["room_id", "check_in", "check_out"],
                "Resolve room conflicts or assign different room",
                related_records=[r.id for r in conflicts],
            )
        ], []

    async def _check_status_history(
        self, context: StatusTransitionContext, reservation: ReservationRecord
    ) -> CheckResult:
        issues = []
        warnings = []
        history = await self.store.recent_status_history(
            reservation.id, self.settings.status_history_depth
        )

        window_start = context.now - timedelta(minutes=self.settings.duplicate_change_window_minutes)
        if any(
            entry.new_status == context.new_status and entry.changed_at > window_start
            for entry in history
        ):
            warnings.append("Similar status change was made recently")

        if history and history[0].new_status != context.current_status:
            issues.append(
                _issue(
                    IssueType.INCONSISTENCY,
                    IssueSeverity.MEDIUM,
                    "Current status does not match last status history entry",
                    ["status", "status_history"],
                    "Synchronize status with history",
                    fix_code=FixCode.SYNC_STATUS_HISTORY,
                )
            )

        return issues, warnings

    # ==================== DAY TRANSITION ====================

    async def check_day_transition(
        self,
        property_id: str,
        day_start: datetime,
        day_end: datetime | None = None,
    ) -> DayTransitionResult:
        """Check the departures that block moving a property to a new operational day.

        In-house stays due out during the previous day were never checked
        out (CRITICAL), and those still partially paid also owe a balance
        (MEDIUM). In-house stays due out within [day_start, day_end) have
        not checked out yet (MEDIUM).

        Args:
            property_id: Property whose day is closing
            day_start: Start of the operational day being opened
            day_end: End of that day (defaults to one day later)

        Returns:
            DayTransitionResult: Issues, critical first then by guest name
        """
        day_start = ensure_aware(day_start)
        day_end = ensure_aware(day_end) if day_end is not None else day_start + timedelta(days=1)
        previous_start = day_start - (day_end - day_start)
        result = DayTransitionResult(property_id=property_id, day_start=day_start, day_end=day_end)
        in_house = (ReservationStatus.IN_HOUSE,)

        try:
            overdue, due_today = await asyncio.wait_for(
                asyncio.gather(
                    self.store.find_departures(property_id, previous_start, day_start, in_house),
                    self.store.find_departures(property_id, day_start, day_end, in_house),
                ),
                timeout=self._timeout,
            )
        except TimeoutError:
            logger.warning(f"Timed out loading departures for property {property_id}")
            description = "Timed out while loading departures"
        except Exception as e:
            logger.error(f"Failed to load departures for property {property_id}: {e}")
            description = "Failed to load departures"
        else:
            result.issues = sorted(
                self._departure_issues(overdue, due_today),
                key=lambda issue: (
                    issue.severity != IssueSeverity.CRITICAL,
                    issue.description.lower(),
                ),
            )
            return result

        result.issues.append(
            _issue(IssueType.MISSING_DATA, IssueSeverity.CRITICAL, description, ["check_out"])
        )
        return result

    @staticmethod
    def _departure_issues(
        overdue: list[ReservationRecord], due_today: list[ReservationRecord]
    ) -> list[DataIntegrityIssue]:
        issues = []
        for reservation in overdue:
            guest = _guest_label(reservation)
            if reservation.payment_status == PaymentStatus.PARTIALLY_PAID:
                issues.append(
                    _issue(
                        IssueType.BUSINESS_RULE_VIOLATION,
                        IssueSeverity.MEDIUM,
                        f"{guest} was due to check out on the previous day with payment incomplete",
                        ["payment_status"],
                        "Collect the remaining balance",
                        related_records=[reservation.id],
                    )
                )
            issues.append(
                _issue(
                    IssueType.INCONSISTENCY,
                    IssueSeverity.CRITICAL,
                    f"{guest} was due to check out on the previous day but was never checked out",
                    ["status", "check_out"],
                    "Check the guest out or extend the stay",
                    related_records=[reservation.id],
                )
            )
        for reservation in due_today:
            issues.append(
                _issue(
                    IssueType.INCONSISTENCY,
                    IssueSeverity.MEDIUM,
                    f"{_guest_label(reservation)} is due to check out today but has not checked out yet",
                    ["status", "check_out"],
                    related_records=[reservation.id],
                )
            )
        return issues

    # ==================== AUTO-FIX ====================

    async def auto_fix_issues(
        self,
        reservation_id: str,
        issues: list[DataIntegrityIssue],
        now: datetime | None = None,
    ) -> AutoFixResult:
        """Apply the mechanical fix of each auto-fixable issue.

        Each issue's condition is re-checked against freshly loaded data
        first, so running the same issues twice fixes them once.
        """
        now = now or datetime.now(UTC)
        result = AutoFixResult()
        fixers: dict[FixCode, Callable[[ReservationRecord, datetime], Awaitable[bool]]] = {
            FixCode.CLAMP_ADULTS: self._fix_adults,
            FixCode.CLAMP_DEPOSIT: self._fix_deposit,
            FixCode.SYNC_STATUS_HISTORY: self._fix_status_history,
        }

        for issue in issues:
            if not issue.auto_fixable:
                continue

            fixer = fixers.get(issue.fix_code) if issue.fix_code else None
            if fixer is None:
                result.failed += 1
                result.errors.append(f"Failed to fix {issue.description}: No auto-fix available")
                continue

            try:
                reservation = await self.store.get_reservation(reservation_id)
                if reservation is None:
                    raise LookupError("Reservation not found")
                if await fixer(reservation, now):
                    result.fixed += 1
                    logger.info(f"Auto-fixed '{issue.fix_code.value}' on reservation {reservation_id}")
            except Exception as e:
                logger.error(f"Auto-fix {issue.fix_code.value} failed for {reservation_id}: {e}")
                result.failed += 1
                result.errors.append(f"Failed to fix {issue.description}: {e}")

        return result

    async def _fix_adults(self, reservation: ReservationRecord, now: datetime) -> bool:
        if reservation.adults >= 1:
            return False
        await self.store.update_reservation(reservation.id, {"adults": 1})
        return True

    async def _fix_deposit(self, reservation: ReservationRecord, now: datetime) -> bool:
        captured = reservation.amount_captured
        deposit = reservation.deposit_amount
        if captured is None or deposit is None or captured < 0 or deposit <= captured:
            return False
        await self.store.update_reservation(reservation.id, {"deposit_amount": captured})
        return True

    async def _fix_status_history(self, reservation: ReservationRecord, now: datetime) -> bool:
        history = await self.store.recent_status_history(reservation.id, 1)
        if not history or history[0].new_status == reservation.status:
            return False
        await self.store.append_status_history(
            StatusHistoryEntry(
                reservation_id=reservation.id,
                previous_status=history[0].new_status,
                new_status=reservation.status,
                changed_by=self.settings.automation_user_id,
                change_reason="Synchronized status history with reservation status",
                changed_at=now,
                is_automatic=True,
            )
        )
        return True
