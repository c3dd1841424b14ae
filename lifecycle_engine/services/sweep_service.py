"""Scheduled cleanup of stale reservations.

Every change the sweep makes goes through the full transition validator
first. Reservations are processed in parallel; each one is serialised by
a lock keyed by its id and by the store's optimistic status check.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import UTC, datetime, timedelta

from lifecycle_engine.config import Settings
from lifecycle_engine.core.exceptions import StaleReservationError
from lifecycle_engine.domain.auto_status import resolve_automatic_status
from lifecycle_engine.domain.payment_progress import payment_fraction, payment_percentage
from lifecycle_engine.domain.reservation_state import (
    ACTIVE_STATUSES,
    ReservationStatus,
    StatusGraph,
)
from lifecycle_engine.schemas.automation import (
    CleanupType,
    IntegrityOutcome,
    SweepAction,
    SweepOutcome,
    SweepReport,
)
from lifecycle_engine.schemas.reservation import ReservationRecord
from lifecycle_engine.schemas.transition import StatusTransitionContext
from lifecycle_engine.services.approval_service import ApprovalNotifier
from lifecycle_engine.services.audit_service import StatusAuditService
from lifecycle_engine.services.reservation_store import ReservationStore
from lifecycle_engine.services.transition_validator import TransitionValidator

logger = logging.getLogger(__name__)

CLEANUP_TYPES: tuple[str, ...] = ("stale-reservations", "integrity", "full")
HISTORY_WRITE_FAILED = "Status changed but the status history entry could not be recorded"


class ReservationSweepService:
    """Self-healing automation over active reservations."""

    def __init__(
        self,
        store: ReservationStore,
        validator: TransitionValidator,
        audit: StatusAuditService,
        notifier: ApprovalNotifier,
        settings: Settings,
    ) -> None:
        self.store = store
        self.validator = validator
        self.audit = audit
        self.notifier = notifier
        self.settings = settings
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def graph(self) -> StatusGraph:
        return self.validator.graph

    def _lock_for(self, reservation_id: str) -> asyncio.Lock:
        lock = self._locks.get(reservation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[reservation_id] = lock
        return lock

    def determine_target(
        self, reservation: ReservationRecord, now: datetime
    ) -> tuple[ReservationStatus, str] | None:
        """Status the reservation should move to, with the reason, or None."""
        snapshot = reservation.to_snapshot()
        resolved = resolve_automatic_status(
            reservation.status,
            payment_percentage(snapshot),
            reservation.check_in,
            reservation.check_out,
            now,
        )
        if resolved != reservation.status:
            if not self.graph.can_transition(reservation.status, resolved):
                # PENDING -> IN_HOUSE is taken one edge at a time
                if not self.graph.can_transition(reservation.status, ReservationStatus.CONFIRMED):
                    return None
                resolved = ReservationStatus.CONFIRMED
            return resolved, f"Automatic status update: payment and schedule indicate {resolved.value}"

        s = self.settings
        match reservation.status:
            case ReservationStatus.PENDING_CONFIRMATION:
                created_at = reservation.created_at
                if (
                    created_at is not None
                    and now - created_at > timedelta(hours=s.stale_pending_hours)
                    and payment_fraction(snapshot) == 0
                ):
                    return (
                        ReservationStatus.CANCELLED,
                        f"Pending confirmation for more than {s.stale_pending_hours:g} hours "
                        "without payment",
                    )
            case ReservationStatus.CONFIRMED:
                if now - reservation.check_in > timedelta(hours=s.no_show_after_hours):
                    return (
                        ReservationStatus.NO_SHOW,
                        f"No check-in recorded {s.no_show_after_hours:g} hours after "
                        "scheduled check-in",
                    )
            case ReservationStatus.IN_HOUSE:
                if now >= reservation.check_out:
                    return ReservationStatus.CHECKED_OUT, "Scheduled check-out time has passed"
        return None

    async def run(
        self,
        now: datetime | None = None,
        property_id: str | None = None,
        dry_run: bool = False,
        cleanup_type: CleanupType = "stale-reservations",
    ) -> SweepReport:
        """Run one sweep.

        Args:
            now: Evaluation instant (defaults to the current time)
            property_id: Restrict the sweep to one property
            dry_run: Report intended changes without writing anything
            cleanup_type: stale-reservations, integrity or full

        Returns:
            SweepReport: Per-reservation outcomes and totals

        Raises:
            ValueError: If cleanup_type is unknown
        """
        if cleanup_type not in CLEANUP_TYPES:
            raise ValueError(f"Unknown cleanup type: {cleanup_type}")

        now = now or datetime.now(UTC)
        candidates = await self.store.find_sweep_candidates(now, property_id)
        report = SweepReport(
            now=now, dry_run=dry_run, cleanup_type=cleanup_type, examined=len(candidates)
        )
        logger.info(
            f"Sweep started ({cleanup_type}, dry_run={dry_run}): {len(candidates)} candidates"
        )

        semaphore = asyncio.Semaphore(self.settings.sweep_concurrency)

        if cleanup_type in ("stale-reservations", "full"):
            outcomes = await asyncio.gather(
                *(self._sweep_one(r, now, dry_run, semaphore) for r in candidates)
            )
            for outcome in outcomes:
                if outcome is not None:
                    self._count(report, outcome)

        if cleanup_type in ("integrity", "full"):
            integrity = await asyncio.gather(
                *(self._integrity_one(r, now, dry_run, semaphore) for r in candidates)
            )
            report.integrity = [i for i in integrity if i is not None and (i.issues or i.failed)]

        logger.info(
            f"Sweep finished: applied={report.applied} would_apply={report.would_apply} "
            f"approvals={report.approvals_requested} skipped={report.skipped} "
            f"failed={report.failed}"
        )
        return report

    @staticmethod
    def _count(report: SweepReport, outcome: SweepOutcome) -> None:
        report.outcomes.append(outcome)
        match outcome.action:
            case SweepAction.APPLIED:
                report.applied += 1
            case SweepAction.WOULD_APPLY:
                report.would_apply += 1
            case SweepAction.APPROVAL_REQUESTED:
                report.approvals_requested += 1
            case SweepAction.SKIPPED:
                report.skipped += 1
            case SweepAction.FAILED:
                report.failed += 1

    async def _sweep_one(
        self,
        candidate: ReservationRecord,
        now: datetime,
        dry_run: bool,
        semaphore: asyncio.Semaphore,
    ) -> SweepOutcome | None:
        timeout = self.settings.sweep_reservation_timeout_seconds
        async with semaphore:
            lock = self._lock_for(candidate.id)
            try:
                async with lock:
                    return await asyncio.wait_for(
                        self._process(candidate.id, now, dry_run), timeout=timeout
                    )
            except TimeoutError:
                logger.warning(f"Sweep timed out for reservation {candidate.id}")
                reason = f"Timed out after {timeout:g} seconds"
            except Exception as e:
                logger.error(f"Sweep failed for reservation {candidate.id}: {e}")
                reason = "Processing failed"

        return SweepOutcome(
            reservation_id=candidate.id,
            current_status=candidate.status,
            target_status=candidate.status,
            action=SweepAction.FAILED,
            reason=reason,
        )

    async def _process(
        self, reservation_id: str, now: datetime, dry_run: bool
    ) -> SweepOutcome | None:
        # Re-read under the lock; the candidate list may be stale
        reservation = await self.store.get_reservation(reservation_id)
        if reservation is None or reservation.status not in ACTIVE_STATUSES:
            return None

        decision = self.determine_target(reservation, now)
        if decision is None:
            return None
        target, reason = decision

        context = StatusTransitionContext(
            reservation_id=reservation.id,
            current_status=reservation.status,
            new_status=target,
            reason=reason,
            user_id=self.settings.automation_user_id,
            user_role=self.settings.automation_role,
            property_id=reservation.property_id,
            organization_id=reservation.organization_id,
            is_automatic=True,
            reservation=reservation.to_snapshot(),
            now=now,
        )
        result = await self.validator.validate(context)

        def outcome(action: SweepAction, why: str) -> SweepOutcome:
            return SweepOutcome(
                reservation_id=reservation.id,
                current_status=reservation.status,
                target_status=target,
                action=action,
                reason=why,
                errors=list(result.errors),
                warnings=list(result.warnings),
            )

        if not result.is_valid:
            return outcome(SweepAction.SKIPPED, "Validation failed")

        if result.requires_approval:
            if not dry_run:
                await self.notifier.request_approval(context, result)
            return outcome(SweepAction.APPROVAL_REQUESTED, result.approval_reason or reason)

        if dry_run:
            return outcome(SweepAction.WOULD_APPLY, reason)

        try:
            await self.store.apply_status_change(reservation.id, reservation.status, target)
        except StaleReservationError:
            logger.info(f"Reservation {reservation.id} changed during sweep, skipped")
            return outcome(SweepAction.SKIPPED, "Reservation changed during the sweep")

        applied = outcome(SweepAction.APPLIED, reason)
        try:
            await self.audit.log_status_change(
                reservation_id=reservation.id,
                previous_status=reservation.status,
                new_status=target,
                changed_by=self.settings.automation_user_id,
                changed_at=now,
                reason=reason,
                is_automatic=True,
            )
        except Exception as e:
            logger.error(f"Status history write failed for reservation {reservation.id}: {e}")
            applied.warnings.append(HISTORY_WRITE_FAILED)
        logger.info(
            f"Reservation {reservation.id}: {reservation.status.value} -> {target.value} ({reason})"
        )
        return applied

    async def _integrity_one(
        self,
        candidate: ReservationRecord,
        now: datetime,
        dry_run: bool,
        semaphore: asyncio.Semaphore,
    ) -> IntegrityOutcome | None:
        timeout = self.settings.sweep_reservation_timeout_seconds
        async with semaphore:
            try:
                async with self._lock_for(candidate.id):
                    return await asyncio.wait_for(
                        self._check_integrity(candidate.id, now, dry_run), timeout=timeout
                    )
            except TimeoutError:
                logger.warning(f"Integrity sweep timed out for reservation {candidate.id}")
                reason = f"Timed out after {timeout:g} seconds"
            except Exception as e:
                logger.error(f"Integrity sweep failed for reservation {candidate.id}: {e}")
                reason = "Processing failed"

        return IntegrityOutcome(
            reservation_id=candidate.id, issues=0, auto_fixable=0, failed=1, errors=[reason]
        )

    async def _check_integrity(
        self, reservation_id: str, now: datetime, dry_run: bool
    ) -> IntegrityOutcome | None:
        # The stale-reservation pass may have moved it since the candidates were listed
        reservation = await self.store.get_reservation(reservation_id)
        if reservation is None or reservation.status not in ACTIVE_STATUSES:
            return None

        checker = self.validator.integrity
        context = StatusTransitionContext(
            reservation_id=reservation.id,
            current_status=reservation.status,
            new_status=reservation.status,
            reason="Scheduled integrity check",
            user_id=self.settings.automation_user_id,
            user_role=self.settings.automation_role,
            property_id=reservation.property_id,
            organization_id=reservation.organization_id,
            is_automatic=True,
            reservation=reservation.to_snapshot(),
            now=now,
        )
        check = await checker.check(context)
        outcome = IntegrityOutcome(
            reservation_id=reservation.id,
            issues=len(check.issues),
            auto_fixable=len(check.auto_fixable),
        )
        if check.auto_fixable and not dry_run:
            fixed = await checker.auto_fix_issues(reservation.id, check.auto_fixable, now=now)
            outcome.fixed = fixed.fixed
            outcome.failed = fixed.failed
            outcome.errors = fixed.errors
        return outcome
