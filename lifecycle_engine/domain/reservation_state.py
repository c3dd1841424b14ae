"""Reservation status state machine.

States: CONFIRMATION_PENDING → CONFIRMED → IN_HOUSE → CHECKED_OUT,
with CANCELLED and NO_SHOW branches. CHECKED_OUT, CANCELLED and NO_SHOW
are terminal in the default graph.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import Enum

from lifecycle_engine.core.exceptions import InvalidStatusTransition


class ReservationStatus(str, Enum):
    """Stored reservation status."""

    PENDING_CONFIRMATION = "CONFIRMATION_PENDING"
    CONFIRMATION_PENDING = "CONFIRMATION_PENDING"  # alias, same member
    CONFIRMED = "CONFIRMED"
    IN_HOUSE = "IN_HOUSE"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class DisplayStatus(str, Enum):
    """Derived labels for display only. Never stored, never a transition target."""

    CHECKIN_DUE = "CHECKIN_DUE"
    CHECKOUT_DUE = "CHECKOUT_DUE"


RESERVATION_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING_CONFIRMATION: frozenset(
        {ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}
    ),
    ReservationStatus.CONFIRMED: frozenset(
        {ReservationStatus.IN_HOUSE, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW}
    ),
    ReservationStatus.IN_HOUSE: frozenset(
        {ReservationStatus.CHECKED_OUT, ReservationStatus.CANCELLED}
    ),
    ReservationStatus.CHECKED_OUT: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.NO_SHOW: frozenset(),
}

# Reactivation edges, enabled by settings.allow_status_recovery
RECOVERY_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.NO_SHOW: frozenset({ReservationStatus.CONFIRMED}),
    ReservationStatus.CANCELLED: frozenset({ReservationStatus.CONFIRMED}),
}

ACTIVE_STATUSES = frozenset(
    {
        ReservationStatus.PENDING_CONFIRMATION,
        ReservationStatus.CONFIRMED,
        ReservationStatus.IN_HOUSE,
    }
)


class StatusGraph:
    """Static table of legal status transitions."""

    def __init__(
        self,
        transitions: Mapping[ReservationStatus, frozenset[ReservationStatus]] | None = None,
    ) -> None:
        table = transitions if transitions is not None else RESERVATION_TRANSITIONS
        self._transitions = {status: frozenset(targets) for status, targets in table.items()}

    @classmethod
    def with_recovery(cls) -> StatusGraph:
        """Default graph plus the NO_SHOW/CANCELLED -> CONFIRMED recovery edges."""
        merged = dict(RESERVATION_TRANSITIONS)
        for status, targets in RECOVERY_TRANSITIONS.items():
            merged[status] = merged.get(status, frozenset()) | targets
        return cls(merged)

    def allowed_targets(self, status: ReservationStatus) -> frozenset[ReservationStatus]:
        return self._transitions.get(status, frozenset())

    def is_terminal(self, status: ReservationStatus) -> bool:
        return not self.allowed_targets(status)

    def terminal_statuses(self) -> frozenset[ReservationStatus]:
        return frozenset(status for status in ReservationStatus if self.is_terminal(status))

    def can_transition(self, current: ReservationStatus, target: ReservationStatus) -> bool:
        if current == target:
            return False
        return target in self.allowed_targets(current)

    def assert_transition(self, current: ReservationStatus, target: ReservationStatus) -> None:
        """Validate a reservation status transition.

        Raises:
            InvalidStatusTransition: If the transition is not allowed
        """
        if not self.can_transition(current, target):
            raise InvalidStatusTransition(
                f"Invalid reservation transition: {current.value} → {target.value}"
            )


def display_status(
    status: ReservationStatus,
    check_in: datetime,
    check_out: datetime,
    now: datetime,
) -> ReservationStatus | DisplayStatus:
    """Label shown on calendars and lists for a stored status."""
    today = now.date()
    if status == ReservationStatus.CONFIRMED and check_in.date() <= today:
        return DisplayStatus.CHECKIN_DUE
    if status == ReservationStatus.IN_HOUSE and check_out.date() <= today:
        return DisplayStatus.CHECKOUT_DUE
    return status
