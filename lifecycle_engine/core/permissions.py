"""Role-based restrictions on reservation status transitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from lifecycle_engine.domain.reservation_state import ReservationStatus


class PropertyRole(str, Enum):
    """Roles a user can hold on a property."""

    GUEST_SERVICES = "GUEST_SERVICES"
    SECURITY = "SECURITY"
    MAINTENANCE = "MAINTENANCE"
    HOUSEKEEPING = "HOUSEKEEPING"
    IT_SUPPORT = "IT_SUPPORT"
    ACCOUNTANT = "ACCOUNTANT"
    FRONT_DESK = "FRONT_DESK"
    PROPERTY_MGR = "PROPERTY_MGR"
    ORG_ADMIN = "ORG_ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


# Higher number = more authority
ROLE_HIERARCHY: dict[PropertyRole, int] = {
    PropertyRole.GUEST_SERVICES: 1,
    PropertyRole.SECURITY: 2,
    PropertyRole.MAINTENANCE: 3,
    PropertyRole.HOUSEKEEPING: 4,
    PropertyRole.IT_SUPPORT: 4,
    PropertyRole.ACCOUNTANT: 5,
    PropertyRole.FRONT_DESK: 5,
    PropertyRole.PROPERTY_MGR: 6,
    PropertyRole.ORG_ADMIN: 7,
    PropertyRole.SUPER_ADMIN: 8,
}

MANAGER_ROLES = frozenset(
    role
    for role, level in ROLE_HIERARCHY.items()
    if level >= ROLE_HIERARCHY[PropertyRole.PROPERTY_MGR]
)


def has_role_level(role: PropertyRole, required: PropertyRole) -> bool:
    """Check if a role is at or above the required role in the hierarchy."""
    return ROLE_HIERARCHY.get(role, 0) >= ROLE_HIERARCHY[required]


def can_override_business_rules(role: PropertyRole) -> bool:
    """Managers and above may proceed despite business-rule violations."""
    return has_role_level(role, PropertyRole.PROPERTY_MGR)


Transition = tuple[ReservationStatus, ReservationStatus]


def _default_restrictions() -> dict[PropertyRole, frozenset[Transition]]:
    S = ReservationStatus
    pending_to_confirmed = (S.PENDING_CONFIRMATION, S.CONFIRMED)
    confirmed_to_cancelled = (S.CONFIRMED, S.CANCELLED)
    in_house_to_cancelled = (S.IN_HOUSE, S.CANCELLED)
    in_house_to_checked_out = (S.IN_HOUSE, S.CHECKED_OUT)

    operational = frozenset(
        {
            pending_to_confirmed,
            confirmed_to_cancelled,
            in_house_to_cancelled,
            in_house_to_checked_out,
        }
    )

    return {
        PropertyRole.FRONT_DESK: frozenset({in_house_to_cancelled, confirmed_to_cancelled}),
        PropertyRole.HOUSEKEEPING: frozenset(
            {pending_to_confirmed, confirmed_to_cancelled, in_house_to_cancelled}
        ),
        PropertyRole.MAINTENANCE: operational,
        PropertyRole.SECURITY: operational,
        PropertyRole.IT_SUPPORT: operational,
        PropertyRole.GUEST_SERVICES: frozenset({in_house_to_cancelled}),
        PropertyRole.ACCOUNTANT: frozenset({in_house_to_checked_out}),
    }


@dataclass(frozen=True)
class PermissionCheck:
    """Outcome of a role check for one transition."""

    requires_approval: bool = False
    reasons: tuple[str, ...] = field(default_factory=tuple)


class RolePermissionPolicy:
    """Per-role transition restrictions plus the critical-transition escalation.

    A restricted transition is never forbidden outright; it is routed to
    approval. Managers and above bypass the per-role table and the
    critical-transition check.
    """

    def __init__(
        self,
        restrictions: dict[PropertyRole, frozenset[Transition]] | None = None,
        critical_transitions: frozenset[Transition] | None = None,
    ) -> None:
        self._restrictions = restrictions if restrictions is not None else _default_restrictions()
        self._critical = (
            critical_transitions
            if critical_transitions is not None
            else frozenset(
                {
                    (ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED),
                    (ReservationStatus.IN_HOUSE, ReservationStatus.CANCELLED),
                }
            )
        )

    def restricted_transitions(self, role: PropertyRole) -> frozenset[Transition]:
        if role in MANAGER_ROLES:
            return frozenset()
        return self._restrictions.get(role, frozenset())

    def is_critical(self, source: ReservationStatus, target: ReservationStatus) -> bool:
        return (source, target) in self._critical

    def check(
        self,
        role: PropertyRole,
        source: ReservationStatus,
        target: ReservationStatus,
    ) -> PermissionCheck:
        """Return whether the role needs approval for source -> target."""
        reasons: list[str] = []

        if (source, target) in self.restricted_transitions(role):
            reasons.append(f"Role {role.value} requires approval for this transition")

        if self.is_critical(source, target) and not has_role_level(
            role, PropertyRole.PROPERTY_MGR
        ):
            reasons.append("Critical status change requires manager approval")

        return PermissionCheck(requires_approval=bool(reasons), reasons=tuple(reasons))
