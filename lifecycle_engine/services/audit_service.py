"""Status change audit trail service."""

from datetime import datetime

from lifecycle_engine.domain.reservation_state import ReservationStatus
from lifecycle_engine.schemas.reservation import StatusHistoryEntry
from lifecycle_engine.services.reservation_store import ReservationStore


class StatusAuditService:
    """Append-only audit of applied status changes.

    Called by whoever applied a transition, never by the validator.
    """

    def __init__(self, store: ReservationStore) -> None:
        self.store = store

    async def log_status_change(
        self,
        reservation_id: str,
        previous_status: ReservationStatus | None,
        new_status: ReservationStatus,
        changed_by: str,
        changed_at: datetime,
        reason: str | None = None,
        is_automatic: bool = False,
    ) -> StatusHistoryEntry:
        """Log an applied status change (immutable).

        Args:
            reservation_id: Reservation that changed
            previous_status: Status before the change
            new_status: Status after the change
            changed_by: User id, or the automation user id
            changed_at: When the change was applied
            reason: Free-text reason given by the caller
            is_automatic: Whether the sweep applied it

        Returns:
            Created history entry
        """
        entry = StatusHistoryEntry(
            reservation_id=reservation_id,
            previous_status=previous_status,
            new_status=new_status,
            changed_by=changed_by,
            change_reason=reason,
            changed_at=changed_at,
            is_automatic=is_automatic,
        )
        await self.store.append_status_history(entry)
        return entry
