"""Automatic status resolution for scheduled automation."""

from datetime import datetime

from lifecycle_engine.domain.reservation_state import ReservationStatus


def resolve_automatic_status(
    current_status: ReservationStatus,
    payment_percentage: float,
    check_in: datetime,
    check_out: datetime,
    now: datetime,
) -> ReservationStatus:
    """Infer the status a reservation should have at `now`.

    Args:
        current_status: Stored status
        payment_percentage: Paid share of the deposit, 0 - 100
        check_in: Scheduled check-in instant
        check_out: Scheduled check-out instant
        now: Evaluation instant

    Returns:
        ReservationStatus: The inferred status (unchanged when nothing applies)
    """
    is_after_check_in = now >= check_in
    is_after_check_out = now >= check_out
    is_fully_paid = payment_percentage >= 100

    if current_status == ReservationStatus.CHECKED_OUT:
        return current_status

    if current_status == ReservationStatus.IN_HOUSE and is_after_check_out:
        return ReservationStatus.CHECKED_OUT

    if current_status == ReservationStatus.CONFIRMED and is_after_check_in and is_fully_paid:
        return ReservationStatus.IN_HOUSE

    if current_status == ReservationStatus.PENDING_CONFIRMATION and is_fully_paid:
        return ReservationStatus.IN_HOUSE if is_after_check_in else ReservationStatus.CONFIRMED

    return current_status
