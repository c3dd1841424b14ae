"""Payment progress of a reservation.

Two views are used by the engine:
- payment fraction: paid / deposit, capped at 1.0 (rule conditions, automation)
- paid amount vs. total due: threshold checks for confirmation and check-in
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from math import ceil
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lifecycle_engine.schemas.transition import ReservationSnapshot


class PaymentStatus(str, Enum):
    """Reservation payment status."""

    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


# Assumed fraction paid when explicit amounts are missing
STATUS_PAYMENT_FRACTION: dict[PaymentStatus, float] = {
    PaymentStatus.PAID: 1.0,
    PaymentStatus.PARTIALLY_PAID: 0.5,
    PaymentStatus.UNPAID: 0.0,
    PaymentStatus.REFUNDED: 0.0,
}


def payment_fraction(snapshot: ReservationSnapshot) -> float:
    """Fraction of the deposit that has been paid, 0.0 - 1.0."""
    if snapshot.deposit_amount and snapshot.paid_amount is not None:
        fraction = float(snapshot.paid_amount / snapshot.deposit_amount)
        return max(0.0, min(fraction, 1.0))
    return STATUS_PAYMENT_FRACTION.get(snapshot.payment_status, 0.0)


def payment_percentage(snapshot: ReservationSnapshot) -> float:
    """Payment fraction on a 0 - 100 scale."""
    return payment_fraction(snapshot) * 100


def estimated_total(snapshot: ReservationSnapshot, nightly_rate: int) -> Decimal:
    """Fallback total when the reservation carries no total amount."""
    seconds = (snapshot.check_out - snapshot.check_in).total_seconds()
    nights = max(1, ceil(seconds / 86400))
    return Decimal(nightly_rate) * nights


def total_due(snapshot: ReservationSnapshot, nightly_rate: int) -> Decimal:
    if snapshot.total_amount:
        return snapshot.total_amount
    return estimated_total(snapshot, nightly_rate)


def paid_amount(snapshot: ReservationSnapshot, nightly_rate: int) -> Decimal:
    """Amount paid so far, estimated from payment status when not recorded."""
    if snapshot.paid_amount is not None:
        return snapshot.paid_amount

    total = total_due(snapshot, nightly_rate)
    if snapshot.payment_status == PaymentStatus.PAID:
        return total
    if snapshot.payment_status == PaymentStatus.PARTIALLY_PAID:
        return snapshot.deposit_amount or total * Decimal("0.5")
    return Decimal("0")
