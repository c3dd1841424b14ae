"""Reservation store record schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_validator

from lifecycle_engine.domain.payment_progress import PaymentStatus
from lifecycle_engine.domain.reservation_state import ReservationStatus
from lifecycle_engine.schemas.transition import ReservationSnapshot, ensure_aware


class RoomRef(BaseModel):
    """Resolved room reference."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str | None = None
    capacity: int


class ReservationRecord(BaseModel):
    """Reservation as returned by a reservation store."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    property_id: str
    organization_id: str
    status: ReservationStatus
    guest_name: str | None = None
    email: str | None = None
    phone: str | None = None
    check_in: datetime
    check_out: datetime
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    amount_captured: Decimal | None = None
    paid_amount: Decimal | None = None
    deposit_amount: Decimal | None = None
    total_amount: Decimal | None = None
    room_id: str | None = None
    room: RoomRef | None = None
    property_exists: bool = True
    adults: int = 1
    children: int = 0
    created_at: datetime | None = None
    guest_type: str | None = None
    booking_source: str | None = None

    @field_validator("check_in", "check_out", "created_at")
    @classmethod
    def validate_timezone(cls, v: datetime | None) -> datetime | None:
        return ensure_aware(v) if v is not None else None

    @property
    def total_guests(self) -> int:
        return self.adults + self.children

    def to_snapshot(self) -> ReservationSnapshot:
        return ReservationSnapshot(
            guest_name=self.guest_name,
            check_in=self.check_in,
            check_out=self.check_out,
            payment_status=self.payment_status,
            amount_captured=self.amount_captured,
            paid_amount=self.paid_amount,
            deposit_amount=self.deposit_amount,
            total_amount=self.total_amount,
            room_id=self.room_id,
            adults=self.adults,
            children=self.children,
            created_at=self.created_at,
            guest_type=self.guest_type,
            booking_source=self.booking_source,
        )


class StatusHistoryEntry(BaseModel):
    """One recorded status change."""

    model_config = ConfigDict(from_attributes=True)

    reservation_id: str
    previous_status: ReservationStatus | None = None
    new_status: ReservationStatus
    changed_by: str | None = None
    change_reason: str | None = None
    changed_at: datetime
    is_automatic: bool = False

    @field_validator("changed_at")
    @classmethod
    def validate_timezone(cls, v: datetime) -> datetime:
        return ensure_aware(v)
