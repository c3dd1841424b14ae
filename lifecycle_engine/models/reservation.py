"""Reservation and status history database models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from lifecycle_engine.database import Base
from lifecycle_engine.models.property import new_id

if TYPE_CHECKING:
    from lifecycle_engine.models.property import Room


class Reservation(Base):
    """Reservation model."""

    __tablename__ = "reservations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    # Not a foreign key: a dangling property reference is reported by the integrity checker
    property_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    room_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("rooms.id", ondelete="SET NULL"), index=True
    )

    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="CONFIRMATION_PENDING", index=True
    )  # CONFIRMATION_PENDING, CONFIRMED, IN_HOUSE, CHECKED_OUT, CANCELLED, NO_SHOW

    # Guest
    guest_name: Mapped[str | None] = mapped_column(String(200))
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(30))
    guest_type: Mapped[str | None] = mapped_column(String(30))  # VIP, REGULAR
    booking_source: Mapped[str | None] = mapped_column(String(30))  # DIRECT, CORPORATE, OTA
    adults: Mapped[int] = mapped_column(Integer, default=1)
    children: Mapped[int] = mapped_column(Integer, default=0)

    # Stay
    check_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    check_out: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # Payment
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="UNPAID"
    )  # UNPAID, PARTIALLY_PAID, PAID, REFUNDED
    amount_captured: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    paid_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    deposit_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    total_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    room: Mapped["Room"] = relationship("Room", back_populates="reservations")
    status_history: Mapped[list["ReservationStatusHistory"]] = relationship(
        "ReservationStatusHistory",
        back_populates="reservation",
        order_by="ReservationStatusHistory.changed_at.desc()",
    )


class ReservationStatusHistory(Base):
    """Append-only record of applied status changes."""

    __tablename__ = "reservation_status_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    reservation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    previous_status: Mapped[str | None] = mapped_column(String(30))
    new_status: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by: Mapped[str | None] = mapped_column(String(36))
    change_reason: Mapped[str | None] = mapped_column(Text)
    is_automatic: Mapped[bool] = mapped_column(Boolean, default=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )

    # Relationships
    reservation: Mapped["Reservation"] = relationship(
        "Reservation", back_populates="status_history"
    )
