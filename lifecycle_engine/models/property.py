"""Property and room database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from lifecycle_engine.database import Base

if TYPE_CHECKING:
    from lifecycle_engine.models.reservation import Reservation


def new_id() -> str:
    return str(uuid.uuid4())


class Property(Base):
    """A property owned by an organization."""

    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    timezone: Mapped[str] = mapped_column(String(50), default="UTC")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    rooms: Mapped[list["Room"]] = relationship("Room", back_populates="property")


class Room(Base):
    """Bookable room."""

    __tablename__ = "rooms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    property_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=2)

    # Relationships
    property: Mapped["Property"] = relationship("Property", back_populates="rooms")
    reservations: Mapped[list["Reservation"]] = relationship(
        "Reservation", back_populates="room"
    )
