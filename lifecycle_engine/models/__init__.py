"""Database models."""

from lifecycle_engine.models.property import Property, Room
from lifecycle_engine.models.reservation import Reservation, ReservationStatusHistory
from lifecycle_engine.models.rule import StatusBusinessRule

__all__ = [
    # Property
    "Property",
    "Room",
    # Reservation
    "Reservation",
    "ReservationStatusHistory",
    # Rules
    "StatusBusinessRule",
]
