"""Core exceptions and role permissions."""

from lifecycle_engine.core.exceptions import (
    AppException,
    InvalidStatusTransition,
    NotFoundError,
    StaleReservationError,
)

__all__ = [
    "AppException",
    "InvalidStatusTransition",
    "NotFoundError",
    "StaleReservationError",
]
