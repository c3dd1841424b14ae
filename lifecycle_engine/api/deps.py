"""API dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from lifecycle_engine.core.exceptions import NotFoundError
from lifecycle_engine.schemas.reservation import ReservationRecord
from lifecycle_engine.services.engine import LifecycleEngine


def get_engine(request: Request) -> LifecycleEngine:
    """Engine built at application start."""
    return request.app.state.engine


class ReservationLoader:
    """Load the reservation named in the path or raise 404."""

    async def __call__(
        self,
        reservation_id: str,
        engine: Annotated[LifecycleEngine, Depends(get_engine)],
    ) -> ReservationRecord:
        reservation = await engine.store.get_reservation(reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation", reservation_id)
        return reservation


require_reservation = ReservationLoader()
