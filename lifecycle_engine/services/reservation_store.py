"""Reservation store: the read/write collaborator the engine depends on.

`ReservationStore` is the interface. `InMemoryReservationStore` backs
tests and local tooling; `SqlAlchemyReservationStore` backs the API and
the scheduled sweep.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from lifecycle_engine.core.exceptions import NotFoundError, StaleReservationError
from lifecycle_engine.domain.reservation_state import ACTIVE_STATUSES, ReservationStatus, StatusGraph
from lifecycle_engine.models.property import Property
from lifecycle_engine.models.reservation import Reservation, ReservationStatusHistory
from lifecycle_engine.schemas.reservation import ReservationRecord, RoomRef, StatusHistoryEntry

logger = logging.getLogger(__name__)

# Fields an auto-fix is allowed to write
UPDATABLE_FIELDS = frozenset({"adults", "deposit_amount", "amount_captured", "paid_amount"})


class ReservationStore(ABC):
    """Abstract reservation store."""

    @abstractmethod
    async def get_reservation(self, reservation_id: str) -> ReservationRecord | None:
        """Load one reservation with its room resolved."""

    @abstractmethod
    async def find_overlapping(
        self,
        room_id: str,
        check_in: datetime,
        check_out: datetime,
        statuses: Iterable[ReservationStatus],
        exclude_id: str | None = None,
    ) -> list[ReservationRecord]:
        """Reservations on the room whose stay overlaps [check_in, check_out)."""

    @abstractmethod
    async def recent_status_history(
        self, reservation_id: str, limit: int
    ) -> list[StatusHistoryEntry]:
        """Most recent history entries, newest first."""

    @abstractmethod
    async def update_reservation(
        self, reservation_id: str, changes: dict[str, Any]
    ) -> ReservationRecord:
        """Write field corrections. Raises NotFoundError."""

    @abstractmethod
    async def append_status_history(self, entry: StatusHistoryEntry) -> None:
        """Record one applied status change."""

    @abstractmethod
    async def find_sweep_candidates(
        self, now: datetime, property_id: str | None = None
    ) -> list[ReservationRecord]:
        """Active reservations the automation sweep should look at."""

    @abstractmethod
    async def find_departures(
        self,
        property_id: str,
        start: datetime,
        end: datetime,
        statuses: Iterable[ReservationStatus],
    ) -> list[ReservationRecord]:
        """Reservations of the property checking out within [start, end), by check-out."""

    @abstractmethod
    async def apply_status_change(
        self,
        reservation_id: str,
        expected_status: ReservationStatus,
        new_status: ReservationStatus,
    ) -> ReservationRecord:
        """Set the status if it still equals `expected_status`.

        Raises:
            NotFoundError: If the reservation does not exist
            StaleReservationError: If the stored status changed meanwhile
            InvalidStatusTransition: If the change is not a graph edge
        """


def _check_updatable(changes: dict[str, Any]) -> None:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")


class InMemoryReservationStore(ReservationStore):
    """Dict-backed store. Records are immutable and replaced on write."""

    def __init__(
        self,
        reservations: Iterable[ReservationRecord] = (),
        history: Iterable[StatusHistoryEntry] = (),
        graph: StatusGraph | None = None,
    ) -> None:
        self._reservations: dict[str, ReservationRecord] = {r.id: r for r in reservations}
        self._history: list[StatusHistoryEntry] = list(history)
        self._graph = graph or StatusGraph()

    def add(self, record: ReservationRecord) -> None:
        self._reservations[record.id] = record

    def add_history(self, entry: StatusHistoryEntry) -> None:
        self._history.append(entry)

    async def get_reservation(self, reservation_id: str) -> ReservationRecord | None:
        return self._reservations.get(reservation_id)

    async def find_overlapping(
        self,
        room_id: str,
        check_in: datetime,
        check_out: datetime,
        statuses: Iterable[ReservationStatus],
        exclude_id: str | None = None,
    ) -> list[ReservationRecord]:
        wanted = frozenset(statuses)
        return [
            r
            for r in self._reservations.values()
            if r.room_id == room_id
            and r.id != exclude_id
            and r.status in wanted
            and r.check_in < check_out
            and r.check_out > check_in
        ]

    async def recent_status_history(
        self, reservation_id: str, limit: int
    ) -> list[StatusHistoryEntry]:
        entries = [e for e in self._history if e.reservation_id == reservation_id]
        entries.sort(key=lambda e: e.changed_at, reverse=True)
        return entries[:limit]

    async def update_reservation(
        self, reservation_id: str, changes: dict[str, Any]
    ) -> ReservationRecord:
        _check_updatable(changes)
        record = self._reservations.get(reservation_id)
        if record is None:
            raise NotFoundError("Reservation", reservation_id)
        updated = record.model_copy(update=changes)
        self._reservations[reservation_id] = updated
        return updated

    async def append_status_history(self, entry: StatusHistoryEntry) -> None:
        self._history.append(entry)

    async def find_sweep_candidates(
        self, now: datetime, property_id: str | None = None
    ) -> list[ReservationRecord]:
        candidates = [
            r
            for r in self._reservations.values()
            if r.status in ACTIVE_STATUSES
            and (property_id is None or r.property_id == property_id)
        ]
        return sorted(candidates, key=lambda r: (r.check_in, r.id))

    async def find_departures(
        self,
        property_id: str,
        start: datetime,
        end: datetime,
        statuses: Iterable[ReservationStatus],
    ) -> list[ReservationRecord]:
        wanted = frozenset(statuses)
        departures = [
            r
            for r in self._reservations.values()
            if r.property_id == property_id and r.status in wanted and start <= r.check_out < end
        ]
        return sorted(departures, key=lambda r: (r.check_out, r.id))

    async def apply_status_change(
        self,
        reservation_id: str,
        expected_status: ReservationStatus,
        new_status: ReservationStatus,
    ) -> ReservationRecord:
        record = self._reservations.get(reservation_id)
        if record is None:
            raise NotFoundError("Reservation", reservation_id)
        if record.status != expected_status:
            raise StaleReservationError()
        self._graph.assert_transition(record.status, new_status)
        updated = record.model_copy(update={"status": new_status})
        self._reservations[reservation_id] = updated
        return updated


class SqlAlchemyReservationStore(ReservationStore):
    """Store backed by the `reservations` and `reservation_status_history` tables.

    Each call opens its own session from the factory so concurrent sweep
    workers never share a session.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        graph: StatusGraph | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._graph = graph or StatusGraph()

    async def _property_exists(self, db: AsyncSession, property_id: str) -> bool:
        result = await db.execute(select(Property.id).where(Property.id == property_id))
        return result.scalar_one_or_none() is not None

    async def _to_record(self, db: AsyncSession, reservation: Reservation) -> ReservationRecord:
        room = None
        if reservation.room is not None:
            room = RoomRef(
                id=reservation.room.id,
                name=reservation.room.name,
                capacity=reservation.room.capacity,
            )
        return ReservationRecord(
            id=reservation.id,
            property_id=reservation.property_id,
            organization_id=reservation.organization_id,
            status=ReservationStatus(reservation.status),
            guest_name=reservation.guest_name,
            email=reservation.email,
            phone=reservation.phone,
            check_in=reservation.check_in,
            check_out=reservation.check_out,
            payment_status=reservation.payment_status,
            amount_captured=reservation.amount_captured,
            paid_amount=reservation.paid_amount,
            deposit_amount=reservation.deposit_amount,
            total_amount=reservation.total_amount,
            room_id=reservation.room_id,
            room=room,
            property_exists=await self._property_exists(db, reservation.property_id),
            adults=reservation.adults,
            children=reservation.children,
            created_at=reservation.created_at,
            guest_type=reservation.guest_type,
            booking_source=reservation.booking_source,
        )

    async def _load(self, db: AsyncSession, reservation_id: str) -> Reservation | None:
        result = await db.execute(
            select(Reservation)
            .options(selectinload(Reservation.room))
            .where(Reservation.id == reservation_id)
        )
        return result.scalar_one_or_none()

    async def get_reservation(self, reservation_id: str) -> ReservationRecord | None:
        async with self._session_factory() as db:
            reservation = await self._load(db, reservation_id)
            if reservation is None:
                return None
            return await self._to_record(db, reservation)

    async def find_overlapping(
        self,
        room_id: str,
        check_in: datetime,
        check_out: datetime,
        statuses: Iterable[ReservationStatus],
        exclude_id: str | None = None,
    ) -> list[ReservationRecord]:
        query = (
            select(Reservation)
            .options(selectinload(Reservation.room))
            .where(
                Reservation.room_id == room_id,
                Reservation.status.in_([s.value for s in statuses]),
                Reservation.check_in < check_out,
                Reservation.check_out > check_in,
            )
        )
        if exclude_id is not None:
            query = query.where(Reservation.id != exclude_id)

        async with self._session_factory() as db:
            result = await db.execute(query)
            return [await self._to_record(db, r) for r in result.scalars().all()]

    async def recent_status_history(
        self, reservation_id: str, limit: int
    ) -> list[StatusHistoryEntry]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ReservationStatusHistory)
                .where(ReservationStatusHistory.reservation_id == reservation_id)
                .order_by(ReservationStatusHistory.changed_at.desc())
                .limit(limit)
            )
            return [StatusHistoryEntry.model_validate(row) for row in result.scalars().all()]

    async def update_reservation(
        self, reservation_id: str, changes: dict[str, Any]
    ) -> ReservationRecord:
        _check_updatable(changes)
        async with self._session_factory() as db:
            reservation = await self._load(db, reservation_id)
            if reservation is None:
                raise NotFoundError("Reservation", reservation_id)
            for field, value in changes.items():
                setattr(reservation, field, value)
            await db.commit()
            logger.info(f"Reservation {reservation_id} updated: {sorted(changes)}")
            return await self._to_record(db, reservation)

    async def append_status_history(self, entry: StatusHistoryEntry) -> None:
        async with self._session_factory() as db:
            db.add(
                ReservationStatusHistory(
                    reservation_id=entry.reservation_id,
                    previous_status=entry.previous_status.value if entry.previous_status else None,
                    new_status=entry.new_status.value,
                    changed_by=entry.changed_by,
                    change_reason=entry.change_reason,
                    is_automatic=entry.is_automatic,
                    changed_at=entry.changed_at,
                )
            )
            await db.commit()

    async def find_sweep_candidates(
        self, now: datetime, property_id: str | None = None
    ) -> list[ReservationRecord]:
        query = (
            select(Reservation)
            .options(selectinload(Reservation.room))
            .where(Reservation.status.in_([s.value for s in ACTIVE_STATUSES]))
            .order_by(Reservation.check_in, Reservation.id)
        )
        if property_id is not None:
            query = query.where(Reservation.property_id == property_id)

        async with self._session_factory() as db:
            result = await db.execute(query)
            return [await self._to_record(db, r) for r in result.scalars().all()]

    async def find_departures(
        self,
        property_id: str,
        start: datetime,
        end: datetime,
        statuses: Iterable[ReservationStatus],
    ) -> list[ReservationRecord]:
        query = (
            select(Reservation)
            .options(selectinload(Reservation.room))
            .where(
                Reservation.property_id == property_id,
                Reservation.status.in_([s.value for s in statuses]),
                Reservation.check_out >= start,
                Reservation.check_out < end,
            )
            .order_by(Reservation.check_out, Reservation.id)
        )
        async with self._session_factory() as db:
            result = await db.execute(query)
            return [await self._to_record(db, r) for r in result.scalars().all()]

    async def apply_status_change(
        self,
        reservation_id: str,
        expected_status: ReservationStatus,
        new_status: ReservationStatus,
    ) -> ReservationRecord:
        self._graph.assert_transition(expected_status, new_status)

        async with self._session_factory() as db:
            result = await db.execute(
                update(Reservation)
                .where(
                    Reservation.id == reservation_id,
                    Reservation.status == expected_status.value,
                )
                .values(status=new_status.value)
            )
            if result.rowcount == 0:
                await db.rollback()
                if await self._load(db, reservation_id) is None:
                    raise NotFoundError("Reservation", reservation_id)
                raise StaleReservationError()
            await db.commit()

            reservation = await self._load(db, reservation_id)
            return await self._to_record(db, reservation)
