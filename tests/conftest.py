"""Shared fixtures for the lifecycle engine tests.

- AnyIO is the async runner (@pytest.mark.anyio), forced onto asyncio.
- Engine tests run against the in-memory reservation store.
- Database tests use a throwaway aiosqlite file per test.
"""

import os

# Must be set before lifecycle_engine.config is imported anywhere
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

import httpx
import pytest
from httpx import ASGITransport

from lifecycle_engine.config import Settings
from lifecycle_engine.core.permissions import PropertyRole
from lifecycle_engine.domain.payment_progress import PaymentStatus
from lifecycle_engine.domain.reservation_state import ReservationStatus
from lifecycle_engine.schemas.reservation import ReservationRecord, RoomRef
from lifecycle_engine.schemas.transition import StatusTransitionContext
from lifecycle_engine.services.engine import LifecycleEngine
from lifecycle_engine.services.reservation_store import InMemoryReservationStore

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)
ORG_ID = "org-1"
PROPERTY_ID = "prop-1"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio event loop."""
    return "asyncio"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def factory(**overrides: Any) -> Settings:
        return Settings(_env_file=None, **overrides)

    return factory


@pytest.fixture
def settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


@pytest.fixture
def make_reservation() -> Callable[..., ReservationRecord]:
    """Confirmed, fully paid two-night stay starting at NOW in room-1."""

    def factory(**overrides: Any) -> ReservationRecord:
        data: dict[str, Any] = {
            "id": "res-1",
            "property_id": PROPERTY_ID,
            "organization_id": ORG_ID,
            "status": ReservationStatus.CONFIRMED,
            "guest_name": "Ada Lovelace",
            "email": "ada@example.com",
            "phone": "+441234567890",
            "check_in": NOW,
            "check_out": NOW + timedelta(days=2),
            "payment_status": PaymentStatus.PAID,
            "amount_captured": Decimal("5000"),
            "paid_amount": Decimal("5000"),
            "deposit_amount": Decimal("1000"),
            "total_amount": Decimal("5000"),
            "room_id": "room-1",
            "room": RoomRef(id="room-1", name="101", capacity=2),
            "adults": 2,
            "children": 0,
            "created_at": NOW - timedelta(days=5),
        }
        data.update(overrides)
        return ReservationRecord(**data)

    return factory


@pytest.fixture
def make_context() -> Callable[..., StatusTransitionContext]:
    """Context for moving `record` to `new_status`, as seen by `role` at `now`."""

    def factory(
        record: ReservationRecord,
        new_status: ReservationStatus,
        role: PropertyRole = PropertyRole.PROPERTY_MGR,
        now: datetime = NOW,
        **overrides: Any,
    ) -> StatusTransitionContext:
        data: dict[str, Any] = {
            "reservation_id": record.id,
            "current_status": record.status,
            "new_status": new_status,
            "reason": "Requested at the front desk",
            "user_id": "user-1",
            "user_role": role,
            "property_id": record.property_id,
            "organization_id": record.organization_id,
            "reservation": record.to_snapshot(),
            "now": now,
        }
        data.update(overrides)
        return StatusTransitionContext(**data)

    return factory


@pytest.fixture
def store() -> InMemoryReservationStore:
    return InMemoryReservationStore()


@pytest.fixture
def engine(settings: Settings, store: InMemoryReservationStore) -> LifecycleEngine:
    return LifecycleEngine.build(settings, store)


@pytest.fixture
async def async_client(engine: LifecycleEngine) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client bound to an app serving the in-memory engine."""
    from lifecycle_engine.main import create_application

    app = create_application(engine=engine)
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
