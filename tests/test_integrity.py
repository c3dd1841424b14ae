"""Tests for the data integrity checker and auto-fixes."""

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from lifecycle_engine.domain.payment_progress import PaymentStatus
from lifecycle_engine.domain.reservation_state import ReservationStatus
from lifecycle_engine.schemas.integrity import (
    DataIntegrityIssue,
    FixCode,
    IssueSeverity,
    IssueType,
)
from lifecycle_engine.schemas.reservation import RoomRef, StatusHistoryEntry
from lifecycle_engine.services.integrity_service import DataIntegrityChecker, operational_day_start
from lifecycle_engine.services.reservation_store import InMemoryReservationStore

S = ReservationStatus


class FailingStore(InMemoryReservationStore):
    """Store whose reads fail on demand."""

    def __init__(self, *args, fail_load=False, history_delay=None, fail_history=False, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_load = fail_load
        self.history_delay = history_delay
        self.fail_history = fail_history

    async def get_reservation(self, reservation_id):
        if self.fail_load:
            raise ConnectionError("database unavailable")
        return await super().get_reservation(reservation_id)

    async def recent_status_history(self, reservation_id, limit):
        if self.history_delay is not None:
            await asyncio.sleep(self.history_delay)
        if self.fail_history:
            raise ConnectionError("database unavailable")
        return await super().recent_status_history(reservation_id, limit)


@pytest.fixture
def checker(store, settings) -> DataIntegrityChecker:
    return DataIntegrityChecker(store, settings)


def by_fix(result, fix_code):
    return [issue for issue in result.issues if issue.fix_code == fix_code]


@pytest.mark.anyio
async def test_clean_reservation_has_no_issues(checker, store, make_reservation, make_context) -> None:
    record = make_reservation()
    store.add(record)

    result = await checker.check(make_context(record, S.IN_HOUSE))

    assert result.issues == []
    assert result.warnings == []
    assert result.is_valid
    assert result.reservation_found


@pytest.mark.anyio
async def test_missing_reservation(checker, make_reservation, make_context) -> None:
    result = await checker.check(make_context(make_reservation(), S.IN_HOUSE))

    assert not result.reservation_found
    assert len(result.issues) == 1
    issue = result.issues[0]
    assert issue.type == IssueType.MISSING_DATA
    assert issue.severity == IssueSeverity.CRITICAL
    assert issue.description == "Reservation record not found"


@pytest.mark.anyio
async def test_consistency_issues(checker, store, make_reservation, make_context, now) -> None:
    record = make_reservation(adults=0, children=3, check_out=now - timedelta(hours=1))
    store.add(record)

    result = await checker.check(make_context(record, S.IN_HOUSE))
    descriptions = {issue.description: issue for issue in result.issues}

    dates = descriptions["Check-in date is not before check-out date"]
    assert (dates.type, dates.severity) == (IssueType.INCONSISTENCY, IssueSeverity.HIGH)

    adults = descriptions["Adult count must be at least 1"]
    assert adults.severity == IssueSeverity.MEDIUM
    assert adults.auto_fixable and adults.fix_code == FixCode.CLAMP_ADULTS

    capacity = descriptions["Guest count (3) exceeds room capacity (2)"]
    assert capacity.type == IssueType.BUSINESS_RULE_VIOLATION
    assert not result.is_valid
    assert result.auto_fixable == [adults]


@pytest.mark.anyio
async def test_foreign_reservation_is_an_invalid_reference(
    checker, store, make_reservation, make_context
) -> None:
    record = make_reservation()
    store.add(record)

    result = await checker.check(
        make_context(record, S.IN_HOUSE, property_id="prop-9", organization_id="org-9")
    )

    assert [(i.type, i.severity) for i in result.issues] == [
        (IssueType.INVALID_REFERENCE, IssueSeverity.CRITICAL),
        (IssueType.INVALID_REFERENCE, IssueSeverity.CRITICAL),
    ]


@pytest.mark.anyio
async def test_dangling_room_and_property(checker, store, make_reservation, make_context) -> None:
    record = make_reservation(room=None, property_exists=False)
    store.add(record)

    result = await checker.check(make_context(record, S.IN_HOUSE))
    descriptions = {issue.description: issue.severity for issue in result.issues}

    assert descriptions == {
        "Referenced room does not exist": IssueSeverity.HIGH,
        "Referenced property does not exist": IssueSeverity.CRITICAL,
    }


@pytest.mark.anyio
async def test_room_conflict_on_check_in(checker, store, make_reservation, make_context, now) -> None:
    record = make_reservation()
    store.add(record)
    store.add(make_reservation(id="res-2", check_in=now + timedelta(days=1), check_out=now + timedelta(days=3)))
    store.add(make_reservation(id="res-3", check_in=now + timedelta(days=2), check_out=now + timedelta(days=4)))
    store.add(make_reservation(id="res-4", status=S.CANCELLED))

    result = await checker.check(make_context(record, S.IN_HOUSE))
    conflicts = [issue for issue in result.issues if issue.type == IssueType.CONFLICT]

    assert len(conflicts) == 1
    assert conflicts[0].severity == IssueSeverity.HIGH
    assert conflicts[0].related_records == ["res-2"]

    cancel = await checker.check(make_context(record, S.CANCELLED))
    assert not [issue for issue in cancel.issues if issue.type == IssueType.CONFLICT]


@pytest.mark.anyio
async def test_payment_issues(checker, store, make_reservation, make_context) -> None:
    record = make_reservation(
        amount_captured=Decimal("200"),
        deposit_amount=Decimal("500"),
        paid_amount=Decimal("-10"),
    )
    store.add(record)

    result = await checker.check(make_context(record, S.IN_HOUSE))

    assert [i.description for i in result.issues if i.severity == IssueSeverity.HIGH] == [
        "Paid amount cannot be negative"
    ]
    assert len(by_fix(result, FixCode.CLAMP_DEPOSIT)) == 1


@pytest.mark.anyio
async def test_confirming_unpaid_reservation_warns(
    checker, store, make_reservation, make_context
) -> None:
    record = make_reservation(
        status=S.PENDING_CONFIRMATION,
        payment_status="UNPAID",
        paid_amount=None,
        deposit_amount=None,
    )
    store.add(record)

    result = await checker.check(make_context(record, S.CONFIRMED))

    assert result.warnings == ["Confirming reservation without any payment received"]


@pytest.mark.anyio
async def test_guest_data(checker, store, make_reservation, make_context) -> None:
    record = make_reservation(guest_name=" A ", email=None, phone=None)
    store.add(record)

    result = await checker.check(make_context(record, S.IN_HOUSE))
    severities = {issue.description: issue.severity for issue in result.issues}

    assert severities == {
        "Guest name is missing or too short": IssueSeverity.HIGH,
        "No contact information available for guest": IssueSeverity.LOW,
    }


@pytest.mark.anyio
async def test_status_history_checks(checker, store, make_reservation, make_context, now) -> None:
    record = make_reservation(status=S.IN_HOUSE)
    store.add(record)
    store.add_history(
        StatusHistoryEntry(
            reservation_id=record.id,
            previous_status=S.IN_HOUSE,
            new_status=S.CHECKED_OUT,
            changed_at=now - timedelta(minutes=2),
        )
    )

    result = await checker.check(make_context(record, S.CHECKED_OUT))

    assert "Similar status change was made recently" in result.warnings
    mismatch = by_fix(result, FixCode.SYNC_STATUS_HISTORY)
    assert len(mismatch) == 1
    assert mismatch[0].severity == IssueSeverity.MEDIUM


@pytest.mark.anyio
async def test_policy_compliance(checker, store, make_reservation, make_context, now) -> None:
    record = make_reservation(check_in=now + timedelta(hours=3))
    store.add(record)

    no_show = await checker.check(make_context(record, S.NO_SHOW))
    assert [i.description for i in no_show.issues] == ["No-show cannot be marked before check-in time"]

    cancel = await checker.check(make_context(record, S.CANCELLED))
    assert cancel.warnings == ["Cancellation within 24 hours may incur fees"]


@pytest.mark.anyio
async def test_load_failure_becomes_critical_issue(settings, make_reservation, make_context) -> None:
    checker = DataIntegrityChecker(FailingStore(fail_load=True), settings)

    result = await checker.check(make_context(make_reservation(), S.IN_HOUSE))

    assert [(i.severity, i.description) for i in result.issues] == [
        (IssueSeverity.CRITICAL, "Failed to load reservation data")
    ]
    assert result.reservation_found


@pytest.mark.anyio
async def test_secondary_read_failure_is_medium(settings, make_reservation, make_context) -> None:
    record = make_reservation()
    checker = DataIntegrityChecker(FailingStore([record], fail_history=True), settings)

    result = await checker.check(make_context(record, S.IN_HOUSE))

    assert [(i.severity, i.description) for i in result.issues] == [
        (IssueSeverity.MEDIUM, "Failed to validate status history")
    ]
    assert result.is_valid


@pytest.mark.anyio
async def test_secondary_read_timeout_is_medium(make_settings, make_reservation, make_context) -> None:
    record = make_reservation()
    settings = make_settings(integrity_read_timeout_seconds=0.05)
    checker = DataIntegrityChecker(FailingStore([record], history_delay=1.0), settings)

    result = await checker.check(make_context(record, S.IN_HOUSE))

    assert [(i.severity, i.description) for i in result.issues] == [
        (IssueSeverity.MEDIUM, "Timed out while validating status history")
    ]


# ==================== AUTO-FIX ====================


@pytest.mark.anyio
async def test_auto_fix_is_idempotent(checker, store, make_reservation, make_context) -> None:
    record = make_reservation(adults=0)
    store.add(record)
    issues = (await checker.check(make_context(record, S.IN_HOUSE))).auto_fixable

    first = await checker.auto_fix_issues(record.id, issues)
    second = await checker.auto_fix_issues(record.id, issues)

    assert (first.fixed, first.failed) == (1, 0)
    assert (second.fixed, second.failed) == (0, 0)
    assert (await store.get_reservation(record.id)).adults == 1


@pytest.mark.anyio
async def test_auto_fix_clamps_deposit(checker, store, make_reservation, make_context) -> None:
    record = make_reservation(amount_captured=Decimal("200"), deposit_amount=Decimal("500"))
    store.add(record)
    issues = (await checker.check(make_context(record, S.IN_HOUSE))).auto_fixable

    result = await checker.auto_fix_issues(record.id, issues)

    assert result.fixed == 1
    assert (await store.get_reservation(record.id)).deposit_amount == Decimal("200")


@pytest.mark.anyio
async def test_auto_fix_syncs_status_history(
    checker, store, make_reservation, make_context, now
) -> None:
    record = make_reservation(status=S.CONFIRMED)
    store.add(record)
    store.add_history(
        StatusHistoryEntry(
            reservation_id=record.id,
            new_status=S.PENDING_CONFIRMATION,
            changed_at=now - timedelta(days=3),
        )
    )
    issues = (await checker.check(make_context(record, S.IN_HOUSE))).auto_fixable

    first = await checker.auto_fix_issues(record.id, issues, now=now)
    second = await checker.auto_fix_issues(record.id, issues, now=now)

    assert (first.fixed, second.fixed) == (1, 0)
    latest = (await store.recent_status_history(record.id, 1))[0]
    assert latest.previous_status == S.PENDING_CONFIRMATION
    assert latest.new_status == S.CONFIRMED
    assert latest.is_automatic


@pytest.mark.anyio
async def test_auto_fix_reports_unfixable_issues(checker, store, make_reservation) -> None:
    record = make_reservation()
    store.add(record)
    issues = [
        DataIntegrityIssue(
            type=IssueType.CONFLICT,
            severity=IssueSeverity.HIGH,
            description="Room double-booked",
            auto_fixable=True,
        ),
        DataIntegrityIssue(
            type=IssueType.MISSING_DATA,
            severity=IssueSeverity.HIGH,
            description="Guest name is missing or too short",
        ),
    ]

    result = await checker.auto_fix_issues(record.id, issues)

    assert (result.fixed, result.failed) == (0, 1)
    assert result.errors == ["Failed to fix Room double-booked: No auto-fix available"]


@pytest.mark.anyio
async def test_auto_fix_counts_store_failures(settings) -> None:
    checker = DataIntegrityChecker(InMemoryReservationStore(), settings)
    issue = DataIntegrityIssue(
        type=IssueType.INCONSISTENCY,
        severity=IssueSeverity.MEDIUM,
        description="Adult count must be at least 1",
        auto_fixable=True,
        fix_code=FixCode.CLAMP_ADULTS,
    )

    result = await checker.auto_fix_issues("res-missing", [issue])

    assert (result.fixed, result.failed) == (0, 1)
    assert result.errors == [
        "Failed to fix Adult count must be at least 1: Reservation not found"
    ]


class DeparturesFailingStore(InMemoryReservationStore):
    async def find_departures(self, property_id, start, end, statuses):
        raise ConnectionError("database unavailable")


@pytest.mark.anyio
async def test_day_transition_lists_open_departures(checker, store, make_reservation) -> None:
    day_start = datetime(2026, 3, 10, 6, tzinfo=UTC)
    in_house = {"status": S.IN_HOUSE, "check_in": day_start - timedelta(days=3)}
    for record in [
        make_reservation(
            id="res-partial",
            guest_name="Grace Hopper",
            room_id="room-2",
            room=RoomRef(id="room-2", name="102", capacity=2),
            payment_status=PaymentStatus.PARTIALLY_PAID,
            paid_amount=Decimal("2000"),
            check_out=day_start - timedelta(hours=5),
            **in_house,
        ),
        make_reservation(id="res-overdue", check_out=day_start - timedelta(hours=2), **in_house),
        make_reservation(
            id="res-due",
            guest_name="Charles Babbage",
            room_id="room-3",
            room=RoomRef(id="room-3", name="103", capacity=2),
            check_out=day_start + timedelta(hours=5),
            **in_house,
        ),
        make_reservation(id="res-later", check_out=day_start + timedelta(days=2), **in_house),
        make_reservation(
            id="res-gone",
            status=S.CHECKED_OUT,
            check_in=day_start - timedelta(days=3),
            check_out=day_start - timedelta(hours=3),
        ),
        make_reservation(
            id="res-elsewhere",
            property_id="prop-2",
            check_out=day_start - timedelta(hours=1),
            **in_house,
        ),
    ]:
        store.add(record)

    result = await checker.check_day_transition("prop-1", day_start)

    assert result.day_end == day_start + timedelta(days=1)
    assert not result.can_transition
    assert [(i.severity, i.description) for i in result.issues] == [
        (
            IssueSeverity.CRITICAL,
            "Ada Lovelace (room 101) was due to check out on the previous day but was never checked out",
        ),
        (
            IssueSeverity.CRITICAL,
            "Grace Hopper (room 102) was due to check out on the previous day but was never checked out",
        ),
        (
            IssueSeverity.MEDIUM,
            "Charles Babbage (room 103) is due to check out today but has not checked out yet",
        ),
        (
            IssueSeverity.MEDIUM,
            "Grace Hopper (room 102) was due to check out on the previous day with payment incomplete",
        ),
    ]
    assert result.issues[0].related_records == ["res-overdue"]
    assert result.issues[3].type == IssueType.BUSINESS_RULE_VIOLATION


@pytest.mark.anyio
async def test_day_transition_with_no_departures(checker) -> None:
    result = await checker.check_day_transition("prop-1", datetime(2026, 3, 10, 6, tzinfo=UTC))

    assert result.issues == []
    assert result.can_transition
    assert result.model_dump()["can_transition"] is True


@pytest.mark.anyio
async def test_day_transition_load_failure_blocks(settings) -> None:
    checker = DataIntegrityChecker(DeparturesFailingStore(), settings)

    result = await checker.check_day_transition("prop-1", datetime(2026, 3, 10, 6, tzinfo=UTC))

    assert not result.can_transition
    assert [(i.type, i.severity, i.description) for i in result.issues] == [
        (IssueType.MISSING_DATA, IssueSeverity.CRITICAL, "Failed to load departures")
    ]


@pytest.mark.parametrize(
    ("at", "expected"),
    [
        (datetime(2026, 3, 10, 12, tzinfo=UTC), datetime(2026, 3, 10, 6, tzinfo=UTC)),
        (datetime(2026, 3, 10, 6, tzinfo=UTC), datetime(2026, 3, 10, 6, tzinfo=UTC)),
        (datetime(2026, 3, 10, 5, 59, tzinfo=UTC), datetime(2026, 3, 9, 6, tzinfo=UTC)),
    ],
)
def test_operational_day_start(at, expected) -> None:
    assert operational_day_start(at, 6) == expected
