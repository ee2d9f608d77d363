"""
Tests for booking admission: the validation pipeline, the authoritative
store guards, compensation, and concurrent admissions for one event.
"""

import asyncio
import re
from datetime import timedelta, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.testing import capture_logs

from ticketing.core.errors import (
    AllocationExhausted,
    DuplicateSeatNumbers,
    EventAlreadyStarted,
    EventUnavailable,
    InsufficientInventory,
    InvalidQuantity,
    InventoryUpdateFailed,
    PerBookingLimitExceeded,
    SeatConflict,
    SeatCountMismatch,
    UserQuotaExceeded,
)
from ticketing.core.metrics import compensations
from ticketing.models.booking import Booking
from ticketing.models.event import Event
from ticketing.models.seat_hold import SeatHold
from ticketing.services import booking_number, booking_service
from ticketing.services.booking_service import create_booking
from ticketing.services.lifecycle_service import cancel_booking
from ticketing.services.seat_ledger import find_active_seat_holders
from ticketing.services.interfaces.admission import AdmissionStrategy


async def _count(session_factory, model) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def _book(session_factory, user_id, event_id, quantity, seats=None, **kwargs):
    async with session_factory() as session:
        return await create_booking(session, user_id, event_id, quantity, seats, **kwargs)


@pytest.mark.asyncio
async def test_admitted_booking_is_pending_and_takes_tickets(db_session, make_event, available_tickets):
    event = await make_event(capacity=100, price="25.00")

    booking = await create_booking(db_session, user_id=1, event_id=event.id, quantity=2, notes="aisle please")

    assert booking.id is not None
    assert booking.status == "pending"
    assert booking.payment_status == "pending"
    assert booking.quantity == 2
    assert booking.seat_numbers == []
    assert booking.total_amount == Decimal("50.00")
    assert booking.currency == "USD"
    assert booking.customer_notes == "aisle please"
    assert re.fullmatch(r"BOOK-\d{8}-[A-Z0-9]{5}", booking.booking_number)
    assert await available_tickets(event.id) == 98


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1, 11, True, 2.5, "2"])
async def test_invalid_quantity_rejected_before_store_access(db_session, quantity):
    # Event 999 does not exist: the quantity check must fire first
    with pytest.raises(InvalidQuantity):
        await create_booking(db_session, user_id=1, event_id=999, quantity=quantity)


@pytest.mark.asyncio
async def test_seat_count_must_match_quantity(db_session):
    with pytest.raises(SeatCountMismatch) as exc_info:
        await create_booking(db_session, 1, 999, 2, seat_numbers=["A1"])
    assert exc_info.value.details == {"quantity": 2, "seats": 1}


@pytest.mark.asyncio
async def test_duplicate_seats_in_one_request(db_session):
    with pytest.raises(DuplicateSeatNumbers) as exc_info:
        await create_booking(db_session, 1, 999, 2, seat_numbers=["A1", "A1"])
    assert exc_info.value.details["seats"] == ["A1"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"status": "draft"},
        {"status": "cancelled"},
        {"is_active": False},
        {"deleted_at": datetime(2026, 1, 1, tzinfo=timezone.utc)},
    ],
)
async def test_unbookable_event_is_unavailable(db_session, make_event, overrides):
    event = await make_event(**overrides)
    with pytest.raises(EventUnavailable):
        await create_booking(db_session, 1, event.id, 1)


@pytest.mark.asyncio
async def test_missing_event_is_unavailable(db_session):
    with pytest.raises(EventUnavailable):
        await create_booking(db_session, 1, 424242, 1)


@pytest.mark.asyncio
async def test_event_already_started(db_session, make_event, available_tickets):
    event = await make_event(capacity=10, starts_in=timedelta(hours=-1))

    with pytest.raises(EventAlreadyStarted):
        await create_booking(db_session, 1, event.id, 1)
    assert await available_tickets(event.id) == 10


@pytest.mark.asyncio
async def test_per_booking_limit(db_session, make_event):
    event = await make_event(max_tickets_per_user=4)

    with pytest.raises(PerBookingLimitExceeded) as exc_info:
        await create_booking(db_session, 1, event.id, 5)
    assert exc_info.value.details == {"quantity": 5, "limit": 4}


@pytest.mark.asyncio
async def test_quota_scenario(session_factory, make_event, available_tickets, load_booking):
    """Capacity 5, max 4 per user: X takes 3, X cannot add 2, Y takes the last 2."""
    event = await make_event(capacity=5, max_tickets_per_user=4)
    user_x, user_y = 1, 2

    first = await _book(session_factory, user_x, event.id, 3)
    assert await available_tickets(event.id) == 2

    with pytest.raises(UserQuotaExceeded) as exc_info:
        await _book(session_factory, user_x, event.id, 2)
    error = exc_info.value
    assert error.details == {"held": 3, "requested": 2, "limit": 4}
    assert "3" in error.message and "4" in error.message

    second = await _book(session_factory, user_y, event.id, 2)

    assert await available_tickets(event.id) == 0
    assert (await load_booking(first.id)).status == "pending"
    assert (await load_booking(second.id)).status == "pending"


@pytest.mark.asyncio
async def test_cancelled_bookings_stop_counting_toward_quota(session_factory, make_event):
    event = await make_event(max_tickets_per_user=4)

    booking = await _book(session_factory, 1, event.id, 4)
    async with session_factory() as session:
        await cancel_booking(session, booking.id)

    rebooked = await _book(session_factory, 1, event.id, 4)
    assert rebooked.status == "pending"


@pytest.mark.asyncio
async def test_insufficient_inventory(db_session, make_event, available_tickets):
    event = await make_event(capacity=3, max_tickets_per_user=10)

    with pytest.raises(InsufficientInventory) as exc_info:
        await create_booking(db_session, 1, event.id, 4)
    assert exc_info.value.details == {"requested": 4, "available": 3}
    assert await available_tickets(event.id) == 3


@pytest.mark.asyncio
async def test_seat_conflict_names_taken_seats(session_factory, make_event):
    event = await make_event()

    await _book(session_factory, 1, event.id, 1, ["B3"])

    with pytest.raises(SeatConflict) as exc_info:
        await _book(session_factory, 2, event.id, 2, ["B4", "B3"])
    assert exc_info.value.seats == ["B3"]
    assert "B3" in exc_info.value.message


@pytest.mark.asyncio
async def test_price_is_snapshotted(session_factory, make_event, load_booking):
    event = await make_event(price="10.00")
    booking = await _book(session_factory, 1, event.id, 3)

    async with session_factory() as session:
        await session.execute(update(Event).where(Event.id == event.id).values(price=Decimal("99.00")))
        await session.commit()

    assert (await load_booking(booking.id)).total_amount == Decimal("30.00")


@pytest.mark.asyncio
async def test_store_guard_overrides_stale_advisory_check(
    session_factory, make_event, available_tickets, monkeypatch
):
    """The advisory read says 5 left; the conditional decrement sees 0 and wins."""
    event = await make_event(capacity=5)
    real_lookup = booking_service.get_event_for_booking

    async def lookup_then_sell_out(db, event_id):
        snapshot = await real_lookup(db, event_id)
        async with session_factory() as other:
            await other.execute(update(Event).where(Event.id == event_id).values(available_tickets=0))
            await other.commit()
        return snapshot

    monkeypatch.setattr(booking_service, "get_event_for_booking", lookup_then_sell_out)

    with pytest.raises(InsufficientInventory):
        await _book(session_factory, 1, event.id, 2)

    assert await _count(session_factory, Booking) == 0
    assert await available_tickets(event.id) == 0


@pytest.mark.asyncio
async def test_failed_decrement_is_compensated(session_factory, make_event, available_tickets, monkeypatch):
    event = await make_event(capacity=10)

    async def broken_decrement(db, event_id, delta):
        raise OperationalError("UPDATE events", {}, TimeoutError("statement timeout"))

    monkeypatch.setattr(booking_service, "adjust_available_tickets", broken_decrement)

    with pytest.raises(InventoryUpdateFailed):
        await _book(session_factory, 1, event.id, 2, ["C1", "C2"])

    assert await _count(session_factory, Booking) == 0
    assert await _count(session_factory, SeatHold) == 0
    assert await available_tickets(event.id) == 10
    async with session_factory() as session:
        assert await find_active_seat_holders(session, event.id) == []


@pytest.mark.asyncio
async def test_commit_applied_before_its_error_gives_tickets_back(
    session_factory, make_event, available_tickets, monkeypatch
):
    """The store applied the commit but the reply was lost: booking and decrement are undone together."""
    event = await make_event(capacity=10)
    real_commit = AsyncSession.commit
    lost_replies = []

    async def commit_then_lose_reply(self):
        await real_commit(self)
        if not lost_replies:
            lost_replies.append(self)
            raise OperationalError("COMMIT", {}, TimeoutError("reply lost"))

    monkeypatch.setattr(AsyncSession, "commit", commit_then_lose_reply)
    deleted_before = compensations.labels(result="deleted")._value.get()

    with capture_logs() as logs:
        with pytest.raises(InventoryUpdateFailed):
            await _book(session_factory, 1, event.id, 2, ["D1", "D2"])

    assert await _count(session_factory, Booking) == 0
    assert await _count(session_factory, SeatHold) == 0
    assert await available_tickets(event.id) == 10
    assert compensations.labels(result="deleted")._value.get() == deleted_before + 1
    orphan_logs = [entry for entry in logs if entry["event"] == "orphan_booking_deleted"]
    assert orphan_logs[0]["tickets_restored"] == 2


@pytest.mark.asyncio
async def test_failed_compensation_is_reported_to_operators(
    session_factory, make_event, available_tickets, monkeypatch
):
    event = await make_event(capacity=10)

    async def broken_decrement(db, event_id, delta):
        raise OperationalError("UPDATE events", {}, TimeoutError("statement timeout"))

    async def broken_rollback(self):
        raise OperationalError("ROLLBACK", {}, ConnectionResetError("connection lost"))

    monkeypatch.setattr(booking_service, "adjust_available_tickets", broken_decrement)
    monkeypatch.setattr(AsyncSession, "rollback", broken_rollback)
    failed_before = compensations.labels(result="failed")._value.get()

    with capture_logs() as logs:
        with pytest.raises(InventoryUpdateFailed):
            await _book(session_factory, 1, event.id, 2)

    assert compensations.labels(result="failed")._value.get() == failed_before + 1
    failure = next(entry for entry in logs if entry["event"] == "compensation_failed")
    assert failure["log_level"] == "error"
    assert failure["event_id"] == event.id
    assert failure["booking_number"].startswith("BOOK-")

    # Closing the session discarded the unfinished transaction
    assert await _count(session_factory, Booking) == 0
    assert await available_tickets(event.id) == 10


@pytest.mark.asyncio
async def test_gate_sync_failure_after_commit_keeps_booking(
    session_factory, make_event, available_tickets, load_booking, monkeypatch
):
    event = await make_event(capacity=10)
    gate = RecordingGate(admit_result=True)

    async def unreachable(db, event_id):
        raise OperationalError("SELECT available_tickets", {}, TimeoutError("statement timeout"))

    monkeypatch.setattr(booking_service, "read_available_tickets", unreachable)

    booking = await _book(session_factory, 1, event.id, 2, ["E1", "E2"], admission=gate)

    assert booking.status == "pending"
    assert booking.seat_numbers == ["E1", "E2"]
    assert booking.payment_method is None
    assert (await load_booking(booking.id)).booking_number == booking.booking_number
    assert await available_tickets(event.id) == 8
    assert gate.calls == [("admit", event.id, 2)]


@pytest.mark.asyncio
async def test_booking_number_fallback_when_allocation_exhausted(session_factory, make_event, monkeypatch):
    event = await make_event()

    async def exhausted(db, max_attempts=None):
        raise AllocationExhausted(10)

    monkeypatch.setattr(booking_number, "allocate", exhausted)

    booking = await _book(session_factory, 1, event.id, 1)
    assert re.fullmatch(r"BOOK-\d{8}-[0-9A-Z]{4}", booking.booking_number)


class RecordingGate(AdmissionStrategy):
    def __init__(self, admit_result: bool):
        self.admit_result = admit_result
        self.calls = []

    async def admit(self, event_id, quantity=1):
        self.calls.append(("admit", event_id, quantity))
        return self.admit_result

    async def release(self, event_id, quantity=1):
        self.calls.append(("release", event_id, quantity))

    async def sync(self, event_id, available_tickets):
        self.calls.append(("sync", event_id, available_tickets))


@pytest.mark.asyncio
async def test_gate_rejection_is_insufficient_inventory(
    session_factory, make_event, available_tickets, monkeypatch
):
    event = await make_event(capacity=10)
    gate = RecordingGate(admit_result=False)

    async def sold_out(db, event_id):
        return 0

    monkeypatch.setattr(booking_service, "read_available_tickets", sold_out)

    with pytest.raises(InsufficientInventory):
        await _book(session_factory, 1, event.id, 2, admission=gate)

    assert gate.calls == [("admit", event.id, 2)]
    assert await available_tickets(event.id) == 10


@pytest.mark.asyncio
async def test_stale_gate_is_resynced_before_rejecting(session_factory, make_event, available_tickets):
    event = await make_event(capacity=10)
    gate = RecordingGate(admit_result=False)

    with pytest.raises(InsufficientInventory):
        await _book(session_factory, 1, event.id, 2, admission=gate)

    # Store still has 10: the gate is reset and asked once more
    assert gate.calls == [("admit", event.id, 2), ("sync", event.id, 10), ("admit", event.id, 2)]
    assert await available_tickets(event.id) == 10


@pytest.mark.asyncio
async def test_gate_is_synced_after_commit_and_released_on_guard_rejection(
    session_factory, make_event, monkeypatch
):
    event = await make_event(capacity=10)
    gate = RecordingGate(admit_result=True)

    await _book(session_factory, 1, event.id, 3, admission=gate)
    assert gate.calls == [("admit", event.id, 3), ("sync", event.id, 7)]

    async def guard_rejects(db, event_id, delta):
        return False

    monkeypatch.setattr(booking_service, "adjust_available_tickets", guard_rejects)
    gate.calls.clear()

    with pytest.raises(InsufficientInventory):
        await _book(session_factory, 2, event.id, 1, admission=gate)
    assert gate.calls == [("admit", event.id, 1), ("release", event.id, 1)]


@pytest.mark.asyncio
async def test_last_ticket_race_admits_exactly_one(session_factory, make_event, available_tickets):
    event = await make_event(capacity=1)

    results = await asyncio.gather(
        _book(session_factory, 1, event.id, 1),
        _book(session_factory, 2, event.id, 1),
        return_exceptions=True,
    )

    admitted = [r for r in results if isinstance(r, Booking)]
    rejected = [r for r in results if isinstance(r, InsufficientInventory)]
    assert len(admitted) == 1
    assert len(rejected) == 1
    assert await available_tickets(event.id) == 0


@pytest.mark.asyncio
async def test_concurrent_admissions_never_oversell(session_factory, make_event, available_tickets):
    event = await make_event(capacity=5)

    results = await asyncio.gather(
        *(_book(session_factory, user_id, event.id, 1) for user_id in range(1, 13)),
        return_exceptions=True,
    )

    admitted = [r for r in results if isinstance(r, Booking)]
    assert len(admitted) == 5
    assert all(isinstance(r, (Booking, InsufficientInventory)) for r in results)
    assert await available_tickets(event.id) == 0

    async with session_factory() as session:
        held = (
            await session.execute(
                select(func.sum(Booking.quantity)).where(
                    Booking.event_id == event.id, Booking.status.in_(["pending", "confirmed"])
                )
            )
        ).scalar_one()
    assert held == 5


@pytest.mark.asyncio
async def test_concurrent_requests_for_same_seat(session_factory, make_event, available_tickets):
    event = await make_event(capacity=50)

    results = await asyncio.gather(
        _book(session_factory, 1, event.id, 1, ["A1"]),
        _book(session_factory, 2, event.id, 1, ["A1"]),
        return_exceptions=True,
    )

    admitted = [r for r in results if isinstance(r, Booking)]
    conflicts = [r for r in results if isinstance(r, SeatConflict)]
    assert len(admitted) == 1
    assert len(conflicts) == 1
    assert conflicts[0].seats == ["A1"]
    assert await available_tickets(event.id) == 49

    async with session_factory() as session:
        assert await find_active_seat_holders(session, event.id) == ["A1"]
