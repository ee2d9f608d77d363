"""
Booking admission with oversell-proof ticket and seat reservation.

ADMISSION PIPELINE
==================

Validation (no store access):
  1. quantity is an int in [1, MAX_TICKETS_PER_BOOKING]
     seat_numbers, when given, match quantity and contain no duplicates

Advisory checks (read shared state, may be stale by the time we write):
  2. event is active, published and not deleted
  3. event has not started
  4. quantity <= max_tickets_per_user
  5. tickets already held by this user + quantity <= max_tickets_per_user
  6. available_tickets >= quantity
  7. requested seats are not in the seat ledger

Commit (authoritative), one database transaction:
  - INSERT booking (pending/pending) and one seat_holds row per seat
  - UPDATE events SET available_tickets = available_tickets - :q
      WHERE id = :event_id AND available_tickets >= :q

CONCURRENCY STRATEGY: Conditional Write + Unique Index
======================================================

Problem:
  Two requests read available_tickets=1 and both pass step 6. Two requests
  for seat B3 both find it free in step 7.

Solution:
  - The decrement is a compare-and-swap on the counter itself. Of two racing
    decrements on the last ticket, the database applies exactly one; the other
    sees rowcount == 0 and is reported as InsufficientInventory.
  - seat_holds has UNIQUE(event_id, seat_label). The second INSERT of B3
    fails and is reported as SeatConflict.
  - Both writes sit in the same transaction as the booking INSERT, so a
    rejected guard rolls the booking back with it.

  Admissions for different events update different rows and never wait on
  each other; there is no process-wide lock.

Compensation:
  If the decrement (or the commit) fails for any other reason, timeouts
  included, the transaction is rolled back and the booking number is looked
  up again. A row still visible means the commit reached the store before the
  error did, decrement included, so the booking is deleted and its tickets
  are given back in one transaction. A failure of that step is logged on the
  operator channel with the booking number.

Advisory gate:
  A gate rejection is double-checked against the stored counter. A gate that
  reports fewer tickets than the store has missed a sync; it is reset and
  asked again, so a stale counter cannot keep an event sold out.

The per-user quota (step 5) is advisory only: two simultaneous requests by
the same user can both pass it. Inventory and seats are never at risk from
that race, only the per-user cap.
"""

from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import delete, select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.clock import as_utc, utcnow
from ticketing.core.config import get_settings
from ticketing.core.errors import (
    AdmissionError,
    AllocationExhausted,
    BookingNotFound,
    DuplicateSeatNumbers,
    EventAlreadyStarted,
    InsufficientInventory,
    InvalidQuantity,
    InventoryUpdateFailed,
    PerBookingLimitExceeded,
    SeatConflict,
    SeatCountMismatch,
    UserQuotaExceeded,
)
from ticketing.core.logging import get_logger, get_operator_logger
from ticketing.core.metrics import (
    booking_latency,
    booking_number_fallbacks,
    record_admission,
    record_booking_attempt,
    record_compensation,
    record_guard_rejection,
)
from ticketing.models.booking import Booking, ACTIVE_STATUSES
from ticketing.models.seat_hold import SeatHold
from ticketing.services import booking_number, seat_ledger
from ticketing.services.event_service import (
    adjust_available_tickets,
    get_event_for_booking,
    read_available_tickets,
)
from ticketing.services.interfaces.admission import AdmissionStrategy
from ticketing.services.strategy_factory import get_admission

logger = get_logger(__name__)
operator_logger = get_operator_logger()

# Store failures that trigger compensation. TimeoutError is an OSError.
STORE_FAILURES = (SQLAlchemyError, OSError)


def validate_request(quantity, seat_numbers: Optional[Sequence[str]]) -> list[str]:
    """Shape checks that need no store access. Returns the normalized seat list."""
    maximum = get_settings().MAX_TICKETS_PER_BOOKING
    if isinstance(quantity, bool) or not isinstance(quantity, int) or not 1 <= quantity <= maximum:
        raise InvalidQuantity(quantity, maximum)

    seats = list(seat_numbers or [])
    if seats and len(seats) != quantity:
        raise SeatCountMismatch(quantity, len(seats))

    duplicates = sorted({seat for seat in seats if seats.count(seat) > 1})
    if duplicates:
        raise DuplicateSeatNumbers(duplicates)

    return seats


async def count_user_tickets(db: AsyncSession, user_id: int, event_id: int) -> int:
    """Tickets a user currently holds for an event (pending + confirmed)."""
    result = await db.execute(
        select(func.coalesce(func.sum(Booking.quantity), 0)).where(
            Booking.user_id == user_id,
            Booking.event_id == event_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.deleted_at.is_(None),
        )
    )
    return result.scalar_one()


async def create_booking(
    db: AsyncSession,
    user_id: int,
    event_id: int,
    quantity: int,
    seat_numbers: Optional[Sequence[str]] = None,
    notes: Optional[str] = None,
    admission: Optional[AdmissionStrategy] = None,
) -> Booking:
    """
    Admit a reservation request or raise an AdmissionError subclass.
    On success the booking is committed in `pending` state.
    """
    with booking_latency.time():
        try:
            booking = await _admit(
                db, user_id, event_id, quantity, seat_numbers, notes,
                admission or get_admission(),
            )
        except AdmissionError as exc:
            outcome = "error" if exc.status_code >= 500 else "rejected"
            record_booking_attempt(outcome, exc.code.value)
            logger.warning(
                "booking_rejected",
                user_id=user_id,
                event_id=event_id,
                quantity=quantity,
                code=exc.code.value,
                details=exc.details,
            )
            raise

    record_booking_attempt("admitted")
    return booking


async def _admit(
    db: AsyncSession,
    user_id: int,
    event_id: int,
    quantity: int,
    seat_numbers: Optional[Sequence[str]],
    notes: Optional[str],
    admission: AdmissionStrategy,
) -> Booking:
    seats = validate_request(quantity, seat_numbers)

    event = await get_event_for_booking(db, event_id)

    if as_utc(event.start_date_time) <= utcnow():
        raise EventAlreadyStarted(event_id)

    limit = event.max_tickets_per_user
    if quantity > limit:
        raise PerBookingLimitExceeded(quantity, limit)

    held = await count_user_tickets(db, user_id, event_id)
    if held + quantity > limit:
        raise UserQuotaExceeded(held, quantity, limit)

    if event.available_tickets < quantity:
        raise InsufficientInventory(quantity, event.available_tickets)

    if seats:
        conflicts = await seat_ledger.find_conflicts(db, event_id, seats)
        if conflicts:
            raise SeatConflict(conflicts)

    # Price snapshot; later price changes never touch this booking
    total_amount = Decimal(quantity) * Decimal(str(event.price))
    currency = event.currency

    try:
        number = await booking_number.allocate(db)
    except AllocationExhausted as exc:
        number = booking_number.fallback_booking_number()
        booking_number_fallbacks.inc()
        logger.warning("booking_number_fallback", booking_number=number, attempts=exc.details["attempts"])

    admitted = await admission.admit(event_id, quantity)
    if not admitted:
        admitted = await _readmit_if_stale(db, admission, event_id, quantity)
    record_admission(admitted)
    if not admitted:
        raise InsufficientInventory(quantity)

    try:
        booking = await _commit(
            db,
            Booking(
                booking_number=number,
                user_id=user_id,
                event_id=event_id,
                quantity=quantity,
                seat_numbers=seats,
                status="pending",
                payment_status="pending",
                total_amount=total_amount,
                currency=currency,
                customer_notes=notes,
                payment_method=None,
                payment_reference=None,
                cancellation_reason=None,
                booked_at=utcnow(),
                confirmed_at=None,
                cancelled_at=None,
                deleted_at=None,
                seat_holds=[SeatHold(event_id=event_id, seat_label=seat) for seat in seats],
            ),
        )
    except AdmissionError:
        await admission.release(event_id, quantity)
        raise

    await sync_admission_gate(db, admission, event_id)

    logger.info(
        "booking_created",
        booking_id=booking.id,
        booking_number=booking.booking_number,
        user_id=user_id,
        event_id=event_id,
        quantity=quantity,
        seats=seats,
        total_amount=str(total_amount),
    )
    return booking


async def _readmit_if_stale(
    db: AsyncSession, admission: AdmissionStrategy, event_id: int, quantity: int
) -> bool:
    """The gate said no; ask the store before turning the request away."""
    available = await read_available_tickets(db, event_id)
    if available < quantity:
        return False

    logger.warning("admission_gate_stale", event_id=event_id, available_tickets=available)
    await admission.sync(event_id, available)
    return await admission.admit(event_id, quantity)


async def sync_admission_gate(db: AsyncSession, admission: AdmissionStrategy, event_id: int) -> None:
    """
    Reset the gate to the stored counter after a commit or a cancellation.
    The store change is already durable, so a failure here is logged only.
    """
    try:
        available = await read_available_tickets(db, event_id)
    except STORE_FAILURES as exc:
        logger.warning("admission_gate_sync_failed", event_id=event_id, error=str(exc))
        return
    await admission.sync(event_id, available)


async def _commit(db: AsyncSession, booking: Booking) -> Booking:
    """Insert the booking and take its tickets as one transaction."""
    # Plain values: after a rollback the ORM instance is expired
    number = booking.booking_number
    event_id = booking.event_id
    quantity = booking.quantity
    seats = list(booking.seat_numbers)

    db.add(booking)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        if seats and _is_seat_violation(exc):
            record_guard_rejection("seat")
            taken = await seat_ledger.find_conflicts(db, event_id, seats)
            raise SeatConflict(taken or seats) from exc
        logger.error("booking_insert_failed", booking_number=number, error=str(exc.orig))
        raise InventoryUpdateFailed(event_id) from exc
    except STORE_FAILURES as exc:
        await db.rollback()
        logger.error("booking_insert_failed", booking_number=number, error=str(exc))
        raise InventoryUpdateFailed(event_id) from exc

    try:
        reserved = await adjust_available_tickets(db, event_id, -quantity)
        if reserved:
            await db.commit()
    except STORE_FAILURES as exc:
        logger.error(
            "inventory_decrement_failed",
            booking_number=number,
            event_id=event_id,
            quantity=quantity,
            error=str(exc),
        )
        await _compensate(db, number, event_id, quantity)
        raise InventoryUpdateFailed(event_id) from exc

    if not reserved:
        await db.rollback()
        record_guard_rejection("capacity")
        raise InsufficientInventory(quantity)

    # Every response field was set before the flush; no reload after commit
    return booking


def _is_seat_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "uq_seat_hold_event_seat" in message or "seat_holds" in message


async def _compensate(db: AsyncSession, number: str, event_id: int, quantity: int) -> None:
    """
    Make sure no booking survives a failed decrement.

    Rolling back the transaction normally removes the insert. A row that is
    still visible got committed before the error reached us, and since the
    insert and the decrement share a transaction, its tickets were taken as
    well. It is deleted and the tickets restored in one transaction, so the
    counter never stays decremented without a booking behind it.
    """
    try:
        await db.rollback()
        result = await db.execute(select(Booking.id).where(Booking.booking_number == number))
        orphan_id = result.scalar_one_or_none()
        if orphan_id is None:
            record_compensation("clean")
            return

        await db.execute(delete(SeatHold).where(SeatHold.booking_id == orphan_id))
        await db.execute(delete(Booking).where(Booking.id == orphan_id))
        await adjust_available_tickets(db, event_id, quantity)
        await db.commit()
        record_compensation("deleted")
        operator_logger.warning(
            "orphan_booking_deleted",
            booking_number=number,
            event_id=event_id,
            tickets_restored=quantity,
        )
    except STORE_FAILURES as exc:
        record_compensation("failed")
        operator_logger.error(
            "compensation_failed",
            booking_number=number,
            event_id=event_id,
            error=str(exc),
        )


async def get_booking(db: AsyncSession, booking_id: int, user_id: Optional[int] = None) -> Booking:
    """
    Get a non-deleted booking. With a user_id, other users' bookings
    are reported as not found.
    """
    query = select(Booking).where(Booking.id == booking_id, Booking.deleted_at.is_(None))
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)

    result = await db.execute(query)
    booking = result.scalar_one_or_none()
    if not booking:
        raise BookingNotFound(booking_id)
    return booking


async def get_user_bookings(
    db: AsyncSession,
    user_id: Optional[int],
    status: Optional[str] = None,
    event_id: Optional[int] = None,
) -> list[Booking]:
    """Bookings of a user, newest first. user_id=None lists everyone's (admin)."""
    query = select(Booking).where(Booking.deleted_at.is_(None))
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)
    if status:
        query = query.where(Booking.status == status)
    if event_id is not None:
        query = query.where(Booking.event_id == event_id)

    result = await db.execute(query.order_by(Booking.booked_at.desc(), Booking.id.desc()))
    return list(result.scalars().all())
