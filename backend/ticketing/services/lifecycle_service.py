"""
Booking lifecycle: confirmation and cancellation.

    pending ──confirm──▶ confirmed
       │                    │
       └──────cancel────────┴──▶ cancelled   (terminal)

Every transition is a conditional UPDATE on the current status, so two racing
calls cannot both apply it. That is what makes "cancel restores inventory
exactly once" hold under retries: the second cancel finds nothing to update
and is rejected before any inventory is touched.

Cancellation commits in two steps:
  1. status -> cancelled and seat holds removed (one transaction)
  2. available_tickets += quantity (separate transaction)
Step 2 failing never undoes step 1. The booking stays cancelled, the failure
goes to the operator log and a counter, and inventory_report() shows the
drift for out-of-band repair. Either way the advisory gate is then reset
to the stored counter.
"""

from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.clock import as_utc, utcnow
from ticketing.core.errors import BookingNotActive, BookingNotPending, EventAlreadyStarted
from ticketing.core.logging import get_logger, get_operator_logger
from ticketing.core.metrics import inventory_restore_failures, record_transition
from ticketing.models.booking import Booking, ACTIVE_STATUSES
from ticketing.models.seat_hold import SeatHold
from ticketing.services.booking_service import STORE_FAILURES, get_booking, sync_admission_gate
from ticketing.services.event_service import adjust_available_tickets, get_event
from ticketing.services.interfaces.admission import AdmissionStrategy
from ticketing.services.strategy_factory import get_admission

logger = get_logger(__name__)
operator_logger = get_operator_logger()


async def confirm_booking(
    db: AsyncSession,
    booking_id: int,
    payment_method: str,
    payment_reference: Optional[str] = None,
    user_id: Optional[int] = None,
) -> Booking:
    """Mark a pending booking as confirmed and paid (payment is simulated)."""
    booking = await get_booking(db, booking_id, user_id)
    if booking.status != "pending":
        raise BookingNotPending(booking_id, booking.status)

    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == "pending")
        .values(
            status="confirmed",
            payment_status="paid",
            payment_method=payment_method,
            payment_reference=payment_reference,
            confirmed_at=utcnow(),
        )
    )
    if result.rowcount == 0:
        # Lost the race to another confirm or a cancel
        await db.rollback()
        await db.refresh(booking)
        raise BookingNotPending(booking_id, booking.status)

    await db.commit()
    await db.refresh(booking)
    record_transition("confirm")

    logger.info(
        "booking_confirmed",
        booking_id=booking_id,
        booking_number=booking.booking_number,
        payment_method=payment_method,
    )
    return booking


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    reason: Optional[str] = None,
    user_id: Optional[int] = None,
    admission: Optional[AdmissionStrategy] = None,
) -> Booking:
    """
    Cancel a pending or confirmed booking before its event starts and give
    its tickets back to the event.
    """
    booking = await get_booking(db, booking_id, user_id)
    if not booking.is_active:
        raise BookingNotActive(booking_id, booking.status)

    event = await get_event(db, booking.event_id)
    if as_utc(event.start_date_time) <= utcnow():
        raise EventAlreadyStarted(event.id, action="cancel")

    event_id = booking.event_id
    quantity = booking.quantity

    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status.in_(ACTIVE_STATUSES))
        .values(
            status="cancelled",
            cancelled_at=utcnow(),
            cancellation_reason=reason or "Cancelled by user",
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        await db.refresh(booking)
        raise BookingNotActive(booking_id, booking.status)

    await db.execute(delete(SeatHold).where(SeatHold.booking_id == booking_id))
    await db.commit()
    record_transition("cancel")

    restored = await _restore_inventory(db, booking_id, event_id, quantity)
    await sync_admission_gate(db, admission or get_admission(), event_id)

    await db.refresh(booking)
    logger.info(
        "booking_cancelled",
        booking_id=booking_id,
        booking_number=booking.booking_number,
        event_id=event_id,
        tickets_restored=quantity if restored else 0,
    )
    return booking


async def _restore_inventory(db: AsyncSession, booking_id: int, event_id: int, quantity: int) -> bool:
    """Add a cancelled booking's tickets back. Failures are reported, not raised."""
    error = None
    try:
        restored = await adjust_available_tickets(db, event_id, quantity)
        if restored:
            await db.commit()
        else:
            error = "event row not updated"
    except STORE_FAILURES as exc:
        restored = False
        error = str(exc)

    if restored:
        return True

    inventory_restore_failures.inc()
    operator_logger.error(
        "inventory_restore_failed",
        booking_id=booking_id,
        event_id=event_id,
        quantity=quantity,
        error=error,
    )
    try:
        await db.rollback()
    except STORE_FAILURES as exc:
        operator_logger.error("inventory_restore_rollback_failed", booking_id=booking_id, error=str(exc))
    return False
