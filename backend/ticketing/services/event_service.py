"""
Event catalog boundary used by the booking engine.

Only the narrow operations admission and cancellation need live here;
catalog management (create/update/list) belongs to the catalog service.
`available_tickets` is changed exclusively through adjust_available_tickets.
"""

from dataclasses import dataclass

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.core.errors import EventNotFound, EventUnavailable
from ticketing.core.logging import get_logger
from ticketing.models.booking import Booking, ACTIVE_STATUSES
from ticketing.models.event import Event
from ticketing.models.venue import Venue

logger = get_logger(__name__)


@dataclass
class InventoryReport:
    event_id: int
    capacity: int
    held: int
    expected_available: int
    available_tickets: int

    @property
    def drift(self) -> int:
        return self.available_tickets - self.expected_available

    @property
    def consistent(self) -> bool:
        return self.drift == 0


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID, whatever its status."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise EventNotFound(event_id)
    return event


async def get_event_for_booking(db: AsyncSession, event_id: int) -> Event:
    """Get an event that is active, published and not deleted."""
    result = await db.execute(
        select(Event).where(
            Event.id == event_id,
            Event.is_active.is_(True),
            Event.status == "published",
            Event.deleted_at.is_(None),
        )
    )
    event = result.scalar_one_or_none()

    if not event:
        raise EventUnavailable(event_id)
    return event


async def adjust_available_tickets(db: AsyncSession, event_id: int, delta: int) -> bool:
    """
    Apply `delta` to the event's available tickets in one conditional UPDATE.

    A negative delta only applies while the counter can absorb it
    (available_tickets >= -delta), so two concurrent decrements can never
    both succeed on the last tickets. Returns False when the guard (or a
    missing row) leaves nothing updated. Store errors propagate.

    Positive deltas are plain additions and commute with each other.
    The caller owns the transaction.
    """
    stmt = update(Event).where(Event.id == event_id)
    if delta < 0:
        stmt = stmt.where(Event.available_tickets >= -delta)
    stmt = stmt.values(available_tickets=Event.available_tickets + delta)

    result = await db.execute(stmt)
    applied = result.rowcount == 1

    logger.debug("inventory_adjusted", event_id=event_id, delta=delta, applied=applied)
    return applied


async def read_available_tickets(db: AsyncSession, event_id: int) -> int:
    result = await db.execute(select(Event.available_tickets).where(Event.id == event_id))
    return result.scalar_one()


async def inventory_report(db: AsyncSession, event_id: int) -> InventoryReport:
    """
    Compare the stored counter with what the bookings say it should be.

    Used by reconciliation tooling after a failed restore on cancellation.
    """
    event = await get_event(db, event_id)
    capacity = (
        await db.execute(select(Venue.capacity).where(Venue.id == event.venue_id))
    ).scalar_one()

    held = (
        await db.execute(
            select(func.coalesce(func.sum(Booking.quantity), 0)).where(
                Booking.event_id == event_id,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.deleted_at.is_(None),
            )
        )
    ).scalar_one()

    return InventoryReport(
        event_id=event_id,
        capacity=capacity,
        held=held,
        expected_available=capacity - held,
        available_tickets=event.available_tickets,
    )
