"""
Seat ledger: the seats currently held by active bookings of an event.

Nothing is stored for the ledger itself. It is recomputed from bookings in
pending/confirmed status, so a cancelled booking's seats disappear the moment
its status changes. The scan here is advisory; the unique index on
seat_holds(event_id, seat_label) is what actually rejects a double booking.
"""

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.models.booking import Booking, ACTIVE_STATUSES


async def find_active_seat_holders(db: AsyncSession, event_id: int) -> list[str]:
    """All seat labels held by active, non-deleted bookings, in booking order."""
    result = await db.execute(
        select(Booking.seat_numbers)
        .where(
            Booking.event_id == event_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.deleted_at.is_(None),
        )
        .order_by(Booking.id)
    )

    seats: list[str] = []
    for seat_numbers in result.scalars():
        seats.extend(seat_numbers or [])
    return seats


async def occupied_seats(db: AsyncSession, event_id: int) -> set[str]:
    return set(await find_active_seat_holders(db, event_id))


async def find_conflicts(db: AsyncSession, event_id: int, seats: Iterable[str]) -> list[str]:
    """Requested seats that are already taken, in request order."""
    taken = await occupied_seats(db, event_id)
    return [seat for seat in seats if seat in taken]
