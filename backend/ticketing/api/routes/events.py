"""
Event read endpoints used alongside booking: live availability, the seat
ledger and the inventory reconciliation report. Never cached, since callers
use them to decide what to book.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.db.session import get_db
from ticketing.schemas.event import EventResponse, SeatLedgerResponse, InventoryReportResponse
from ticketing.services.event_service import get_event, inventory_report
from ticketing.services.seat_ledger import find_active_seat_holders

router = APIRouter(prefix="/events", tags=["Events"])


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await get_event(db, event_id)


@router.get("/{event_id}/seats", response_model=SeatLedgerResponse)
async def get_seat_ledger_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Seats held by pending or confirmed bookings."""
    await get_event(db, event_id)
    seats = await find_active_seat_holders(db, event_id)
    return SeatLedgerResponse(event_id=event_id, occupied_seats=seats)


@router.get("/{event_id}/inventory", response_model=InventoryReportResponse)
async def get_inventory_report_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Stored available_tickets against venue capacity minus active bookings."""
    return await inventory_report(db, event_id)
