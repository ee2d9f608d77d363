"""
Booking endpoints: admission, confirmation, cancellation and lookups.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketing.api.deps import get_current_user_id, get_owner_filter
from ticketing.db.session import get_db
from ticketing.schemas.booking import BookingCreate, BookingConfirm, BookingCancel, BookingResponse
from ticketing.services.booking_service import create_booking, get_booking, get_user_bookings
from ticketing.services.lifecycle_service import confirm_booking, cancel_booking

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve tickets (and optionally named seats) for an event.

    The booking is created in `pending` state. Inventory is taken with a
    conditional update, so concurrent requests can never oversell; a request
    that loses the race gets the same 409 as one rejected up front.
    """
    return await create_booking(
        db,
        user_id=user_id,
        event_id=booking_data.event_id,
        quantity=booking_data.quantity,
        seat_numbers=booking_data.seat_numbers,
        notes=booking_data.customer_notes,
    )


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking_endpoint(
    booking_id: int,
    confirm_data: BookingConfirm,
    owner_id: Optional[int] = Depends(get_owner_filter),
    db: AsyncSession = Depends(get_db),
):
    """Confirm a pending booking (simulated payment)."""
    return await confirm_booking(
        db,
        booking_id,
        payment_method=confirm_data.payment_method,
        payment_reference=confirm_data.payment_reference,
        user_id=owner_id,
    )


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    cancel_data: Optional[BookingCancel] = None,
    owner_id: Optional[int] = Depends(get_owner_filter),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a booking before the event starts and release its tickets."""
    reason = cancel_data.reason if cancel_data else None
    return await cancel_booking(db, booking_id, reason=reason, user_id=owner_id)


@router.get("/", response_model=list[BookingResponse])
async def list_bookings_endpoint(
    booking_status: Optional[str] = Query(None, alias="status", pattern="^(pending|confirmed|cancelled)$"),
    event_id: Optional[int] = Query(None),
    owner_id: Optional[int] = Depends(get_owner_filter),
    db: AsyncSession = Depends(get_db),
):
    """Bookings of the calling user (every user's for admins)."""
    return await get_user_bookings(db, owner_id, status=booking_status, event_id=event_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    owner_id: Optional[int] = Depends(get_owner_filter),
    db: AsyncSession = Depends(get_db),
):
    return await get_booking(db, booking_id, owner_id)
