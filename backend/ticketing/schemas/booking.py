"""
Pydantic schemas for booking-related request/response validation.

Quantity range and seat/quantity agreement are checked by the admission
controller, not here, so every caller gets the same error codes. The
quantity must still be a JSON integer: "2" or 2.0 is a malformed request
(422), never coerced.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional
from pydantic import BaseModel, Field, StrictInt

SeatLabel = Annotated[str, Field(min_length=1, max_length=20)]


class BookingCreate(BaseModel):
    event_id: int
    quantity: StrictInt
    seat_numbers: list[SeatLabel] = Field(default_factory=list, max_length=50)
    customer_notes: Optional[str] = Field(None, max_length=1000)


class BookingConfirm(BaseModel):
    payment_method: str = Field(..., min_length=1, max_length=50)
    payment_reference: Optional[str] = Field(None, max_length=255)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingResponse(BaseModel):
    id: int
    booking_number: str
    user_id: int
    event_id: int
    quantity: int
    seat_numbers: list[str]
    status: str
    payment_status: str
    payment_method: Optional[str]
    payment_reference: Optional[str]
    total_amount: Decimal
    currency: str
    customer_notes: Optional[str]
    cancellation_reason: Optional[str]
    booked_at: datetime
    confirmed_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    model_config = {"from_attributes": True}
