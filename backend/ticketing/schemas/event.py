"""
Pydantic schemas for event read endpoints.
"""

from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel


class EventResponse(BaseModel):
    id: int
    title: str
    venue_id: int
    start_date_time: datetime
    end_date_time: datetime
    price: Decimal
    currency: str
    available_tickets: int
    max_tickets_per_user: int
    status: str

    model_config = {"from_attributes": True}


class SeatLedgerResponse(BaseModel):
    event_id: int
    occupied_seats: list[str]


class InventoryReportResponse(BaseModel):
    event_id: int
    capacity: int
    held: int
    expected_available: int
    available_tickets: int
    drift: int
    consistent: bool

    model_config = {"from_attributes": True}
