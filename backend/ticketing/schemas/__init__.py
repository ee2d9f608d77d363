from ticketing.schemas.event import EventResponse, SeatLedgerResponse, InventoryReportResponse
from ticketing.schemas.booking import BookingCreate, BookingConfirm, BookingCancel, BookingResponse

__all__ = [
    "EventResponse", "SeatLedgerResponse", "InventoryReportResponse",
    "BookingCreate", "BookingConfirm", "BookingCancel", "BookingResponse",
]
