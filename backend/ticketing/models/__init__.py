from ticketing.models.venue import Venue
from ticketing.models.event import Event
from ticketing.models.booking import Booking
from ticketing.models.seat_hold import SeatHold

__all__ = ["Venue", "Event", "Booking", "SeatHold"]
