"""
Seat hold rows: the store-level guard against double-assigned seats.

A row exists for every seat of every active booking. The unique constraint on
(event_id, seat_label) makes a concurrent second hold fail at INSERT time,
which a scan-then-write check alone cannot guarantee. Rows are inserted with
the booking and deleted in the same transaction that cancels it; the Seat
Ledger itself is still derived from active bookings.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from ticketing.db.base import Base


class SeatHold(Base):
    __tablename__ = "seat_holds"

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    seat_label = Column(String(20), nullable=False)
    booking_id = Column(
        Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )

    booking = relationship("Booking", back_populates="seat_holds")

    __table_args__ = (
        UniqueConstraint("event_id", "seat_label", name="uq_seat_hold_event_seat"),
    )

    def __repr__(self) -> str:
        return f"<SeatHold(event={self.event_id}, seat={self.seat_label}, booking={self.booking_id})>"
