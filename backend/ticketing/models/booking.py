"""
Booking model representing a user's reservation for an event.

Key design decisions:
- `booking_number` is unique at the DB level; the allocator checks first,
  the index catches whatever slips past its fallback scheme
- Status field allows cancellation without deleting records; cancelled rows
  keep event_id and quantity so inventory can be reconciled later
- `seat_numbers` keeps the ordered labels the user asked for; uniqueness of
  seats across active bookings lives in the seat_holds table
- `total_amount` is a price snapshot taken at admission
- `user_id` is owned by the external user service, so no foreign key
"""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin

ACTIVE_STATUSES = ("pending", "confirmed")
BOOKING_STATUSES = ("pending", "confirmed", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "refunded")


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_number = Column(String(32), nullable=False, unique=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    seat_numbers = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="pending")
    payment_status = Column(String(20), nullable=False, default="pending")
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    customer_notes = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    booked_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    event = relationship("Event", back_populates="bookings")
    seat_holds = relationship(
        "SeatHold", back_populates="booking", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("quantity BETWEEN 1 AND 10", name="check_booking_quantity_range"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'refunded')",
            name="check_booking_payment_status",
        ),
        # Quota and ledger queries: active bookings for (event[, user])
        Index("ix_bookings_event_user_status", "event_id", "user_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES and self.deleted_at is None

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, number={self.booking_number}, user={self.user_id}, "
            f"event={self.event_id}, quantity={self.quantity}, status={self.status})>"
        )
