"""
Event model with ticket inventory tracking.

Key design decisions:
- `available_tickets` is denormalized (venue capacity minus active booking
  quantities) so admission can guard it with one conditional UPDATE
- CHECK constraint keeps it non-negative even if application logic is wrong
- `price` is read once at admission time and copied onto the booking
- Soft delete via `deleted_at`; catalog rows are never removed under live bookings
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin

EVENT_STATUSES = ("draft", "published", "cancelled")


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    start_date_time = Column(DateTime(timezone=True), nullable=False)
    end_date_time = Column(DateTime(timezone=True), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    available_tickets = Column(Integer, nullable=False)
    max_tickets_per_user = Column(Integer, nullable=False, default=10)
    status = Column(String(20), nullable=False, default="draft")
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    venue = relationship("Venue", back_populates="events", lazy="selectin")
    bookings = relationship("Booking", back_populates="event")

    __table_args__ = (
        CheckConstraint("available_tickets >= 0", name="check_available_tickets_non_negative"),
        CheckConstraint("max_tickets_per_user > 0", name="check_max_tickets_per_user_positive"),
        CheckConstraint("price >= 0", name="check_event_price_non_negative"),
        CheckConstraint("start_date_time < end_date_time", name="check_event_window"),
        CheckConstraint(
            "status IN ('draft', 'published', 'cancelled')", name="check_event_status"
        ),
        Index("ix_events_start_date_time", "start_date_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, title={self.title}, "
            f"available={self.available_tickets}, status={self.status})>"
        )
