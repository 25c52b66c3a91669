# backend/booking_engine/models/booking.py
"""
Booking table for the SQLAlchemy repository.

The full snapshot is stored as JSON; the columns the capacity and calendar
queries filter on are duplicated as indexed scalar columns. ``version`` backs
the optimistic concurrency check in SqlAlchemyBookingRepository.save().
"""

from sqlalchemy import JSON, CheckConstraint, Column, Date, DateTime, Index, Integer, String

from ..database import Base


class BookingRecord(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True)
    booking_number = Column(String(40), nullable=False, unique=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    space_type = Column(String(32), nullable=False)
    booking_date = Column(Date, nullable=False)
    start_minutes = Column(Integer, nullable=False)
    end_minutes = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False)
    capacity_requested = Column(Integer, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    snapshot = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_bookings_space_date_status", "space_type", "booking_date", "status"),
        CheckConstraint("start_minutes < end_minutes", name="ck_bookings_interval"),
        CheckConstraint("capacity_requested >= 1", name="ck_bookings_capacity_positive"),
    )

    def __repr__(self) -> str:
        return f"<BookingRecord {self.booking_number} {self.status} v{self.version}>"
