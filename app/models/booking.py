"""
Booking model
"""

from sqlalchemy import Column, ForeignKey, Enum, Numeric, DateTime, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
import enum

from app.models.base import BaseModel, utcnow


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class Booking(BaseModel):
    """
    Booking of exactly one tour, room or flight
    """
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint(
            "(CASE WHEN tour_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN room_id IS NULL THEN 0 ELSE 1 END)"
            " + (CASE WHEN flight_id IS NULL THEN 0 ELSE 1 END) = 1",
            name="ck_booking_single_target"
        ),
    )

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    tour_id = Column(Uuid(as_uuid=True), ForeignKey("tours.id"), nullable=True, index=True)
    room_id = Column(Uuid(as_uuid=True), ForeignKey("rooms.id"), nullable=True, index=True)
    flight_id = Column(Uuid(as_uuid=True), ForeignKey("flights.id"), nullable=True, index=True)
    status = Column(
        Enum(BookingStatus),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True
    )
    total_price = Column(Numeric(10, 2), nullable=False)
    booking_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="bookings")
    tour = relationship("Tour", back_populates="bookings")
    room = relationship("Room", back_populates="bookings")
    flight = relationship("Flight", back_populates="bookings")
    payment = relationship("Payment", back_populates="booking", uselist=False)

    def __repr__(self):
        return f"<Booking(id={self.id}, status={self.status}, total_price={self.total_price})>"
