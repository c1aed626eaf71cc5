"""
Flight model
"""

from sqlalchemy import Column, String, Integer, DateTime, Numeric, CheckConstraint
from sqlalchemy.orm import relationship

from app.models.base import BaseModel


class Flight(BaseModel):
    """
    Scheduled flight; seats_available counts down from capacity
    """
    __tablename__ = "flights"
    __table_args__ = (
        CheckConstraint("seats_available >= 0", name="ck_flight_seats_non_negative"),
        CheckConstraint("seats_available <= capacity", name="ck_flight_seats_within_capacity"),
    )

    flight_number = Column(String(20), nullable=False, index=True)
    airline = Column(String(100), nullable=False)
    origin = Column(String(100), nullable=False)
    destination = Column(String(100), nullable=False)
    departure = Column(DateTime(timezone=True), nullable=False)
    arrival = Column(DateTime(timezone=True), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    capacity = Column(Integer, nullable=False)
    seats_available = Column(Integer, nullable=False)

    # Relationships
    bookings = relationship("Booking", back_populates="flight")

    def __repr__(self):
        return f"<Flight(id={self.id}, number={self.flight_number}, seats={self.seats_available}/{self.capacity})>"
