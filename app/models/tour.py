"""
Tour model
"""

from sqlalchemy import Column, String, Integer, Text, DateTime, Enum, Numeric, CheckConstraint
from sqlalchemy.orm import relationship
import enum

from app.models.base import BaseModel


class TourStatus(str, enum.Enum):
    UPCOMING = "UPCOMING"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Tour(BaseModel):
    """
    Guided tour; capacity is max_guests, consumption is guests_booked
    """
    __tablename__ = "tours"
    __table_args__ = (
        CheckConstraint("guests_booked >= 0", name="ck_tour_guests_booked_non_negative"),
        CheckConstraint("guests_booked <= max_guests", name="ck_tour_guests_within_capacity"),
    )

    name = Column(String(255), nullable=False, index=True)
    description = Column(Text)
    location = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(TourStatus),
        default=TourStatus.UPCOMING,
        nullable=False,
        index=True
    )
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    max_guests = Column(Integer, nullable=False)
    guests_booked = Column(Integer, default=0, nullable=False)

    # Relationships
    bookings = relationship("Booking", back_populates="tour")

    def __repr__(self):
        return f"<Tour(id={self.id}, name={self.name}, status={self.status}, booked={self.guests_booked}/{self.max_guests})>"
