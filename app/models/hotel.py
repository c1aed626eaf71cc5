"""
Hotel and Room models
"""

from sqlalchemy import Column, String, Integer, Text, Boolean, ForeignKey, Numeric, CheckConstraint, Uuid
from sqlalchemy.orm import relationship

from app.models.base import BaseModel


class Hotel(BaseModel):
    """
    Hotel owning a set of room types
    """
    __tablename__ = "hotels"

    name = Column(String(255), nullable=False)
    location = Column(String(255), nullable=False)
    description = Column(Text)

    # Relationships
    rooms = relationship("Room", back_populates="hotel", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Hotel(id={self.id}, name={self.name})>"


class Room(BaseModel):
    """
    Room type in a hotel; the ledger keeps the available count, not the consumed one
    """
    __tablename__ = "rooms"
    __table_args__ = (
        CheckConstraint("rooms_available >= 0", name="ck_room_available_non_negative"),
        CheckConstraint("rooms_available <= total_rooms", name="ck_room_available_within_total"),
    )

    hotel_id = Column(Uuid(as_uuid=True), ForeignKey("hotels.id"), nullable=False, index=True)
    room_type = Column(String(100), nullable=False)
    description = Column(Text)
    price = Column(Numeric(10, 2), nullable=False)
    capacity = Column(Integer, nullable=False)  # guests per room
    total_rooms = Column(Integer, nullable=False)
    rooms_available = Column(Integer, nullable=False)
    available = Column(Boolean, default=True, nullable=False)

    # Relationships
    hotel = relationship("Hotel", back_populates="rooms")
    bookings = relationship("Booking", back_populates="room")

    def __repr__(self):
        return f"<Room(id={self.id}, type={self.room_type}, available={self.rooms_available}/{self.total_rooms})>"
