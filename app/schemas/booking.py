"""
Booking schemas
"""

from pydantic import Field, model_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from app.models.booking import BookingStatus
from app.models.payment import PaymentStatus
from app.models.tour import TourStatus
from app.schemas.base import BaseSchema, IDSchema, TimestampSchema
from app.services.booking_target import BookingTarget, ResourceType


class BookingCreate(BaseSchema):
    """Exactly one of tour_id, room_id or flight_id"""
    user_id: UUID
    tour_id: Optional[UUID] = None
    room_id: Optional[UUID] = None
    flight_id: Optional[UUID] = None
    total_price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)

    @model_validator(mode="after")
    def validate_single_target(self):
        supplied = [i for i in (self.tour_id, self.room_id, self.flight_id) if i is not None]
        if len(supplied) != 1:
            raise ValueError("Exactly one of tourId, roomId or flightId must be provided")
        return self

    @property
    def target(self) -> BookingTarget:
        return BookingTarget.from_ids(self.tour_id, self.room_id, self.flight_id)


class BookingUpdate(BaseSchema):
    user_id: Optional[UUID] = None
    tour_id: Optional[UUID] = None
    room_id: Optional[UUID] = None
    flight_id: Optional[UUID] = None
    total_price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    status: Optional[BookingStatus] = None

    @model_validator(mode="after")
    def validate_at_most_one_target(self):
        supplied = [i for i in (self.tour_id, self.room_id, self.flight_id) if i is not None]
        if len(supplied) > 1:
            raise ValueError("At most one of tourId, roomId or flightId may be provided")
        return self

    @property
    def target(self) -> Optional[BookingTarget]:
        if self.tour_id is None and self.room_id is None and self.flight_id is None:
            return None
        return BookingTarget.from_ids(self.tour_id, self.room_id, self.flight_id)


class BookingUserSummary(IDSchema):
    name: str
    email: str


class TourSummary(IDSchema):
    name: str
    location: str
    status: TourStatus
    start_date: datetime
    end_date: datetime
    max_guests: int
    guests_booked: int


class RoomSummary(IDSchema):
    hotel_id: UUID
    room_type: str
    total_rooms: int
    rooms_available: int


class FlightSummary(IDSchema):
    flight_number: str
    airline: str
    origin: str
    destination: str
    departure: datetime
    arrival: datetime
    capacity: int
    seats_available: int


class BookingResponse(IDSchema, TimestampSchema):
    """Booking with only the booked resource populated"""
    type: ResourceType
    user_id: UUID
    user: Optional[BookingUserSummary] = None
    tour: Optional[TourSummary] = None
    room: Optional[RoomSummary] = None
    flight: Optional[FlightSummary] = None
    total_price: Decimal
    status: BookingStatus
    booking_date: datetime
    payment_status: Optional[PaymentStatus] = None


class BookingDeleteResponse(BaseSchema):
    id: UUID
    restored: List[ResourceType] = []
