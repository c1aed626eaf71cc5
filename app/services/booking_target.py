"""
Booking targets: the single tour, room or flight a booking consumes
"""

from dataclasses import dataclass
from typing import Dict, Optional
import enum
import uuid

from app.core.exceptions import WayfarerError


class ResourceType(str, enum.Enum):
    TOUR = "TOUR"
    ROOM = "ROOM"
    FLIGHT = "FLIGHT"

    @property
    def column(self) -> str:
        """Foreign key column on the bookings table"""
        return f"{self.value.lower()}_id"

    @property
    def label(self) -> str:
        return self.value.capitalize()


@dataclass(frozen=True)
class BookingTarget:
    """
    Tagged reference to a bookable resource.
    The three nullable booking columns are produced and read only through
    to_columns() / of().
    """
    resource_type: ResourceType
    resource_id: uuid.UUID

    @classmethod
    def from_ids(
        cls,
        tour_id: Optional[uuid.UUID] = None,
        room_id: Optional[uuid.UUID] = None,
        flight_id: Optional[uuid.UUID] = None
    ) -> "BookingTarget":
        supplied = [
            (resource_type, resource_id)
            for resource_type, resource_id in (
                (ResourceType.TOUR, tour_id),
                (ResourceType.ROOM, room_id),
                (ResourceType.FLIGHT, flight_id),
            )
            if resource_id is not None
        ]
        if len(supplied) != 1:
            raise WayfarerError.bad_request(
                "Exactly one of tourId, roomId or flightId must be provided",
                {"supplied": [resource_type.value for resource_type, _ in supplied]}
            )
        return cls(*supplied[0])

    @classmethod
    def of(cls, booking) -> "BookingTarget":
        """Read the target from a persisted booking row"""
        return cls.from_ids(booking.tour_id, booking.room_id, booking.flight_id)

    def to_columns(self) -> Dict[str, Optional[uuid.UUID]]:
        return {
            resource_type.column: self.resource_id if resource_type is self.resource_type else None
            for resource_type in ResourceType
        }

    def __str__(self):
        return f"{self.resource_type.value}:{self.resource_id}"
