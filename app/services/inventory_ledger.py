"""
Inventory ledger for tours, rooms and flights.

CONCURRENCY STRATEGY: conditional updates
==========================================

Two requests booking the last unit of a resource must not both succeed.
Every counter change is a single statement whose WHERE clause carries the
capacity guard, e.g.

    UPDATE tours SET guests_booked = guests_booked + 1
    WHERE id = :id AND guests_booked < max_guests

The database serializes concurrent writers on the row; the loser sees
rowcount == 0 and the ledger reports why (missing, closed or full). The
CHECK constraints on each table are the final safety net.

All methods run inside the caller's transaction.
"""

from dataclasses import dataclass
from typing import Optional
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import WayfarerError
from app.models.booking import BookingStatus
from app.models.flight import Flight
from app.models.hotel import Room
from app.models.tour import Tour, TourStatus
from app.services.booking_target import BookingTarget, ResourceType

logger = logging.getLogger(__name__)

RESOURCE_MODELS = {
    ResourceType.TOUR: Tour,
    ResourceType.ROOM: Room,
    ResourceType.FLIGHT: Flight,
}

CLOSED_TOUR_STATUSES = (TourStatus.CANCELLED, TourStatus.COMPLETED)


@dataclass
class Availability:
    """Capacity snapshot of one resource"""
    resource_type: ResourceType
    resource_id: uuid.UUID
    capacity: int
    used: int

    @property
    def available(self) -> int:
        return self.capacity - self.used


def snapshot(resource_type: ResourceType, resource) -> Availability:
    if resource_type is ResourceType.TOUR:
        capacity, used = resource.max_guests, resource.guests_booked
    elif resource_type is ResourceType.ROOM:
        capacity, used = resource.total_rooms, resource.total_rooms - resource.rooms_available
    else:
        capacity, used = resource.capacity, resource.capacity - resource.seats_available
    return Availability(resource_type, resource.id, capacity, used)


class InventoryLedger:
    """Reserve, release and resize bookable inventory"""

    async def check_availability(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: uuid.UUID
    ) -> Availability:
        resource = await self._load(session, resource_type, resource_id)
        if resource is None:
            raise WayfarerError.not_found(resource_type.label, resource_id)
        return snapshot(resource_type, resource)

    async def reserve(self, session: AsyncSession, target: BookingTarget) -> None:
        """Consume one unit of the target or raise"""
        result = await session.execute(
            self._reserve_statement(target).execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.info(f"Reserved one unit of {target}")
            return

        resource = await self._load(session, target.resource_type, target.resource_id)
        if resource is None:
            raise WayfarerError.not_found(target.resource_type.label, target.resource_id)
        if target.resource_type is ResourceType.TOUR and resource.status in CLOSED_TOUR_STATUSES:
            raise WayfarerError.bad_request(f"Tour is {resource.status.value.lower()} and cannot be booked")
        if target.resource_type is ResourceType.ROOM and not resource.available:
            raise WayfarerError.bad_request("Room is not available")

        logger.info(f"Reservation rejected, {target} is full")
        raise WayfarerError.bad_request(
            f"No available slots for this {target.resource_type.value.lower()}",
            {"resourceType": target.resource_type.value, "resourceId": str(target.resource_id)}
        )

    async def release(self, session: AsyncSession, target: BookingTarget) -> bool:
        """
        Return one unit of the target.
        Returns False, without changing anything, when the counter is already
        at full availability.
        """
        result = await session.execute(
            self._release_statement(target).execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.info(f"Released one unit of {target}")
            return True

        resource = await self._load(session, target.resource_type, target.resource_id)
        if resource is None:
            raise WayfarerError.not_found(target.resource_type.label, target.resource_id)
        logger.warning(
            f"Release ignored, {target} has nothing booked",
            extra={"resource_type": target.resource_type.value, "resource_id": str(target.resource_id)}
        )
        return False

    async def reassign(
        self,
        session: AsyncSession,
        old_target: BookingTarget,
        new_target: BookingTarget
    ) -> None:
        if old_target == new_target:
            return
        await self.release(session, old_target)
        await self.reserve(session, new_target)

    async def sync_booking_status(
        self,
        session: AsyncSession,
        target: BookingTarget,
        previous: BookingStatus,
        current: BookingStatus
    ) -> Optional[bool]:
        """
        Keep the counters equal to the number of non-cancelled bookings when a
        booking moves into or out of CANCELLED.
        """
        was_active = previous != BookingStatus.CANCELLED
        is_active = current != BookingStatus.CANCELLED
        if was_active and not is_active:
            return await self.release(session, target)
        if is_active and not was_active:
            await self.reserve(session, target)
            return True
        return None

    async def set_capacity(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: uuid.UUID,
        capacity: int
    ) -> Availability:
        """Change a resource's capacity, keeping every unit already booked"""
        if capacity < 0:
            raise WayfarerError.bad_request("Capacity cannot be negative")

        result = await session.execute(
            self._capacity_statement(resource_type, resource_id, capacity)
            .execution_options(synchronize_session=False)
        )
        resource = await self._load(session, resource_type, resource_id)
        if resource is None:
            raise WayfarerError.not_found(resource_type.label, resource_id)

        current = snapshot(resource_type, resource)
        if result.rowcount != 1:
            raise WayfarerError.bad_request(
                f"Cannot reduce capacity to {capacity}. {current.used} units are currently booked. "
                f"Minimum capacity allowed is {current.used}."
            )
        logger.info(f"Capacity of {resource_type.value}:{resource_id} set to {capacity}")
        return current

    async def _load(self, session: AsyncSession, resource_type: ResourceType, resource_id: uuid.UUID):
        model = RESOURCE_MODELS[resource_type]
        result = await session.execute(
            select(model)
            .where(model.id == resource_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _reserve_statement(target: BookingTarget):
        if target.resource_type is ResourceType.TOUR:
            return (
                update(Tour)
                .where(
                    Tour.id == target.resource_id,
                    Tour.guests_booked < Tour.max_guests,
                    Tour.status.not_in(CLOSED_TOUR_STATUSES),
                )
                .values(guests_booked=Tour.guests_booked + 1)
            )
        if target.resource_type is ResourceType.ROOM:
            return (
                update(Room)
                .where(
                    Room.id == target.resource_id,
                    Room.rooms_available > 0,
                    Room.available.is_(True),
                )
                .values(rooms_available=Room.rooms_available - 1)
            )
        return (
            update(Flight)
            .where(Flight.id == target.resource_id, Flight.seats_available > 0)
            .values(seats_available=Flight.seats_available - 1)
        )

    @staticmethod
    def _release_statement(target: BookingTarget):
        if target.resource_type is ResourceType.TOUR:
            return (
                update(Tour)
                .where(Tour.id == target.resource_id, Tour.guests_booked > 0)
                .values(guests_booked=Tour.guests_booked - 1)
            )
        if target.resource_type is ResourceType.ROOM:
            return (
                update(Room)
                .where(Room.id == target.resource_id, Room.rooms_available < Room.total_rooms)
                .values(rooms_available=Room.rooms_available + 1)
            )
        return (
            update(Flight)
            .where(Flight.id == target.resource_id, Flight.seats_available < Flight.capacity)
            .values(seats_available=Flight.seats_available + 1)
        )

    @staticmethod
    def _capacity_statement(resource_type: ResourceType, resource_id: uuid.UUID, capacity: int):
        # SET expressions see the pre-update row, so the booked count is preserved
        if resource_type is ResourceType.TOUR:
            return (
                update(Tour)
                .where(Tour.id == resource_id, Tour.guests_booked <= capacity)
                .values(max_guests=capacity)
            )
        if resource_type is ResourceType.ROOM:
            booked = Room.total_rooms - Room.rooms_available
            return (
                update(Room)
                .where(Room.id == resource_id, booked <= capacity)
                .values(total_rooms=capacity, rooms_available=capacity - booked)
            )
        booked = Flight.capacity - Flight.seats_available
        return (
            update(Flight)
            .where(Flight.id == resource_id, booked <= capacity)
            .values(capacity=capacity, seats_available=capacity - booked)
        )
