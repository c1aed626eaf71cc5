"""
Booking orchestrator

Each create, update and delete runs the ledger change and the booking write
in one database transaction. Any failure inside it (missing resource, no
availability, illegal transition) rolls back both.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple
import logging
import uuid

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.database import db_manager
from app.core.exceptions import WayfarerError
from app.core.metrics import metrics_collector
from app.core.security import CurrentUser
from app.models.booking import Booking, BookingStatus
from app.models.flight import Flight
from app.models.hotel import Room
from app.models.tour import Tour
from app.models.user import User
from app.schemas.booking import (
    BookingCreate,
    BookingUpdate,
    BookingResponse,
    BookingUserSummary,
    TourSummary,
    RoomSummary,
    FlightSummary
)
from app.services.booking_state import BookingStateMachine, is_active
from app.services.booking_target import BookingTarget, ResourceType
from app.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)


@dataclass
class BookingDeletion:
    id: uuid.UUID
    restored: List[ResourceType] = field(default_factory=list)


def service_date(booking: Booking) -> Optional[datetime]:
    """Date the booked service is delivered; rooms have none"""
    if booking.tour is not None:
        return booking.tour.start_date
    if booking.flight is not None:
        return booking.flight.departure
    return None


class BookingService:
    """
    Creates, changes and removes bookings while keeping inventory counters
    equal to the number of active bookings
    """

    def __init__(
        self,
        ledger: Optional[InventoryLedger] = None,
        state_machine: Optional[BookingStateMachine] = None
    ):
        self.ledger = ledger or InventoryLedger()
        self.state_machine = state_machine or BookingStateMachine()
        self.db_manager = db_manager
        self.logger = logging.getLogger(__name__)

    async def create_booking(
        self,
        db: AsyncSession,
        current_user: CurrentUser,
        booking_data: BookingCreate
    ) -> Booking:
        if current_user.is_customer and booking_data.user_id != current_user.id:
            raise WayfarerError.forbidden("Customers can only book for themselves")

        target = booking_data.target

        async with metrics_collector.track_booking_operation("create_booking"):
            async with self.db_manager.transaction(db):
                user = await db.get(User, booking_data.user_id)
                if user is None:
                    raise WayfarerError.not_found("User", booking_data.user_id)

                await self.ledger.reserve(db, target)

                booking = Booking(
                    user_id=booking_data.user_id,
                    total_price=booking_data.total_price,
                    status=BookingStatus.PENDING,
                    **target.to_columns()
                )
                db.add(booking)
                await db.flush()
                booking_id = booking.id

        self.logger.info(
            f"Booking {booking_id} created for {target}",
            extra={"booking_id": str(booking_id), "user_id": str(booking_data.user_id)}
        )
        return await self._load_booking(db, booking_id)

    async def update_booking(
        self,
        db: AsyncSession,
        current_user: CurrentUser,
        booking_id: uuid.UUID,
        booking_data: BookingUpdate
    ) -> Booking:
        if not current_user.is_staff:
            raise WayfarerError.forbidden("Only admins and agents can update bookings")

        async with metrics_collector.track_booking_operation("update_booking"):
            async with self.db_manager.transaction(db):
                booking = await self._load_booking(db, booking_id, lock=True)
                current_target = BookingTarget.of(booking)
                new_target = booking_data.target

                target_changed, user_changed = self.state_machine.validate_reference_change(
                    booking, new_target, booking_data.user_id
                )
                new_status = booking_data.status
                status_changed = new_status is not None and new_status != booking.status
                if status_changed:
                    self.state_machine.validate_status_change(booking, new_status, booking.payment)

                if user_changed:
                    if await db.get(User, booking_data.user_id) is None:
                        raise WayfarerError.not_found("User", booking_data.user_id)
                    booking.user_id = booking_data.user_id

                effective_target = current_target
                if target_changed:
                    # Frozen references mean the booking is still active here
                    await self.ledger.reassign(db, current_target, new_target)
                    for column, value in new_target.to_columns().items():
                        setattr(booking, column, value)
                    effective_target = new_target

                if status_changed:
                    await self.ledger.sync_booking_status(db, effective_target, booking.status, new_status)
                    booking.status = new_status

                if booking_data.total_price is not None:
                    booking.total_price = booking_data.total_price

                await db.flush()

        self.logger.info(f"Booking {booking_id} updated", extra={"booking_id": str(booking_id)})
        return await self._load_booking(db, booking_id)

    async def delete_booking(
        self,
        db: AsyncSession,
        current_user: CurrentUser,
        booking_id: uuid.UUID
    ) -> BookingDeletion:
        """
        Delete a booking and its payment.
        Only an active booking gives a unit back here. A CANCELLED booking,
        including one whose payment was REFUNDED, released its unit when it
        was cancelled or refunded, so `restored` is empty for it.
        """
        if not current_user.is_staff:
            raise WayfarerError.forbidden("Only admins and agents can delete bookings")

        async with metrics_collector.track_booking_operation("delete_booking"):
            async with self.db_manager.transaction(db):
                booking = await self._load_booking(db, booking_id, lock=True)
                payment = booking.payment
                self.state_machine.validate_deletion(booking, payment, service_date(booking))

                deletion = BookingDeletion(id=booking.id)
                if is_active(booking.status):
                    target = BookingTarget.of(booking)
                    if await self.ledger.release(db, target):
                        deletion.restored.append(target.resource_type)

                if payment is not None:
                    await db.delete(payment)
                await db.delete(booking)

        self.logger.info(
            f"Booking {booking_id} deleted",
            extra={"booking_id": str(booking_id), "restored": [r.value for r in deletion.restored]}
        )
        return deletion

    async def get_booking(
        self,
        db: AsyncSession,
        current_user: CurrentUser,
        booking_id: uuid.UUID
    ) -> Booking:
        booking = await self._load_booking(db, booking_id)
        if current_user.is_customer and booking.user_id != current_user.id:
            raise WayfarerError.forbidden("You can only view your own bookings")
        return booking

    async def list_bookings(
        self,
        db: AsyncSession,
        current_user: CurrentUser,
        page: int = 1,
        limit: int = 10,
        status: Optional[BookingStatus] = None,
        search: Optional[str] = None
    ) -> Tuple[List[Booking], int]:
        query = (
            select(Booking)
            .join(User, Booking.user_id == User.id)
            .outerjoin(Tour, Booking.tour_id == Tour.id)
            .outerjoin(Room, Booking.room_id == Room.id)
            .outerjoin(Flight, Booking.flight_id == Flight.id)
        )
        if current_user.is_customer:
            query = query.where(Booking.user_id == current_user.id)
        if status is not None:
            query = query.where(Booking.status == status)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(
                Tour.name.ilike(pattern),
                Room.room_type.ilike(pattern),
                Flight.flight_number.ilike(pattern),
                Flight.airline.ilike(pattern),
                User.name.ilike(pattern),
                User.email.ilike(pattern),
            ))

        total = await db.scalar(select(func.count()).select_from(query.subquery()))
        result = await db.execute(
            query.options(*self._detail_options())
            .order_by(Booking.booking_date.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def _load_booking(self, db: AsyncSession, booking_id: uuid.UUID, lock: bool = False) -> Booking:
        query = (
            select(Booking)
            .options(*self._detail_options())
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update(of=Booking)
        booking = (await db.execute(query)).scalar_one_or_none()
        if booking is None:
            raise WayfarerError.not_found("Booking", booking_id)
        return booking

    @staticmethod
    def _detail_options():
        return (
            selectinload(Booking.user),
            selectinload(Booking.tour),
            selectinload(Booking.room),
            selectinload(Booking.flight),
            selectinload(Booking.payment),
        )


def format_booking_response(booking: Booking) -> BookingResponse:
    """Discriminated booking shape; only the booked resource is populated"""
    target = BookingTarget.of(booking)
    return BookingResponse(
        id=booking.id,
        type=target.resource_type,
        user_id=booking.user_id,
        user=BookingUserSummary.model_validate(booking.user) if booking.user is not None else None,
        tour=TourSummary.model_validate(booking.tour) if target.resource_type is ResourceType.TOUR else None,
        room=RoomSummary.model_validate(booking.room) if target.resource_type is ResourceType.ROOM else None,
        flight=FlightSummary.model_validate(booking.flight) if target.resource_type is ResourceType.FLIGHT else None,
        total_price=booking.total_price,
        status=booking.status,
        booking_date=booking.booking_date,
        payment_status=booking.payment.status if booking.payment is not None else None,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


# Create service instance
booking_service = BookingService()
