"""
Booking lifecycle rules
"""

from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional, Tuple
import logging
import uuid

from app.core.exceptions import WayfarerError
from app.models.booking import Booking, BookingStatus
from app.models.payment import Payment, PaymentStatus
from app.services.booking_target import BookingTarget

logger = logging.getLogger(__name__)

BOOKING_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})

# Payments that still allow their booking to be deleted
DELETABLE_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.FAILED, PaymentStatus.REFUNDED})


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they are stored as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_active(status: BookingStatus) -> bool:
    """Active bookings hold one unit of inventory"""
    return status != BookingStatus.CANCELLED


class BookingStateMachine:
    """Validates status changes, reference changes and deletion of bookings"""

    def can_transition(self, current: BookingStatus, target: BookingStatus) -> bool:
        return target in BOOKING_TRANSITIONS[current]

    def validate_transition(self, current: BookingStatus, target: BookingStatus) -> None:
        if current == target:
            return
        if not self.can_transition(current, target):
            raise WayfarerError.bad_request(
                f"Cannot transition booking status from {current.value} to {target.value}",
                {"allowed": sorted(status.value for status in BOOKING_TRANSITIONS[current])}
            )

    def validate_status_change(
        self,
        booking: Booking,
        target: BookingStatus,
        payment: Optional[Payment] = None
    ) -> None:
        """Transition table plus the payment guard"""
        self.validate_transition(booking.status, target)
        if (
            payment is not None
            and payment.status == PaymentStatus.COMPLETED
            and target in (BookingStatus.PENDING, BookingStatus.CANCELLED)
        ):
            raise WayfarerError.bad_request(
                f"Cannot set booking to {target.value} while its payment is COMPLETED. "
                "Refund the payment first."
            )

    def validate_reference_change(
        self,
        booking: Booking,
        new_target: Optional[BookingTarget] = None,
        new_user_id: Optional[uuid.UUID] = None
    ) -> Tuple[bool, bool]:
        """
        Returns (target_changed, user_changed).
        Terminal bookings are frozen and a booking never changes resource type.
        """
        current_target = BookingTarget.of(booking)
        target_changed = new_target is not None and new_target != current_target
        user_changed = new_user_id is not None and new_user_id != booking.user_id

        if (target_changed or user_changed) and booking.status in TERMINAL_STATUSES:
            raise WayfarerError.bad_request(
                f"Cannot change the user or booked item of a {booking.status.value} booking"
            )
        if target_changed and new_target.resource_type != current_target.resource_type:
            raise WayfarerError.bad_request(
                f"Cannot change booking type from {current_target.resource_type.value} "
                f"to {new_target.resource_type.value}"
            )
        return target_changed, user_changed

    def validate_deletion(
        self,
        booking: Booking,
        payment: Optional[Payment],
        service_date: Optional[datetime],
        now: Optional[datetime] = None
    ) -> None:
        if booking.status == BookingStatus.COMPLETED:
            raise WayfarerError.bad_request("Cannot delete a completed booking")

        if payment is not None and payment.status not in DELETABLE_PAYMENT_STATUSES:
            raise WayfarerError.bad_request(
                f"Cannot delete a booking with a {payment.status.value} payment. Refund the payment first."
            )

        now = now or datetime.now(timezone.utc)
        if (
            booking.status == BookingStatus.CONFIRMED
            and service_date is not None
            and as_utc(service_date) < now
        ):
            logger.info(f"Refusing to delete booking {booking.id}, service date {service_date} has passed")
            raise WayfarerError.bad_request(
                "Cannot delete a confirmed booking whose service date has passed. Cancel it instead."
            )
