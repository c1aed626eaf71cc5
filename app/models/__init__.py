"""
Database models
"""

from app.models.user import User, UserRole
from app.models.tour import Tour, TourStatus
from app.models.hotel import Hotel, Room
from app.models.flight import Flight
from app.models.booking import Booking, BookingStatus
from app.models.payment import Payment, PaymentStatus, PaymentMethod

__all__ = [
    "User",
    "UserRole",
    "Tour",
    "TourStatus",
    "Hotel",
    "Room",
    "Flight",
    "Booking",
    "BookingStatus",
    "Payment",
    "PaymentStatus",
    "PaymentMethod"
]
