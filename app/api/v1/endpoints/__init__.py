"""
API endpoints module
"""

from . import bookings, payment, inventory, reports, health

__all__ = [
    "bookings",
    "payment",
    "inventory",
    "reports",
    "health"
]
