"""
Pydantic schemas for request and response validation
"""

from app.schemas.booking import (
    BookingCreate,
    BookingUpdate,
    BookingResponse,
    BookingDeleteResponse
)
from app.schemas.payment import (
    PaymentCreate,
    PaymentInitResponse,
    PaymentResponse,
    PaymentVerificationResponse,
    PaymentStatusUpdate,
    PaymentStatusChangeResponse,
    RefundRequest
)
from app.schemas.inventory import (
    AvailabilityResponse,
    CapacityUpdate
)
from app.schemas.response import (
    SuccessResponse,
    ErrorResponse,
    PaginatedResponse,
    PaginationMeta
)

__all__ = [
    "BookingCreate",
    "BookingUpdate",
    "BookingResponse",
    "BookingDeleteResponse",
    "PaymentCreate",
    "PaymentInitResponse",
    "PaymentResponse",
    "PaymentVerificationResponse",
    "PaymentStatusUpdate",
    "PaymentStatusChangeResponse",
    "RefundRequest",
    "AvailabilityResponse",
    "CapacityUpdate",
    "SuccessResponse",
    "ErrorResponse",
    "PaginatedResponse",
    "PaginationMeta"
]
