"""
Payment schemas for request/response models
"""

from typing import Optional
from datetime import datetime
from decimal import Decimal
from pydantic import Field
import uuid

from app.models.booking import BookingStatus
from app.models.payment import PaymentMethod, PaymentStatus
from app.schemas.base import BaseSchema, IDSchema, TimestampSchema
from app.services.booking_target import ResourceType


class PaymentCreate(BaseSchema):
    booking_id: uuid.UUID
    payment_method: PaymentMethod


class PaymentInitResponse(BaseSchema):
    # Checkout URL keeps the gateway's field name
    authorization_url: str = Field(..., alias="authorization_url")
    payment_id: uuid.UUID
    transaction_reference: str


class PaymentVerificationData(BaseSchema):
    reference: str
    booking_id: uuid.UUID
    payment_status: PaymentStatus
    amount: Decimal


class PaymentVerificationResponse(BaseSchema):
    success: bool
    message: str
    data: Optional[PaymentVerificationData] = None


class PaymentStatusUpdate(BaseSchema):
    status: PaymentStatus


class PaymentStatusChangeResponse(BaseSchema):
    payment_id: uuid.UUID
    status: PaymentStatus
    booking_status: BookingStatus
    updated_at: datetime
    refund_amount: Optional[Decimal] = None
    reason: Optional[str] = None


class RefundRequest(BaseSchema):
    reason: Optional[str] = Field(None, max_length=500)


class PaymentDeleteResponse(BaseSchema):
    payment_id: uuid.UUID
    booking_id: uuid.UUID


class PaymentUserSummary(IDSchema):
    name: str
    email: str


class BookedItem(BaseSchema):
    id: uuid.UUID
    type: ResourceType
    name: str
    description: Optional[str] = None


class PaymentResponse(IDSchema, TimestampSchema):
    booking_id: uuid.UUID
    user_id: uuid.UUID
    amount: Decimal
    currency: str
    payment_method: PaymentMethod
    status: PaymentStatus
    transaction_reference: Optional[str] = None
    payment_date: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    refund_reason: Optional[str] = None
    user: Optional[PaymentUserSummary] = None
    booked_item: Optional[BookedItem] = None
